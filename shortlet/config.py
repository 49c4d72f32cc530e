from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from functools import lru_cache
from typing import List, Optional


class Settings(BaseSettings):
    # Environment
    environment: str = Field(default="development", alias="ENVIRONMENT")

    # Database - PostgreSQL for production, SQLite for development
    database_url: str = Field(
        default="sqlite:///./shortlet.db",
        alias="DATABASE_URL"
    )

    # Security
    secret_key: str = Field(default="dev-secret-key-at-least-32-characters-long-for-development", alias="SECRET_KEY")
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 15

    # CORS - Frontend URLs from environment (comma-separated)
    allowed_origins: str = Field(
        default="http://localhost:3000,http://127.0.0.1:3000",
        alias="ALLOWED_ORIGINS"
    )

    # Public site URL used for gateway callback / return pages
    site_url: str = Field(default="http://localhost:3000", alias="SITE_URL")

    # Shared secret for internal cron endpoints (expiry + reconcile sweeps)
    cron_secret: str = Field(default="", alias="CRON_SECRET")

    # ==============================================
    # Paystack (Server-Side Only!)
    # ==============================================
    paystack_base_url: str = Field(default="https://api.paystack.co", alias="PAYSTACK_BASE_URL")
    paystack_secret_key: str = Field(default="", alias="PAYSTACK_SECRET_KEY")
    paystack_public_key: str = Field(default="", alias="PAYSTACK_PUBLIC_KEY")
    # Paystack signs webhooks with the secret key unless a dedicated secret is set
    paystack_webhook_secret: str = Field(default="", alias="PAYSTACK_WEBHOOK_SECRET")

    # ==============================================
    # Stripe (Server-Side Only!)
    # ==============================================
    stripe_secret_key: str = Field(default="", alias="STRIPE_SECRET_KEY")
    stripe_webhook_secret: str = Field(default="", alias="STRIPE_WEBHOOK_SECRET")

    # Provider switches for shortlet checkout
    shortlet_paystack_enabled: bool = Field(default=True, alias="SHORTLET_PAYMENTS_PAYSTACK_ENABLED")
    shortlet_stripe_enabled: bool = Field(default=True, alias="SHORTLET_PAYMENTS_STRIPE_ENABLED")

    # HTTP timeout for gateway + email requests
    gateway_timeout_seconds: int = Field(default=20, alias="GATEWAY_TIMEOUT_SECONDS")

    # ==============================================
    # Transactional email (Resend-compatible API)
    # ==============================================
    email_api_url: str = Field(default="https://api.resend.com/emails", alias="EMAIL_API_URL")
    resend_api_key: str = Field(default="", alias="RESEND_API_KEY")
    resend_from: str = Field(default="PropatyHub <no-reply@propatyhub.com>", alias="RESEND_FROM")

    # ==============================================
    # Shortlet booking timing
    # ==============================================
    # Hours a host has to answer a paid booking request
    request_expiry_hours: int = Field(default=24, alias="SHORTLET_REQUEST_EXPIRY_HOURS")
    # Default availability window returned to calendars
    availability_window_days: int = Field(default=180, alias="AVAILABILITY_WINDOW_DAYS")

    # Reconcile sweep for payments the webhook never settled
    reconcile_stale_minutes: int = Field(default=5, alias="PAYMENT_RECONCILE_STALE_MINUTES")
    reconcile_lock_seconds: int = Field(default=90, alias="PAYMENT_RECONCILE_LOCK_SECONDS")
    reconcile_retry_lock_seconds: int = Field(default=60, alias="PAYMENT_RECONCILE_RETRY_LOCK_SECONDS")
    reconcile_batch_limit: int = Field(default=50, alias="PAYMENT_RECONCILE_LIMIT")

    # Rate limiting (empty storage URI = in-memory counters)
    rate_limit_enabled: bool = Field(default=True, alias="RATE_LIMIT_ENABLED")
    rate_limit_storage_uri: str = Field(default="", alias="RATE_LIMIT_STORAGE_URI")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_json: bool = Field(default=True, alias="LOG_JSON")

    @field_validator('secret_key')
    @classmethod
    def validate_secret_key(cls, v: str) -> str:
        """Validate SECRET_KEY is strong enough"""
        if not v:
            raise ValueError("SECRET_KEY is required and cannot be empty")
        if len(v) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters long")
        return v

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def paystack_configured(self) -> bool:
        return bool(self.paystack_secret_key.strip())

    @property
    def stripe_configured(self) -> bool:
        return bool(self.stripe_secret_key.strip() and self.stripe_webhook_secret.strip())

    @property
    def paystack_webhook_signing_secret(self) -> Optional[str]:
        secret = self.paystack_webhook_secret.strip() or self.paystack_secret_key.strip()
        return secret or None

    @property
    def cors_origins(self) -> List[str]:
        """
        Parse allowed origins from comma-separated string.
        Returns a list suitable for CORSMiddleware.
        """
        seen = set()
        origins = []
        for origin in self.allowed_origins.split(","):
            origin = origin.strip().rstrip("/")
            if origin and origin not in seen:
                seen.add(origin)
                origins.append(origin)
        return origins or ["http://localhost:3000"]

    class Config:
        env_file = ".env"
        extra = "ignore"
        populate_by_name = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
