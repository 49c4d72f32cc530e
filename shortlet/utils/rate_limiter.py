"""
Rate Limiter Configuration

In-memory storage by default; RATE_LIMIT_STORAGE_URI (e.g. redis://...)
shares counters across instances.
"""

import logging
from slowapi import Limiter
from slowapi.util import get_remote_address
from fastapi import Request
from ..config import get_settings

logger = logging.getLogger(__name__)


def get_real_client_ip(request: Request) -> str:
    """Get real client IP behind reverse proxy"""
    # Check X-Forwarded-For header (set by proxies)
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # Take the first IP (original client)
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    return get_remote_address(request)


def create_limiter() -> Limiter:
    settings = get_settings()
    storage_uri = settings.rate_limit_storage_uri.strip()

    if storage_uri:
        logger.info("Rate limiter using shared storage")
        return Limiter(
            key_func=get_real_client_ip,
            storage_uri=storage_uri,
            default_limits=["100/minute"],
            enabled=settings.rate_limit_enabled,
        )

    logger.info("Rate limiter using in-memory storage")
    return Limiter(
        key_func=get_real_client_ip,
        default_limits=["100/minute"],
        enabled=settings.rate_limit_enabled,
    )


# Global rate limiter instance
limiter = create_limiter()


# ================================
# RATE LIMIT CONFIGURATIONS
# ================================

RATE_LIMITS = {
    # Guest-facing writes
    "booking_create": "20/minute",
    "payment_init": "20/minute",
    "booking_respond": "60/minute",
    "block_write": "60/minute",

    # Calendar reads
    "availability": "120/minute",
    "availability_check": "60/minute",

    # Cron sweeps
    "internal": "30/minute",
}


def get_rate_limit(operation: str) -> str:
    """Get rate limit for a specific operation."""
    return RATE_LIMITS.get(operation, "100/minute")
