from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from contextlib import asynccontextmanager
from slowapi.errors import RateLimitExceeded
import logging
import uuid

from .config import get_settings
from .database import create_tables
from .utils.logging_config import setup_logging, bind_log_context, clear_log_context
from .utils.rate_limiter import limiter

from .routers import availability, blocks, bookings, payments, webhooks, internal, health

settings = get_settings()
logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging, report gateway readiness, make sure tables exist."""
    setup_logging(level=settings.log_level, json_format=settings.log_json)

    logger.info(f"Starting shortlet-backend ({settings.environment}), CORS origins: {settings.cors_origins}")
    for gateway, configured in (("Paystack", settings.paystack_configured), ("Stripe", settings.stripe_configured)):
        if not configured:
            logger.warning(f"{gateway} is not configured; its checkout and webhooks will answer 503")

    create_tables()
    logger.info("Database ready")

    yield

    logger.info("Shutting down shortlet-backend")


app = FastAPI(
    title="Shortlet Booking API",
    description="Availability, checkout and booking approval for shortlet stays",
    version="1.0.0",
    lifespan=lifespan
)
app.state.limiter = limiter


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tags every request (and its log lines) with a short request id"""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:8]
        request.state.request_id = request_id
        bind_log_context(request_id=request_id)
        try:
            response = await call_next(request)
        finally:
            clear_log_context()
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        if settings.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


# Starlette runs the last-added middleware first, so CORS goes on last
app.add_middleware(RequestContextMiddleware)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=[REQUEST_ID_HEADER],
)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    logger.info(f"Rate limit hit on {request.url.path}")
    return JSONResponse(status_code=429, content={"detail": "Too many requests, try again later"})


for module in (availability, blocks, bookings, payments, webhooks, internal, health):
    app.include_router(module.router)


@app.get("/")
async def root():
    return {"service": "shortlet-backend", "version": app.version, "docs": "/docs"}
