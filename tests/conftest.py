"""
Shared fixtures: in-memory SQLite session, test settings, API client, row factories.
"""

import pytest
from datetime import date, datetime, timedelta
from unittest.mock import MagicMock

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from shortlet.config import Settings, get_settings
from shortlet.database import Base, get_db
from shortlet import models  # noqa: F401
from shortlet.models.listing import ShortletListing
from shortlet.models.booking import ShortletBooking
from shortlet.models.block import ShortletBlock
from shortlet.models.payment import ShortletPayment
from shortlet.services.notifications import EmailResult

CRON_SECRET = "cron-test-secret"
PAYSTACK_SECRET = "sk_test_paystack_secret"


@pytest.fixture
def settings():
    return Settings(
        ENVIRONMENT="test",
        SECRET_KEY="test-secret-key-that-is-at-least-32-chars",
        SITE_URL="https://example.test",
        CRON_SECRET=CRON_SECRET,
        PAYSTACK_SECRET_KEY=PAYSTACK_SECRET,
        STRIPE_SECRET_KEY="sk_test_stripe",
        STRIPE_WEBHOOK_SECRET="whsec_test",
        RESEND_API_KEY="",
        SHORTLET_REQUEST_EXPIRY_HOURS=24,
        LOG_JSON=False,
    )


@pytest.fixture
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def email_sender():
    """Records every email instead of calling the email API"""
    sender = MagicMock()
    sender.send.return_value = EmailResult(ok=True, message_id="msg-1")
    return sender


@pytest.fixture
def client(db_session, settings):
    from fastapi.testclient import TestClient
    from shortlet.main import app
    from shortlet.utils.rate_limiter import limiter

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    limiter.enabled = False
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        limiter.enabled = True


def auth_headers(settings, user_id: str, role: str, email: str = None) -> dict:
    from shortlet.utils.security import create_access_token

    claims = {"sub": user_id, "role": role}
    if email:
        claims["email"] = email
    return {"Authorization": f"Bearer {create_access_token(claims, settings)}"}


# ==================
# Row factories
# ==================

def make_listing(db, **overrides) -> ShortletListing:
    values = {
        "host_user_id": "host-1",
        "host_email": "host@example.test",
        "title": "Lekki Loft",
        "city": "Lagos",
        "country_code": "NG",
        "currency": "NGN",
        "nightly_price_minor": 2500000,
        "cleaning_fee_minor": 500000,
        "booking_mode": "request",
        "min_nights": 1,
        "max_nights": None,
        "prep_days": 0,
        "is_active": True,
    }
    values.update(overrides)
    listing = ShortletListing(**values)
    db.add(listing)
    db.commit()
    db.refresh(listing)
    return listing


def make_booking(db, listing, **overrides) -> ShortletBooking:
    check_in = overrides.pop("check_in", date(2026, 3, 10))
    check_out = overrides.pop("check_out", date(2026, 3, 13))
    values = {
        "listing_id": listing.id,
        "guest_user_id": "guest-1",
        "guest_email": "guest@example.test",
        "host_user_id": listing.host_user_id,
        "status": "pending_payment",
        "booking_mode": listing.booking_mode,
        "check_in": check_in,
        "check_out": check_out,
        "nights": (check_out - check_in).days,
        "total_amount_minor": 8000000,
        "currency": listing.currency,
    }
    values.update(overrides)
    booking = ShortletBooking(**values)
    db.add(booking)
    db.commit()
    db.refresh(booking)
    return booking


def make_block(db, listing, date_from, date_to, reason=None) -> ShortletBlock:
    block = ShortletBlock(listing_id=listing.id, date_from=date_from, date_to=date_to, reason=reason)
    db.add(block)
    db.commit()
    db.refresh(block)
    return block


def make_payment(db, booking, **overrides) -> ShortletPayment:
    values = {
        "booking_id": booking.id,
        "provider": "paystack",
        "provider_reference": f"shb_ps_{booking.id.replace('-', '')[:20]}_1700000000000",
        "status": "initiated",
        "amount_total_minor": booking.total_amount_minor,
        "currency": booking.currency,
        "created_at": datetime.utcnow() - timedelta(minutes=30),
    }
    values.update(overrides)
    payment = ShortletPayment(**values)
    db.add(payment)
    db.commit()
    db.refresh(payment)
    return payment
