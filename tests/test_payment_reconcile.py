"""
Tests for the payment reconcile sweep

Tests cover:
- Candidate selection (stale initiated, flagged, lock windows)
- Claiming with compare-and-set
- Gateway outcomes: paid, failed, still pending, unreachable, mismatched
- Already-settled payments are cleared, not re-confirmed
"""

import pytest
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from conftest import make_listing, make_booking, make_payment
from shortlet.errors import GatewayError
from shortlet.models.booking import ShortletBooking
from shortlet.models.payment import ShortletPayment
from shortlet.services.notifications import ShortletNotifier
from shortlet.services.payment_reconcile import (
    PaymentReconcileService,
    ReconcileSummary,
    clamp_batch_limit,
    should_mark_provider_failure,
)
from shortlet.services.paystack_client import PaystackVerifyResult
from shortlet.services.stripe_gateway import StripeSessionResult


def verified(ok=True, status="success", amount_minor=8000000, currency="NGN"):
    return PaystackVerifyResult(
        ok=ok,
        status=status,
        amount_minor=amount_minor,
        currency=currency,
        paid_at="2026-03-01T10:00:00Z",
        transaction_id="77",
        raw={"status": True, "data": {"status": status}},
    )


@pytest.fixture
def now():
    return datetime.utcnow()


@pytest.fixture
def paystack_client():
    client = MagicMock()
    client.verify_transaction.return_value = verified()
    return client


@pytest.fixture
def stripe_gateway():
    return MagicMock()


@pytest.fixture
def service(db_session, settings, paystack_client, stripe_gateway, email_sender):
    return PaymentReconcileService(
        db_session,
        settings,
        paystack_client=paystack_client,
        stripe_gateway=stripe_gateway,
        notifier=ShortletNotifier(db_session, settings, email_sender=email_sender),
    )


@pytest.fixture
def stale_payment(db_session):
    listing = make_listing(db_session, booking_mode="instant")
    booking = make_booking(db_session, listing)
    return make_payment(db_session, booking)


def reload_payment(db_session) -> ShortletPayment:
    db_session.expire_all()
    return db_session.query(ShortletPayment).first()


class TestReconcileHelpers:
    """Pure helpers"""

    @pytest.mark.parametrize("status,expected", [
        ("failed", True),
        ("abandoned", True),
        ("reversed", True),
        ("Cancelled", True),
        ("ongoing", False),
        ("pending", False),
        (None, False),
    ])
    def test_failure_markers(self, status, expected):
        assert should_mark_provider_failure(status) is expected

    @pytest.mark.parametrize("limit,expected", [
        (None, 50),
        (0, 50),
        (-4, 50),
        ("abc", 50),
        (10, 10),
        (5000, 200),
    ])
    def test_clamp_batch_limit(self, limit, expected):
        assert clamp_batch_limit(limit, 50) == expected

    def test_summary_record(self):
        summary = ReconcileSummary()
        summary.record("reconciled")
        summary.record("failed")
        summary.record("flagged")
        summary.record(None)

        assert summary.to_dict()["reconciled"] == 1
        assert summary.failed_marked == 1
        assert summary.flagged_for_reconcile == 1


class TestReconcileCandidates:
    """Which payments the sweep picks up"""

    def test_fresh_payment_not_scanned(self, db_session, service, now):
        listing = make_listing(db_session)
        booking = make_booking(db_session, listing)
        make_payment(db_session, booking, created_at=now - timedelta(minutes=1))

        summary = service.run(now=now)

        assert summary.scanned == 0

    def test_locked_payment_not_scanned(self, db_session, service, now):
        listing = make_listing(db_session)
        booking = make_booking(db_session, listing)
        make_payment(db_session, booking, reconcile_locked_until=now + timedelta(seconds=30))

        assert service.run(now=now).scanned == 0

    def test_flagged_fresh_payment_scanned(self, db_session, service, now):
        listing = make_listing(db_session)
        booking = make_booking(db_session, listing)
        make_payment(db_session, booking, created_at=now, needs_reconcile=True, reconcile_reason="amount_mismatch")

        assert service.run(now=now).scanned == 1

    def test_failed_payment_not_scanned(self, db_session, service, now):
        listing = make_listing(db_session)
        booking = make_booking(db_session, listing)
        make_payment(db_session, booking, status="failed")

        assert service.run(now=now).scanned == 0

    def test_claim_is_single_winner(self, db_session, service, stale_payment, now):
        payment = reload_payment(db_session)

        assert service.claim(payment, now) is True
        # second claim sees the bumped attempt count and the live lock
        assert service.claim(payment, now) is False

        payment = reload_payment(db_session)
        assert payment.verify_attempts == 1
        assert payment.reconcile_locked_until == now + timedelta(seconds=90)


class TestReconcileOutcomes:
    """Gateway answers and what the sweep does with them"""

    def test_paid_payment_confirms_booking(self, db_session, service, paystack_client, email_sender, stale_payment, now):
        summary = service.run(now=now)

        assert summary.scanned == 1
        assert summary.locked == 1
        assert summary.reconciled == 1
        payment = reload_payment(db_session)
        assert payment.status == "succeeded"
        assert payment.needs_reconcile is False
        assert payment.reconcile_locked_until is None
        assert db_session.query(ShortletBooking).first().status == "confirmed"
        assert email_sender.send.call_count == 2

    def test_abandoned_marks_failed(self, db_session, service, paystack_client, stale_payment, now):
        paystack_client.verify_transaction.return_value = verified(ok=False, status="abandoned")

        summary = service.run(now=now)

        assert summary.failed_marked == 1
        payment = reload_payment(db_session)
        assert payment.status == "failed"
        assert payment.reconcile_reason == "provider_not_paid"
        assert db_session.query(ShortletBooking).first().status == "pending_payment"

    def test_ongoing_is_flagged_with_retry_lock(self, db_session, service, paystack_client, stale_payment, now):
        paystack_client.verify_transaction.return_value = verified(ok=False, status="ongoing")

        summary = service.run(now=now)

        assert summary.flagged_for_reconcile == 1
        payment = reload_payment(db_session)
        assert payment.status == "initiated"
        assert payment.needs_reconcile is True
        assert payment.reconcile_reason == "provider_not_paid"
        assert payment.reconcile_locked_until == now + timedelta(seconds=60)

    def test_gateway_unreachable_is_flagged(self, db_session, service, paystack_client, stale_payment, now):
        paystack_client.verify_transaction.side_effect = GatewayError("Paystack request failed")

        summary = service.run(now=now)

        assert summary.flagged_for_reconcile == 1
        assert summary.errors == []
        assert reload_payment(db_session).reconcile_reason == "provider_verification_failed"

    def test_unexpected_error_is_collected(self, db_session, service, paystack_client, stale_payment, now):
        paystack_client.verify_transaction.side_effect = RuntimeError("boom")

        summary = service.run(now=now)

        assert summary.flagged_for_reconcile == 1
        assert len(summary.errors) == 1
        assert summary.errors[0].endswith(":boom")
        assert reload_payment(db_session).needs_reconcile is True

    def test_amount_mismatch_flagged(self, db_session, service, paystack_client, stale_payment, now):
        paystack_client.verify_transaction.return_value = verified(amount_minor=5)

        summary = service.run(now=now)

        assert summary.flagged_for_reconcile == 1
        assert reload_payment(db_session).reconcile_reason == "provider_mismatch"
        assert db_session.query(ShortletBooking).first().status == "pending_payment"

    def test_settled_payment_is_cleared(self, db_session, service, paystack_client, now):
        listing = make_listing(db_session)
        booking = make_booking(db_session, listing, status="confirmed")
        make_payment(db_session, booking, status="succeeded", needs_reconcile=True, reconcile_reason="amount_mismatch")

        summary = service.run(now=now)

        assert summary.skipped_terminal == 1
        assert paystack_client.verify_transaction.call_count == 0
        payment = reload_payment(db_session)
        assert payment.needs_reconcile is False
        assert payment.reconcile_reason is None

    def test_stripe_paid_session(self, db_session, service, stripe_gateway, now):
        listing = make_listing(db_session, booking_mode="request", country_code="GB", currency="USD")
        booking = make_booking(db_session, listing, total_amount_minor=30000, currency="USD")
        make_payment(db_session, booking, provider="stripe", provider_reference="cs_test_9")
        stripe_gateway.retrieve_checkout_session.return_value = StripeSessionResult(
            session_id="cs_test_9",
            status="complete",
            payment_status="paid",
            amount_total_minor=30000,
            currency="USD",
            payment_intent_id="pi_9",
        )

        summary = service.run(now=now)

        assert summary.reconciled == 1
        stripe_gateway.retrieve_checkout_session.assert_called_once_with("cs_test_9")
        assert db_session.query(ShortletBooking).first().status == "pending"

    def test_stripe_expired_session_marks_failed(self, db_session, service, stripe_gateway, now):
        listing = make_listing(db_session, country_code="GB", currency="USD")
        booking = make_booking(db_session, listing, total_amount_minor=30000, currency="USD")
        make_payment(db_session, booking, provider="stripe", provider_reference="cs_test_10")
        stripe_gateway.retrieve_checkout_session.return_value = StripeSessionResult(
            session_id="cs_test_10",
            status="expired",
            payment_status="unpaid",
            amount_total_minor=30000,
            currency="USD",
        )

        summary = service.run(now=now)

        # "unpaid" is not a terminal failure marker; the session is retried later
        assert summary.flagged_for_reconcile == 1
        assert reload_payment(db_session).status == "initiated"


class TestReconcileEndpoint:
    """Internal cron route"""

    def test_requires_cron_secret(self, client):
        assert client.post("/api/internal/shortlet/reconcile-payments").status_code == 401
        assert client.post(
            "/api/internal/shortlet/reconcile-payments",
            headers={"x-cron-secret": "wrong"},
        ).status_code == 401

    def test_empty_run(self, client):
        from conftest import CRON_SECRET

        response = client.post(
            "/api/internal/shortlet/reconcile-payments?limit=10",
            headers={"x-cron-secret": CRON_SECRET},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["scanned"] == 0
        assert body["failedMarked"] == 0
        assert body["skippedTerminal"] == 0

    def test_expire_and_complete_routes(self, client):
        from conftest import CRON_SECRET

        headers = {"x-cron-secret": CRON_SECRET}
        expired = client.post("/api/internal/shortlet/expire-bookings", headers=headers)
        completed = client.post("/api/internal/shortlet/complete-bookings", headers=headers)

        assert expired.json() == {"ok": True, "expired": 0, "bookingIds": []}
        assert completed.json() == {"ok": True, "completed": 0}
