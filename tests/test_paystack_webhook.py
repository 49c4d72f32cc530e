"""
Tests for the Paystack webhook handler

Tests cover:
- Duplicate delivery short-circuits and notifies exactly once
- Tampered body with a stale signature is rejected (401)
- Re-verification outcomes: success, failed, amount mismatch, gateway error
- charge.failed and unknown event types
- Missing configuration (503)
"""

import pytest
import hmac
import hashlib
import json
from unittest.mock import MagicMock, patch

from sqlalchemy.exc import IntegrityError

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from conftest import PAYSTACK_SECRET, make_listing, make_booking, make_payment
from shortlet.errors import GatewayError
from shortlet.models.booking import ShortletBooking
from shortlet.models.notification import ShortletNotification
from shortlet.models.payment import ShortletPayment
from shortlet.models.webhook_event import PaymentWebhookEvent
from shortlet.services.notifications import ShortletNotifier
from shortlet.services.paystack_client import PaystackVerifyResult
from shortlet.services.webhook_reconciler import PaystackWebhookHandler

REFERENCE = "shb_ps_test_ref_1"


def sign(body: bytes, secret: str = PAYSTACK_SECRET) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha512).hexdigest()


def charge_body(event="charge.success", reference=REFERENCE, **extra) -> bytes:
    payload = {"event": event, "data": {"reference": reference, "amount": 8000000, **extra}}
    return json.dumps(payload).encode("utf-8")


def verified(ok=True, status="success", amount_minor=8000000, currency="NGN"):
    return PaystackVerifyResult(
        ok=ok,
        status=status,
        amount_minor=amount_minor,
        currency=currency,
        paid_at="2026-03-01T10:00:00.000Z",
        authorization_code="AUTH_abc",
        email="guest@example.test",
        transaction_id="4099",
        raw={"status": True, "data": {"status": status, "amount": amount_minor}},
    )


@pytest.fixture
def paystack_client():
    client = MagicMock()
    client.verify_transaction.return_value = verified()
    return client


@pytest.fixture
def handler(db_session, settings, paystack_client, email_sender):
    notifier = ShortletNotifier(db_session, settings, email_sender=email_sender)
    return PaystackWebhookHandler(db_session, settings, client=paystack_client, notifier=notifier)


@pytest.fixture
def request_booking(db_session):
    listing = make_listing(db_session, booking_mode="request")
    booking = make_booking(db_session, listing)
    make_payment(db_session, booking, provider_reference=REFERENCE)
    return booking


class TestPaystackIdempotency:
    """Redelivery must never repeat side effects"""

    def test_duplicate_delivery_notifies_once(self, db_session, handler, paystack_client, email_sender, request_booking):
        body = charge_body()

        first = handler.handle(body, sign(body))
        second = handler.handle(body, sign(body))

        assert first.status_code == 200
        assert first.body == {"ok": True, "idempotent": False}
        assert second.status_code == 200
        assert second.body == {"ok": True, "duplicate": True}

        assert paystack_client.verify_transaction.call_count == 1
        # guest + host email, guest + host in-app notice
        assert email_sender.send.call_count == 2
        assert db_session.query(ShortletNotification).count() == 2
        assert db_session.query(PaymentWebhookEvent).count() == 1

    def test_redelivery_with_new_hash_is_idempotent(self, db_session, handler, paystack_client, email_sender, request_booking):
        body = charge_body()
        variant = charge_body(gateway_response="Approved")

        handler.handle(body, sign(body))
        outcome = handler.handle(variant, sign(variant))

        assert outcome.body == {"ok": True, "idempotent": True}
        assert paystack_client.verify_transaction.call_count == 1
        assert email_sender.send.call_count == 2
        assert db_session.query(PaymentWebhookEvent).count() == 2

    def test_request_booking_moves_to_pending(self, db_session, handler, request_booking):
        body = charge_body()

        handler.handle(body, sign(body))

        booking = db_session.query(ShortletBooking).filter(ShortletBooking.id == request_booking.id).first()
        payment = db_session.query(ShortletPayment).filter(ShortletPayment.booking_id == request_booking.id).first()
        event = db_session.query(PaymentWebhookEvent).first()

        assert booking.status == "pending"
        assert booking.expires_at is not None
        assert payment.status == "succeeded"
        assert payment.authorization_code == "AUTH_abc"
        assert payment.provider_tx_id == "4099"
        assert event.status == "processed"
        assert event.reference == REFERENCE
        assert event.event == "charge.success"

    def test_instant_booking_confirms(self, db_session, handler):
        listing = make_listing(db_session, booking_mode="instant")
        booking = make_booking(db_session, listing)
        make_payment(db_session, booking, provider_reference=REFERENCE)
        body = charge_body()

        handler.handle(body, sign(body))

        refreshed = db_session.query(ShortletBooking).filter(ShortletBooking.id == booking.id).first()
        types = {row.type for row in db_session.query(ShortletNotification).all()}
        assert refreshed.status == "confirmed"
        assert refreshed.expires_at is None
        assert types == {"shortlet_booking_instant_confirmed"}


class TestPaystackSignature:
    """Signature is checked before any state changes"""

    def test_tampered_body_rejected(self, db_session, handler, paystack_client, request_booking):
        original = charge_body()
        tampered = charge_body(amount_override=1)

        outcome = handler.handle(tampered, sign(original))

        assert outcome.status_code == 401
        assert paystack_client.verify_transaction.call_count == 0

        events = db_session.query(PaymentWebhookEvent).all()
        assert len(events) == 1
        assert events[0].status == "failed"
        assert events[0].error == "invalid_signature"

        booking = db_session.query(ShortletBooking).filter(ShortletBooking.id == request_booking.id).first()
        assert booking.status == "pending_payment"

    def test_missing_signature_rejected(self, handler, request_booking):
        outcome = handler.handle(charge_body(), None)
        assert outcome.status_code == 401

    def test_not_configured(self, db_session, settings, request_booking):
        unconfigured = settings.model_copy(update={"paystack_secret_key": "", "paystack_webhook_secret": ""})
        handler = PaystackWebhookHandler(db_session, unconfigured, client=MagicMock())

        outcome = handler.handle(charge_body(), "sig")

        assert outcome.status_code == 503
        assert db_session.query(PaymentWebhookEvent).count() == 0


class TestPaystackVerification:
    """The gateway's verify API is authoritative"""

    def test_verification_failed_marks_payment_failed(self, db_session, handler, paystack_client, email_sender, request_booking):
        paystack_client.verify_transaction.return_value = verified(ok=False, status="failed")
        body = charge_body()

        outcome = handler.handle(body, sign(body))

        assert outcome.status_code == 200
        assert outcome.body == {"ok": True, "status": "verification_failed"}

        payment = db_session.query(ShortletPayment).first()
        booking = db_session.query(ShortletBooking).first()
        event = db_session.query(PaymentWebhookEvent).first()
        assert payment.status == "failed"
        assert booking.status == "pending_payment"
        assert event.status == "failed"
        assert event.error == "verification_failed"
        assert email_sender.send.call_count == 0

    def test_amount_mismatch_flags_reconcile(self, db_session, handler, paystack_client, request_booking):
        paystack_client.verify_transaction.return_value = verified(amount_minor=100)
        body = charge_body()

        outcome = handler.handle(body, sign(body))

        assert outcome.body == {"ok": True, "status": "amount_mismatch"}
        payment = db_session.query(ShortletPayment).first()
        assert payment.status == "initiated"
        assert payment.needs_reconcile is True
        assert payment.reconcile_reason == "amount_mismatch"
        assert db_session.query(ShortletBooking).first().status == "pending_payment"

    def test_gateway_error_recorded_on_ledger(self, db_session, handler, paystack_client, request_booking):
        paystack_client.verify_transaction.side_effect = GatewayError("Paystack request failed: timeout")
        body = charge_body()

        outcome = handler.handle(body, sign(body))

        assert outcome.status_code == 200
        assert outcome.body["ok"] is False
        event = db_session.query(PaymentWebhookEvent).first()
        assert event.status == "failed"
        assert "timeout" in event.error

    def test_ledger_failure_is_not_a_duplicate(self, db_session, handler, paystack_client, request_booking):
        body = charge_body()
        failure = IntegrityError("INSERT INTO payment_webhook_events", {}, Exception("NOT NULL constraint failed"))

        with patch.object(db_session, "commit", side_effect=failure):
            outcome = handler.handle(body, sign(body))

        assert outcome.status_code == 200
        assert outcome.body == {"ok": False, "error": "webhook_insert_failed"}
        paystack_client.verify_transaction.assert_not_called()
        assert db_session.query(PaymentWebhookEvent).count() == 0

    def test_cancelled_booking_is_flagged(self, db_session, handler, request_booking):
        db_session.query(ShortletBooking).update({"status": "cancelled"})
        db_session.commit()
        body = charge_body()

        outcome = handler.handle(body, sign(body))

        assert outcome.status_code == 200
        assert outcome.body["status"] == "booking_not_payable"
        payment = db_session.query(ShortletPayment).first()
        assert payment.status == "succeeded"
        assert payment.needs_reconcile is True


class TestPaystackEventTypes:
    """Only charge.success / charge.failed drive state"""

    def test_charge_failed(self, db_session, handler, paystack_client, request_booking):
        body = charge_body(event="charge.failed")

        outcome = handler.handle(body, sign(body))

        assert outcome.body == {"ok": True}
        assert paystack_client.verify_transaction.call_count == 0
        assert db_session.query(ShortletPayment).first().status == "failed"
        assert db_session.query(PaymentWebhookEvent).first().status == "processed"

    def test_charge_failed_never_downgrades_success(self, db_session, handler, request_booking):
        success = charge_body()
        handler.handle(success, sign(success))

        failed = charge_body(event="charge.failed")
        handler.handle(failed, sign(failed))

        assert db_session.query(ShortletPayment).first().status == "succeeded"

    def test_unknown_event_ignored(self, db_session, handler, paystack_client, request_booking):
        body = charge_body(event="transfer.success")

        outcome = handler.handle(body, sign(body))

        assert outcome.body == {"ok": True, "ignored": True}
        assert paystack_client.verify_transaction.call_count == 0
        assert db_session.query(PaymentWebhookEvent).first().status == "processed"

    def test_unknown_reference(self, db_session, handler, request_booking):
        body = charge_body(reference="unknown-ref")

        outcome = handler.handle(body, sign(body))

        assert outcome.status_code == 200
        event = db_session.query(PaymentWebhookEvent).first()
        assert event.status == "failed"
        assert event.error == "payment_not_found"

    def test_invalid_json_still_recorded(self, db_session, handler):
        body = b"{not json"

        outcome = handler.handle(body, sign(body))

        assert outcome.status_code == 200
        event = db_session.query(PaymentWebhookEvent).first()
        assert event.status == "failed"
        assert event.error == "invalid_payload_json"


class TestPaystackWebhookEndpoint:
    """Route wiring: raw body and header reach the handler"""

    def test_bad_signature_401(self, client, db_session, request_booking):
        response = client.post(
            "/api/webhooks/paystack",
            content=charge_body(),
            headers={"x-paystack-signature": "0" * 128, "Content-Type": "application/json"},
        )
        assert response.status_code == 401

    def test_charge_failed_200(self, client, db_session, request_booking):
        body = charge_body(event="charge.failed")
        response = client.post(
            "/api/webhooks/paystack",
            content=body,
            headers={"x-paystack-signature": sign(body), "Content-Type": "application/json"},
        )

        assert response.status_code == 200
        assert response.json() == {"ok": True}
        assert db_session.query(ShortletPayment).first().status == "failed"

    def test_redelivery_burst_is_never_throttled(self, client, db_session, request_booking):
        from shortlet.utils.rate_limiter import limiter

        body = charge_body(event="charge.failed")
        limiter.enabled = True

        codes = {
            client.post(
                "/api/webhooks/paystack",
                content=body,
                headers={"x-paystack-signature": sign(body), "X-Forwarded-For": "203.0.113.9"},
            ).status_code
            for _ in range(5)
        }

        assert codes == {200}
        assert "shortlet.routers.webhooks.paystack_webhook" not in limiter._route_limits
        assert "shortlet.routers.webhooks.stripe_webhook" not in limiter._route_limits
        assert "shortlet.routers.bookings.create_booking" in limiter._route_limits
