"""
Payment Webhook Reconciler

Drives shortlet bookings from gateway webhooks (Paystack, Stripe).

Each delivery goes through:
1. Ledger insert (duplicate payload / event id -> 200 duplicate, no work)
2. Signature verification (401 on failure, nothing mutated but the ledger row)
3. Event-type filter (unknown types are acknowledged and marked processed)
4. Re-verification against the gateway API; the payload's own status is not trusted
5. Guarded pending_payment transition; notifications only when it happened

Handlers never raise to the framework. Application failures are recorded on
the ledger row and answered with 200 so the gateway stops redelivering.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import stripe
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import Settings
from ..errors import ShortletError
from ..models.booking import ShortletBooking, PAID_STATUSES
from ..models.payment import ShortletPayment, PaymentProvider, PaymentStatus
from ..utils.logging_config import get_logger
from .notifications import ShortletNotifier
from .payments import BookingSnapshot, PaymentConfirmResult, ShortletPaymentService
from .paystack_client import PaystackClient, get_paystack_client, parse_gateway_timestamp, verify_paystack_signature
from .stripe_gateway import StripeGateway, get_stripe_gateway, resolve_stripe_reference
from .webhook_ledger import WebhookLedger, hash_webhook_payload

logger = get_logger(__name__)

PAYSTACK_CHARGE_SUCCESS = "charge.success"
PAYSTACK_CHARGE_FAILED = "charge.failed"
STRIPE_SESSION_COMPLETED = "checkout.session.completed"
STRIPE_SESSION_ASYNC_FAILED = "checkout.session.async_payment_failed"


@dataclass
class WebhookOutcome:
    """HTTP answer for one delivery"""
    status_code: int = 200
    body: Dict[str, Any] = field(default_factory=lambda: {"ok": True})


def _read_string(value) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


class _BaseWebhookHandler:
    provider: str = ""

    def __init__(self, db: Session, settings: Settings, notifier: Optional[ShortletNotifier] = None):
        self.db = db
        self.settings = settings
        self.ledger = WebhookLedger(db)
        self.payments = ShortletPaymentService(db, settings)
        self.notifier = notifier or ShortletNotifier(db, settings)

    def _record(self, outcome: str, ledger_id: Optional[str], **extra) -> None:
        logger.webhook_outcome(self.provider, ledger_id, outcome, **extra)

    def _fail(self, ledger_id: Optional[str], error: str, body: Optional[Dict[str, Any]] = None) -> WebhookOutcome:
        self.ledger.mark_failed(ledger_id, error)
        self._record("failed", ledger_id, error=error)
        return WebhookOutcome(200, body or {"ok": True})

    def _processed(self, ledger_id: Optional[str], body: Optional[Dict[str, Any]] = None, outcome: str = "processed") -> WebhookOutcome:
        self.ledger.mark_processed(ledger_id)
        self._record(outcome, ledger_id)
        return WebhookOutcome(200, body or {"ok": True})

    def _insert(self, **values):
        """Ledger insert; returns (result, outcome) where outcome short-circuits the delivery"""
        try:
            inserted = self.ledger.insert(provider=self.provider, **values)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception(f"{self.provider} webhook ledger insert failed: {e}")
            return None, WebhookOutcome(200, {"ok": False, "error": "webhook_insert_failed"})
        if inserted.duplicate:
            self._record("duplicate", inserted.id)
            return inserted, WebhookOutcome(200, {"ok": True, "duplicate": True})
        return inserted, None

    def _booking_already_paid(self, payment: ShortletPayment) -> bool:
        booking = self.db.query(ShortletBooking).filter(ShortletBooking.id == payment.booking_id).first()
        return bool(booking and booking.status in PAID_STATUSES)

    def _amount_mismatch(self, payment: ShortletPayment, amount_minor: int, currency: Optional[str]) -> bool:
        if int(amount_minor or 0) != int(payment.amount_total_minor or 0):
            return True
        return bool(currency) and currency.upper() != (payment.currency or "").upper()

    def _dispatch(self, snapshot: BookingSnapshot) -> None:
        try:
            self.notifier.dispatch_payment_success(snapshot)
        except Exception as e:
            # The transition is committed; a notification failure must not flip the outcome
            self.db.rollback()
            logger.exception(f"Notification dispatch failed for booking {snapshot.booking_id}: {e}")

    def _confirm(self, ledger_id: Optional[str], **values) -> WebhookOutcome:
        """Mark the payment succeeded and run the guarded booking transition"""
        try:
            paid = self.payments.mark_payment_succeeded_and_confirm_booking(provider=self.provider, **values)
        except ShortletError as e:
            # Paid, but the booking can no longer move (cancelled, expired...)
            self.db.rollback()
            payment = self.payments.get_payment_by_reference(self.provider, values["provider_reference"])
            if payment is not None:
                self.payments.flag_for_reconcile(payment.id, e.code)
            return self._fail(ledger_id, e.code, {"ok": True, "status": e.code})
        return self._finish_confirmation(ledger_id, paid)

    def _finish_confirmation(self, ledger_id: Optional[str], paid: PaymentConfirmResult) -> WebhookOutcome:
        if not paid.ok:
            return self._fail(ledger_id, paid.reason, {"ok": True, "status": paid.reason})

        if paid.booking.transitioned:
            self._dispatch(paid.booking)

        return self._processed(
            ledger_id,
            {"ok": True, "idempotent": not paid.booking.transitioned},
            outcome="confirmed" if paid.booking.transitioned else "idempotent",
        )

    def _unexpected(self, ledger_id: Optional[str], error: Exception) -> WebhookOutcome:
        self.db.rollback()
        message = str(error) or type(error).__name__
        logger.exception(f"{self.provider} webhook processing failed: {message}")
        self.ledger.mark_failed(ledger_id, message)
        return WebhookOutcome(200, {"ok": False, "error": message})


class PaystackWebhookHandler(_BaseWebhookHandler):
    """
    Paystack deliveries: dedup by payload hash first, then HMAC-SHA512 check
    of x-paystack-signature, then charge.success / charge.failed handling.
    """

    provider = PaymentProvider.PAYSTACK.value

    def __init__(
        self,
        db: Session,
        settings: Settings,
        client: Optional[PaystackClient] = None,
        notifier: Optional[ShortletNotifier] = None,
    ):
        super().__init__(db, settings, notifier)
        self.client = client

    def _get_client(self) -> PaystackClient:
        if self.client is None:
            self.client = get_paystack_client(self.settings)
        return self.client

    def handle(self, raw_body: bytes, signature: Optional[str]) -> WebhookOutcome:
        if not self.settings.paystack_configured:
            return WebhookOutcome(503, {"error": "Paystack not configured."})

        payload_hash = hash_webhook_payload(raw_body)
        parsed: Optional[Dict[str, Any]] = None
        try:
            decoded = json.loads(raw_body)
            if isinstance(decoded, dict):
                parsed = decoded
            payload = decoded
        except ValueError:
            payload = {"parse_error": "invalid_json", "raw_body": raw_body.decode("utf-8", "replace")}

        event = (_read_string((parsed or {}).get("event")) or "").lower() or None
        data = (parsed or {}).get("data")
        reference = _read_string(data.get("reference")) if isinstance(data, dict) else None

        inserted, short_circuit = self._insert(
            payload=payload,
            payload_hash=payload_hash,
            event=event,
            reference=reference,
            signature=_read_string(signature),
        )
        if short_circuit:
            return short_circuit
        ledger_id = inserted.id

        if not verify_paystack_signature(raw_body, signature, self.settings.paystack_webhook_signing_secret):
            self.ledger.mark_failed(ledger_id, "invalid_signature")
            self._record("invalid_signature", ledger_id)
            return WebhookOutcome(401, {"error": "Invalid signature."})

        try:
            self.ledger.mark_processing(ledger_id)
            return self._process(ledger_id, parsed, event, reference)
        except Exception as e:
            return self._unexpected(ledger_id, e)

    def _process(self, ledger_id: str, parsed: Optional[Dict[str, Any]], event: Optional[str], reference: Optional[str]) -> WebhookOutcome:
        if parsed is None or not event or not reference:
            return self._fail(ledger_id, "invalid_payload_json" if parsed is None else "missing_reference_or_event")

        payment = self.db.query(ShortletPayment).filter(ShortletPayment.provider_reference == reference).first()
        if payment is None:
            return self._fail(ledger_id, "payment_not_found")
        if payment.provider != self.provider:
            return self._fail(ledger_id, "provider_mismatch")

        if event == PAYSTACK_CHARGE_FAILED:
            self.payments.mark_payment_failed(self.provider, reference, parsed)
            return self._processed(ledger_id)

        if event != PAYSTACK_CHARGE_SUCCESS:
            return self._processed(ledger_id, {"ok": True, "ignored": True}, outcome="ignored_event_type")

        if payment.status == PaymentStatus.SUCCEEDED.value and self._booking_already_paid(payment):
            return self._processed(ledger_id, {"ok": True, "idempotent": True}, outcome="idempotent")

        verified = self._get_client().verify_transaction(reference)

        if not verified.ok:
            self.payments.mark_payment_failed(self.provider, reference, verified.raw)
            return self._fail(ledger_id, "verification_failed", {"ok": True, "status": "verification_failed"})

        if self._amount_mismatch(payment, verified.amount_minor, verified.currency):
            self.payments.flag_for_reconcile(payment.id, "amount_mismatch")
            return self._fail(ledger_id, "amount_mismatch", {"ok": True, "status": "amount_mismatch"})

        return self._confirm(
            ledger_id,
            provider_reference=reference,
            provider_payload=verified.raw,
            paid_at=parse_gateway_timestamp(verified.paid_at),
            authorization_code=verified.authorization_code,
            email=verified.email,
            provider_tx_id=verified.transaction_id,
        )


class StripeWebhookHandler(_BaseWebhookHandler):
    """
    Stripe deliveries: stripe-signature is checked before the ledger insert,
    dedup is by payload hash and Stripe event id, and the checkout session is
    re-read from Stripe before a booking moves.
    """

    provider = PaymentProvider.STRIPE.value

    def __init__(
        self,
        db: Session,
        settings: Settings,
        gateway: Optional[StripeGateway] = None,
        notifier: Optional[ShortletNotifier] = None,
    ):
        super().__init__(db, settings, notifier)
        self.gateway = gateway

    def handle(self, raw_body: bytes, signature: Optional[str]) -> WebhookOutcome:
        if not _read_string(signature):
            return WebhookOutcome(401, {"error": "Missing signature."})
        if not self.settings.stripe_configured:
            return WebhookOutcome(503, {"error": "Stripe is not configured."})

        gateway = self.gateway or get_stripe_gateway(self.settings)
        try:
            gateway.construct_event(raw_body, signature)
        except (stripe.SignatureVerificationError, ValueError) as e:
            self._record("invalid_signature", None, error=str(e))
            return WebhookOutcome(401, {"error": "Invalid signature."})

        # construct_event verified these exact bytes
        event = json.loads(raw_body)
        event_type = (_read_string(event.get("type")) or "").lower()
        event_id = _read_string(event.get("id"))
        reference = resolve_stripe_reference(event)

        inserted, short_circuit = self._insert(
            payload=event,
            payload_hash=hash_webhook_payload(raw_body),
            event=event_type or None,
            event_id=event_id,
            reference=reference,
            signature=signature,
        )
        if short_circuit:
            return short_circuit
        ledger_id = inserted.id

        try:
            self.ledger.mark_processing(ledger_id)
            if not reference:
                return self._processed(ledger_id, {"ok": True, "ignored": True}, outcome="ignored_event_type")

            if event_type == STRIPE_SESSION_ASYNC_FAILED:
                self.payments.mark_payment_failed(self.provider, reference, event)
                return self._processed(ledger_id)

            if event_type != STRIPE_SESSION_COMPLETED:
                return self._processed(ledger_id, {"ok": True, "ignored": True}, outcome="ignored_event_type")

            return self._confirm_session(ledger_id, gateway, reference, event)
        except Exception as e:
            return self._unexpected(ledger_id, e)

    def _confirm_session(self, ledger_id: str, gateway: StripeGateway, reference: str, event: Dict[str, Any]) -> WebhookOutcome:
        session = gateway.retrieve_checkout_session(reference)
        if not session.paid:
            self.payments.mark_payment_failed(self.provider, reference, event)
            return self._processed(ledger_id, {"ok": True, "status": session.payment_status or "unpaid"})

        payment = self.payments.get_payment_by_reference(self.provider, reference)
        if payment is not None and self._amount_mismatch(payment, session.amount_total_minor, session.currency):
            self.payments.flag_for_reconcile(payment.id, "amount_mismatch")
            return self._fail(ledger_id, "amount_mismatch", {"ok": True, "status": "amount_mismatch"})

        return self._confirm(
            ledger_id,
            provider_reference=reference,
            provider_payload=event,
            email=session.customer_email,
            provider_tx_id=session.payment_intent_id,
        )
