"""
Payment Reconcile Sweep

Catches payments whose webhook never arrived or never finished:
- initiated payments older than the stale window
- payments flagged needs_reconcile by a webhook handler

Each candidate is claimed with a compare-and-set on verify_attempts and
reconcile_locked_until, re-verified against its gateway, and then marked
failed, confirmed, or flagged again with a shorter retry lock.
"""

import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from ..config import Settings
from ..errors import GatewayError, ProviderNotConfiguredError, ShortletError
from ..models.booking import ShortletBooking, PAID_STATUSES
from ..models.payment import ShortletPayment, PaymentProvider, PaymentStatus
from ..utils.db_helpers import compare_and_set, get_pending_with_skip_locked
from ..utils.logging_config import get_logger
from .notifications import ShortletNotifier
from .payments import BookingSnapshot, ShortletPaymentService
from .paystack_client import PaystackClient, get_paystack_client, parse_gateway_timestamp
from .stripe_gateway import StripeGateway, get_stripe_gateway

logger = get_logger(__name__)

MAX_BATCH_LIMIT = 200

RECONCILED = "reconciled"
FAILED = "failed"
FLAGGED = "flagged"

FAILURE_STATUS_MARKERS = ("fail", "abandon", "cancel", "revers", "declin")


def should_mark_provider_failure(status: Optional[str]) -> bool:
    """Gateway statuses that will never turn into a charge"""
    normalized = str(status or "").strip().lower()
    return any(marker in normalized for marker in FAILURE_STATUS_MARKERS)


def clamp_batch_limit(limit, default: int) -> int:
    try:
        value = int(limit) if limit is not None else default
    except (TypeError, ValueError):
        value = default
    if value <= 0:
        value = default
    return max(1, min(MAX_BATCH_LIMIT, value))


def _normalize_currency(value: Optional[str]) -> str:
    return (value or "").strip().upper()


@dataclass
class ReconcileSummary:
    ok: bool = True
    scanned: int = 0
    locked: int = 0
    reconciled: int = 0
    failed_marked: int = 0
    skipped_locked: int = 0
    skipped_terminal: int = 0
    flagged_for_reconcile: int = 0
    errors: List[str] = field(default_factory=list)

    def record(self, outcome: str) -> None:
        if outcome == RECONCILED:
            self.reconciled += 1
        elif outcome == FAILED:
            self.failed_marked += 1
        elif outcome == FLAGGED:
            self.flagged_for_reconcile += 1

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class PaymentReconcileService:
    def __init__(
        self,
        db: Session,
        settings: Settings,
        paystack_client: Optional[PaystackClient] = None,
        stripe_gateway: Optional[StripeGateway] = None,
        notifier: Optional[ShortletNotifier] = None,
    ):
        self.db = db
        self.settings = settings
        self.payments = ShortletPaymentService(db, settings)
        self.notifier = notifier or ShortletNotifier(db, settings)
        self.paystack_client = paystack_client
        self.stripe_gateway = stripe_gateway

    # ==================
    # Candidates
    # ==================

    def list_candidates(self, now: datetime, limit: int) -> List[ShortletPayment]:
        stale_before = now - timedelta(minutes=self.settings.reconcile_stale_minutes)
        return get_pending_with_skip_locked(
            self.db,
            ShortletPayment,
            and_(
                or_(
                    and_(
                        ShortletPayment.status == PaymentStatus.INITIATED.value,
                        ShortletPayment.created_at <= stale_before,
                    ),
                    and_(
                        ShortletPayment.status.in_([PaymentStatus.INITIATED.value, PaymentStatus.SUCCEEDED.value]),
                        ShortletPayment.needs_reconcile == True,
                    ),
                ),
                or_(
                    ShortletPayment.reconcile_locked_until == None,
                    ShortletPayment.reconcile_locked_until <= now,
                ),
            ),
            order_by=ShortletPayment.created_at.asc(),
            limit=limit,
        )

    def claim(self, payment: ShortletPayment, now: datetime) -> bool:
        """Take the candidate for this run; False when another worker got there first"""
        lock_until = now + timedelta(seconds=self.settings.reconcile_lock_seconds)
        attempts = int(payment.verify_attempts or 0)
        return compare_and_set(
            self.db,
            ShortletPayment,
            and_(
                ShortletPayment.id == payment.id,
                ShortletPayment.verify_attempts == attempts,
                or_(
                    ShortletPayment.reconcile_locked_until == None,
                    ShortletPayment.reconcile_locked_until <= now,
                ),
            ),
            {
                "verify_attempts": attempts + 1,
                "reconcile_locked_until": lock_until,
                "updated_at": now,
            },
        )

    # ==================
    # Sweep
    # ==================

    def run(self, limit: Optional[int] = None, now: Optional[datetime] = None) -> ReconcileSummary:
        now = now or datetime.utcnow()
        limit = clamp_batch_limit(limit, self.settings.reconcile_batch_limit)
        retry_lock = now + timedelta(seconds=self.settings.reconcile_retry_lock_seconds)
        summary = ReconcileSummary()

        candidates = self.list_candidates(now, limit)
        summary.scanned = len(candidates)

        for payment in candidates:
            payment_id = payment.id
            try:
                if not self.claim(payment, now):
                    summary.skipped_locked += 1
                    continue
                summary.locked += 1
                summary.record(self._reconcile_one(payment_id, summary, now, retry_lock))
            except Exception as e:
                self.db.rollback()
                message = str(e) or type(e).__name__
                logger.exception(f"Reconcile failed for payment {payment_id}: {message}")
                summary.errors.append(f"{payment_id}:{message}")
                try:
                    self.payments.flag_for_reconcile(payment_id, "provider_verification_failed", lock_until=retry_lock)
                    summary.flagged_for_reconcile += 1
                except Exception as flag_error:
                    self.db.rollback()
                    summary.errors.append(f"{payment_id}:flag_failed:{flag_error}")

        logger.log_with_context(
            logging.INFO,
            "Payment reconcile done",
            entity_type="reconcile_run",
            entity_id=None,
            scanned=summary.scanned,
            locked=summary.locked,
            reconciled=summary.reconciled,
            failed_marked=summary.failed_marked,
            flagged=summary.flagged_for_reconcile,
            skipped_locked=summary.skipped_locked,
            skipped_terminal=summary.skipped_terminal,
            errors=len(summary.errors),
        )
        return summary

    def _reconcile_one(self, payment_id: str, summary: ReconcileSummary, now: datetime, retry_lock: datetime) -> Optional[str]:
        payment = self.db.query(ShortletPayment).filter(ShortletPayment.id == payment_id).first()
        booking = self.db.query(ShortletBooking).filter(ShortletBooking.id == payment.booking_id).first()

        if booking is None:
            self.payments.flag_for_reconcile(payment.id, "booking_not_found", lock_until=retry_lock)
            return FLAGGED

        if payment.status == PaymentStatus.SUCCEEDED.value and booking.status in PAID_STATUSES:
            self.payments.clear_reconcile_state(payment.id, now)
            summary.skipped_terminal += 1
            return None

        if payment.provider == PaymentProvider.PAYSTACK.value:
            return self._reconcile_paystack(payment, booking, retry_lock)
        return self._reconcile_stripe(payment, booking, retry_lock)

    def _mismatch(self, booking: ShortletBooking, amount_minor, currency: Optional[str]) -> bool:
        amount = max(0, int(amount_minor or 0))
        if amount != int(booking.total_amount_minor or 0):
            return True
        return _normalize_currency(currency) != _normalize_currency(booking.currency)

    def _not_paid(self, payment: ShortletPayment, status: Optional[str], payload: Dict[str, Any], retry_lock: datetime) -> str:
        if should_mark_provider_failure(status):
            self.payments.mark_payment_failed(
                payment.provider,
                payment.provider_reference,
                payload,
                reconcile_reason="provider_not_paid",
            )
            return FAILED
        self.payments.flag_for_reconcile(payment.id, "provider_not_paid", lock_until=retry_lock, provider_payload=payload)
        return FLAGGED

    def _provider_unavailable(self, payment: ShortletPayment, retry_lock: datetime) -> str:
        self.payments.flag_for_reconcile(payment.id, "provider_verification_failed", lock_until=retry_lock)
        return FLAGGED

    def _confirm(self, payment: ShortletPayment, payload: Dict[str, Any], retry_lock: datetime, **values) -> str:
        try:
            paid = self.payments.mark_payment_succeeded_and_confirm_booking(
                provider=payment.provider,
                provider_reference=payment.provider_reference,
                provider_payload=payload,
                **values,
            )
        except ShortletError as e:
            self.db.rollback()
            reason = "booking_status_transition_failed" if e.code in (
                "booking_status_transition_failed", "booking_not_payable",
            ) else "provider_status_unknown"
            self.payments.flag_for_reconcile(payment.id, reason, lock_until=retry_lock, provider_payload=payload)
            return FLAGGED

        if not paid.ok:
            self.payments.flag_for_reconcile(payment.id, "provider_status_unknown", lock_until=retry_lock, provider_payload=payload)
            return FLAGGED

        if paid.booking.transitioned:
            self._dispatch(paid.booking)
        return RECONCILED

    def _dispatch(self, snapshot: BookingSnapshot) -> None:
        try:
            self.notifier.dispatch_payment_success(snapshot)
        except Exception as e:
            self.db.rollback()
            logger.exception(f"Notification dispatch failed for booking {snapshot.booking_id}: {e}")

    def _reconcile_paystack(self, payment: ShortletPayment, booking: ShortletBooking, retry_lock: datetime) -> str:
        if not self.settings.paystack_configured:
            return self._provider_unavailable(payment, retry_lock)

        client = self.paystack_client or get_paystack_client(self.settings)
        try:
            verified = client.verify_transaction(payment.provider_reference)
        except GatewayError as e:
            logger.warning(f"Paystack verify failed for {payment.provider_reference}: {e}")
            return self._provider_unavailable(payment, retry_lock)

        payload = verified.raw or {}
        if not verified.ok:
            return self._not_paid(payment, verified.status, payload, retry_lock)

        if self._mismatch(booking, verified.amount_minor, verified.currency):
            self.payments.flag_for_reconcile(payment.id, "provider_mismatch", lock_until=retry_lock, provider_payload=payload)
            return FLAGGED

        return self._confirm(
            payment,
            payload,
            retry_lock,
            paid_at=parse_gateway_timestamp(verified.paid_at),
            authorization_code=verified.authorization_code,
            email=verified.email,
            provider_tx_id=verified.transaction_id,
        )

    def _reconcile_stripe(self, payment: ShortletPayment, booking: ShortletBooking, retry_lock: datetime) -> str:
        if not self.settings.stripe_configured and self.stripe_gateway is None:
            return self._provider_unavailable(payment, retry_lock)

        try:
            gateway = self.stripe_gateway or get_stripe_gateway(self.settings)
            session = gateway.retrieve_checkout_session(payment.provider_reference)
        except (GatewayError, ProviderNotConfiguredError) as e:
            logger.warning(f"Stripe session lookup failed for {payment.provider_reference}: {e}")
            return self._provider_unavailable(payment, retry_lock)

        payload = {
            "id": session.session_id,
            "status": session.status,
            "payment_status": session.payment_status,
            "amount_total": session.amount_total_minor,
            "currency": session.currency,
            "payment_intent": session.payment_intent_id,
        }
        payment_status = (session.payment_status or "").lower()
        if payment_status != "paid":
            return self._not_paid(payment, payment_status, payload, retry_lock)

        if self._mismatch(booking, session.amount_total_minor, session.currency):
            self.payments.flag_for_reconcile(payment.id, "provider_mismatch", lock_until=retry_lock, provider_payload=payload)
            return FLAGGED

        return self._confirm(
            payment,
            payload,
            retry_lock,
            email=session.customer_email,
            provider_tx_id=session.payment_intent_id,
        )
