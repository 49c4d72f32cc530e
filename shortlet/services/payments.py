"""
Shortlet Payment Service

Payment intent bookkeeping and the payment -> booking transition:
- One payment row per booking (upsert keyed on booking_id)
- Failure marking never downgrades a succeeded payment
- confirm_booking_after_payment only moves a booking out of
  pending_payment, and reports whether this call did the move

The ``transitioned`` flag is what notification dispatch is gated on, so a
redelivered webhook can never re-send guest or host emails.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..config import Settings
from ..errors import BookingNotFoundError, BookingNotPayableError, InvalidBookingTransitionError
from ..models.booking import ShortletBooking, BookingStatus, PAID_STATUSES
from ..models.listing import ShortletListing, BookingMode
from ..models.payment import ShortletPayment, PaymentProvider, PaymentStatus
from ..utils.dates import to_date_key
from ..utils.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class BookingSnapshot:
    """Booking facts handed to notification dispatch after a payment edge."""
    booking_id: str
    listing_id: str
    guest_user_id: str
    host_user_id: str
    listing_title: Optional[str]
    city: Optional[str]
    check_in: str
    check_out: str
    nights: int
    total_amount_minor: int
    currency: str
    status: str
    booking_mode: str
    transitioned: bool
    guest_email: Optional[str] = None
    host_email: Optional[str] = None

    @classmethod
    def from_booking(cls, booking: ShortletBooking, status: str, transitioned: bool) -> "BookingSnapshot":
        listing = booking.listing
        return cls(
            booking_id=booking.id,
            listing_id=booking.listing_id,
            guest_user_id=booking.guest_user_id,
            host_user_id=booking.host_user_id,
            listing_title=listing.title if listing else None,
            city=listing.city if listing else None,
            check_in=to_date_key(booking.check_in),
            check_out=to_date_key(booking.check_out),
            nights=int(booking.nights or 0),
            total_amount_minor=int(booking.total_amount_minor or 0),
            currency=booking.currency or "NGN",
            status=status,
            booking_mode=booking.booking_mode or BookingMode.REQUEST.value,
            transitioned=transitioned,
            guest_email=booking.guest_email,
            host_email=listing.host_email if listing else None,
        )

    @property
    def is_confirmed(self) -> bool:
        return self.status in (BookingStatus.CONFIRMED.value, BookingStatus.COMPLETED.value)


@dataclass
class PaymentConfirmResult:
    ok: bool
    reason: Optional[str] = None
    payment: Optional[ShortletPayment] = None
    booking: Optional[BookingSnapshot] = None
    already_succeeded: bool = False


def is_nigeria_listing(country_code: Optional[str], currency: Optional[str]) -> bool:
    if (country_code or "").upper() == "NG":
        return True
    return (currency or "").upper() == "NGN"


def choose_payment_provider(listing: ShortletListing, settings: Settings) -> Optional[str]:
    """
    Paystack for Nigerian listings when enabled, otherwise Stripe when enabled.
    None means no provider can take this booking.
    """
    paystack_ready = settings.shortlet_paystack_enabled and settings.paystack_configured
    stripe_ready = settings.shortlet_stripe_enabled and settings.stripe_configured

    if is_nigeria_listing(listing.country_code, listing.currency) and paystack_ready:
        return PaymentProvider.PAYSTACK.value
    if stripe_ready:
        return PaymentProvider.STRIPE.value
    return None


def build_paystack_reference(booking_id: str, now: Optional[datetime] = None) -> str:
    now = now or datetime.utcnow()
    compact = booking_id.replace("-", "")[:20]
    return f"shb_ps_{compact}_{int(now.timestamp() * 1000)}"


def _dump_payload(payload: Optional[Dict[str, Any]]) -> str:
    return json.dumps(payload or {}, default=str)


class ShortletPaymentService:
    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.settings = settings

    def get_payment_by_reference(self, provider: str, reference: str) -> Optional[ShortletPayment]:
        return self.db.query(ShortletPayment).filter(
            ShortletPayment.provider == provider,
            ShortletPayment.provider_reference == reference,
        ).first()

    def upsert_payment_intent(
        self,
        booking: ShortletBooking,
        provider: str,
        provider_reference: str,
        provider_payload: Optional[Dict[str, Any]] = None,
    ):
        """
        Create or refresh the booking's payment intent.

        Returns (payment, already_succeeded). A succeeded payment is never
        overwritten by a fresh checkout attempt.
        """
        payment = self.db.query(ShortletPayment).filter(
            ShortletPayment.booking_id == booking.id
        ).first()
        if payment and payment.status == PaymentStatus.SUCCEEDED.value:
            return payment, True

        if payment is None:
            payment = ShortletPayment(booking_id=booking.id)
            self.db.add(payment)

        payment.provider = provider
        payment.provider_reference = provider_reference
        payment.status = PaymentStatus.INITIATED.value
        payment.amount_total_minor = int(booking.total_amount_minor or 0)
        payment.currency = booking.currency
        payment.provider_payload_json = _dump_payload(provider_payload)
        payment.needs_reconcile = False
        payment.reconcile_reason = None
        payment.updated_at = datetime.utcnow()

        booking.payment_reference = provider_reference
        self.db.commit()
        self.db.refresh(payment)

        logger.log_with_context(
            logging.INFO,
            f"Payment intent ready via {provider}",
            entity_type="shortlet_payment",
            entity_id=payment.id,
            booking_id=booking.id,
            reference=provider_reference,
        )
        return payment, False

    def mark_payment_failed(
        self,
        provider: str,
        provider_reference: str,
        provider_payload: Optional[Dict[str, Any]] = None,
        reconcile_reason: Optional[str] = None,
    ) -> int:
        """Mark the payment failed unless it already succeeded. The booking is left alone."""
        now = datetime.utcnow()
        count = self.db.query(ShortletPayment).filter(
            ShortletPayment.provider == provider,
            ShortletPayment.provider_reference == provider_reference,
            ShortletPayment.status != PaymentStatus.SUCCEEDED.value,
        ).update({
            "status": PaymentStatus.FAILED.value,
            "provider_payload_json": _dump_payload(provider_payload),
            "needs_reconcile": False,
            "reconcile_reason": reconcile_reason,
            "reconcile_locked_until": None,
            "last_verified_at": now,
            "updated_at": now,
        }, synchronize_session=False)
        self.db.commit()

        if count:
            logger.info(f"Marked {provider} payment {provider_reference} failed")
        return count

    def flag_for_reconcile(
        self,
        payment_id: str,
        reason: str,
        lock_until: Optional[datetime] = None,
        provider_payload: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Leave the payment for the reconcile sweep; lock_until delays the next attempt"""
        values = {
            "needs_reconcile": True,
            "reconcile_reason": reason,
            "reconcile_locked_until": lock_until,
            "updated_at": datetime.utcnow(),
        }
        if provider_payload is not None:
            values["provider_payload_json"] = _dump_payload(provider_payload)
        self.db.query(ShortletPayment).filter(
            ShortletPayment.id == payment_id
        ).update(values, synchronize_session=False)
        self.db.commit()
        logger.warning(f"Payment {payment_id} flagged for reconcile: {reason}")

    def clear_reconcile_state(self, payment_id: str, now: Optional[datetime] = None) -> None:
        now = now or datetime.utcnow()
        self.db.query(ShortletPayment).filter(
            ShortletPayment.id == payment_id
        ).update({
            "needs_reconcile": False,
            "reconcile_reason": None,
            "reconcile_locked_until": None,
            "last_verified_at": now,
            "updated_at": now,
        }, synchronize_session=False)
        self.db.commit()

    def confirm_booking_after_payment(
        self,
        booking_id: str,
        provider_reference: str,
        now: Optional[datetime] = None,
    ) -> BookingSnapshot:
        """
        Move a paid booking out of pending_payment.

        instant listings -> confirmed, request listings -> pending with a
        host response deadline. The update is conditioned on the booking
        still being pending_payment; losing that race is reported as
        ``transitioned=False``, not as an error.
        """
        booking = self.db.query(ShortletBooking).filter(ShortletBooking.id == booking_id).first()
        if booking is None:
            raise BookingNotFoundError(f"Booking {booking_id} not found")

        status = booking.status
        if status in PAID_STATUSES:
            return BookingSnapshot.from_booking(booking, status, transitioned=False)
        if status != BookingStatus.PENDING_PAYMENT.value:
            raise BookingNotPayableError(status)

        now = now or datetime.utcnow()
        if booking.booking_mode == BookingMode.INSTANT.value:
            next_status = BookingStatus.CONFIRMED.value
            expires_at = None
        else:
            next_status = BookingStatus.PENDING.value
            expires_at = now + timedelta(hours=self.settings.request_expiry_hours)

        count = self.db.query(ShortletBooking).filter(
            ShortletBooking.id == booking_id,
            ShortletBooking.status == BookingStatus.PENDING_PAYMENT.value,
        ).update({
            "status": next_status,
            "payment_reference": provider_reference,
            "expires_at": expires_at,
            "refund_required": False,
            "updated_at": now,
        }, synchronize_session=False)
        self.db.commit()

        # commit expired the instance; this reload sees the current row
        self.db.refresh(booking)

        if not count:
            if booking.status in PAID_STATUSES:
                logger.info(f"Booking {booking_id} already moved to {booking.status} by a concurrent delivery")
                return BookingSnapshot.from_booking(booking, booking.status, transitioned=False)
            raise InvalidBookingTransitionError(booking_id, BookingStatus.PENDING_PAYMENT.value, booking.status)

        logger.booking_status_changed(
            booking_id,
            BookingStatus.PENDING_PAYMENT.value,
            next_status,
            reference=provider_reference,
        )
        return BookingSnapshot.from_booking(booking, next_status, transitioned=True)

    def mark_payment_succeeded_and_confirm_booking(
        self,
        provider: str,
        provider_reference: str,
        provider_payload: Optional[Dict[str, Any]] = None,
        paid_at: Optional[datetime] = None,
        authorization_code: Optional[str] = None,
        email: Optional[str] = None,
        provider_tx_id: Optional[str] = None,
    ) -> PaymentConfirmResult:
        payment = self.get_payment_by_reference(provider, provider_reference)
        if payment is None:
            return PaymentConfirmResult(ok=False, reason="payment_not_found")

        already_succeeded = payment.status == PaymentStatus.SUCCEEDED.value
        if not already_succeeded:
            now = datetime.utcnow()
            self.db.query(ShortletPayment).filter(
                ShortletPayment.id == payment.id,
                ShortletPayment.status != PaymentStatus.SUCCEEDED.value,
            ).update({
                "status": PaymentStatus.SUCCEEDED.value,
                "provider_payload_json": _dump_payload(provider_payload),
                "paid_at": paid_at or now,
                "confirmed_at": now,
                "authorization_code": authorization_code or payment.authorization_code,
                "email": email or payment.email,
                "provider_tx_id": provider_tx_id or payment.provider_tx_id,
                "needs_reconcile": False,
                "reconcile_reason": None,
                "reconcile_locked_until": None,
                "last_verified_at": now,
                "updated_at": now,
            }, synchronize_session=False)
            self.db.commit()
            self.db.refresh(payment)

        booking = self.confirm_booking_after_payment(payment.booking_id, provider_reference)
        return PaymentConfirmResult(
            ok=True,
            payment=payment,
            booking=booking,
            already_succeeded=already_succeeded,
        )
