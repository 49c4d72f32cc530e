"""
Checkout initialization for pending_payment bookings.

Paystack: reference generated here, transaction initialized over the REST API.
Stripe: the Checkout Session id is the payment reference.
Either way the booking ends up with exactly one payment intent row.
"""

from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlencode

from sqlalchemy.orm import Session

from ..config import Settings
from ..errors import BookingNotFoundError, BookingNotPayableError, ProviderNotConfiguredError
from ..models.booking import ShortletBooking, BookingStatus, PAID_STATUSES
from ..models.payment import ShortletPayment, PaymentProvider, PaymentStatus
from ..utils.logging_config import get_logger
from .paystack_client import PaystackClient, get_paystack_client
from .payments import ShortletPaymentService, build_paystack_reference, is_nigeria_listing
from .stripe_gateway import StripeGateway, get_stripe_gateway

logger = get_logger(__name__)


@dataclass
class CheckoutResult:
    booking_id: str
    provider: str
    reference: str
    checkout_url: Optional[str]
    already_succeeded: bool = False


class CheckoutService:
    def __init__(
        self,
        db: Session,
        settings: Settings,
        paystack_client: Optional[PaystackClient] = None,
        stripe_gateway: Optional[StripeGateway] = None,
    ):
        self.db = db
        self.settings = settings
        self.payments = ShortletPaymentService(db, settings)
        self.paystack_client = paystack_client
        self.stripe_gateway = stripe_gateway

    def _payable_booking(self, booking_id: str, guest_user_id: str) -> ShortletBooking:
        booking = self.db.query(ShortletBooking).filter(
            ShortletBooking.id == booking_id,
            ShortletBooking.guest_user_id == guest_user_id,
        ).first()
        if booking is None:
            raise BookingNotFoundError("Booking not found")

        payment = self.db.query(ShortletPayment).filter(ShortletPayment.booking_id == booking.id).first()
        if booking.status in PAID_STATUSES or (payment and payment.status == PaymentStatus.SUCCEEDED.value):
            raise BookingNotPayableError(booking.status)
        if booking.status != BookingStatus.PENDING_PAYMENT.value:
            raise BookingNotPayableError(booking.status)
        return booking

    def _return_url(self, booking_id: str, provider: str, **extra) -> str:
        params = {"bookingId": booking_id, "provider": provider, **extra}
        return f"{self.settings.site_url.rstrip('/')}/payments/shortlet/return?{urlencode(params)}"

    def start_paystack(self, booking_id: str, guest_user_id: str, email: Optional[str]) -> CheckoutResult:
        if not (self.settings.shortlet_paystack_enabled and self.settings.paystack_configured):
            raise ProviderNotConfiguredError("Paystack checkout is currently disabled")

        booking = self._payable_booking(booking_id, guest_user_id)
        listing = booking.listing
        currency = "NGN" if listing and is_nigeria_listing(listing.country_code, listing.currency) else booking.currency

        reference = build_paystack_reference(booking.id)
        client = self.paystack_client or get_paystack_client(self.settings)
        transaction = client.initialize_transaction(
            amount_minor=int(booking.total_amount_minor),
            email=email or booking.guest_email or "",
            reference=reference,
            callback_url=self._return_url(booking.id, PaymentProvider.PAYSTACK.value, reference=reference),
            currency=currency,
            metadata={
                "booking_id": booking.id,
                "listing_id": booking.listing_id,
                "guest_user_id": booking.guest_user_id,
            },
        )

        _, already_succeeded = self.payments.upsert_payment_intent(
            booking,
            PaymentProvider.PAYSTACK.value,
            transaction.reference,
            {"access_code": transaction.access_code, "authorization_url": transaction.authorization_url},
        )
        logger.info(f"Paystack checkout started for booking {booking.id}")
        return CheckoutResult(
            booking_id=booking.id,
            provider=PaymentProvider.PAYSTACK.value,
            reference=transaction.reference,
            checkout_url=transaction.authorization_url,
            already_succeeded=already_succeeded,
        )

    def start_stripe(self, booking_id: str, guest_user_id: str, email: Optional[str]) -> CheckoutResult:
        if not (self.settings.shortlet_stripe_enabled and self.settings.stripe_configured):
            raise ProviderNotConfiguredError("Stripe checkout is currently disabled")

        booking = self._payable_booking(booking_id, guest_user_id)
        listing = booking.listing

        gateway = self.stripe_gateway or get_stripe_gateway(self.settings)
        session = gateway.create_checkout_session(
            booking_id=booking.id,
            amount_minor=int(booking.total_amount_minor),
            currency=booking.currency,
            product_name=(listing.title if listing else None) or "Shortlet stay",
            success_url=self._return_url(booking.id, PaymentProvider.STRIPE.value) + "&session_id={CHECKOUT_SESSION_ID}",
            cancel_url=self._return_url(booking.id, PaymentProvider.STRIPE.value, cancelled="1"),
            customer_email=email or booking.guest_email,
            metadata={"listing_id": booking.listing_id, "guest_user_id": booking.guest_user_id},
        )

        _, already_succeeded = self.payments.upsert_payment_intent(
            booking,
            PaymentProvider.STRIPE.value,
            session.session_id,
            {"checkout_url": session.url, "status": session.status},
        )
        logger.info(f"Stripe checkout started for booking {booking.id}")
        return CheckoutResult(
            booking_id=booking.id,
            provider=PaymentProvider.STRIPE.value,
            reference=session.session_id,
            checkout_url=session.url,
            already_succeeded=already_succeeded,
        )
