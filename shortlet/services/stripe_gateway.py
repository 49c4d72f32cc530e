"""
Stripe Checkout gateway

Wraps the stripe SDK calls the booking flow needs:
- construct_event: signature verification of webhook deliveries
- retrieve_checkout_session: authoritative payment state for a session
- create_checkout_session: hosted checkout for a booking
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import stripe

from ..config import Settings
from ..errors import GatewayError, ProviderNotConfiguredError

logger = logging.getLogger(__name__)


@dataclass
class StripeSessionResult:
    session_id: str
    status: str
    payment_status: str
    amount_total_minor: int
    currency: str
    payment_intent_id: Optional[str] = None
    customer_email: Optional[str] = None
    url: Optional[str] = None

    @property
    def paid(self) -> bool:
        return self.payment_status == "paid"


def resolve_stripe_reference(event: Dict[str, Any]) -> Optional[str]:
    """
    Checkout session id an event refers to.

    checkout.session.* events carry the session itself; other objects
    (payment intents, charges) only know it through metadata.
    """
    data_object = ((event or {}).get("data") or {}).get("object")
    if not isinstance(data_object, dict):
        return None

    if str(event.get("type") or "").startswith("checkout.session."):
        session_id = data_object.get("id")
        return session_id if isinstance(session_id, str) and session_id else None

    metadata = data_object.get("metadata")
    if isinstance(metadata, dict):
        candidate = metadata.get("checkout_session_id")
        if isinstance(candidate, str) and candidate.strip():
            return candidate.strip()
    return None


def _session_result(session) -> StripeSessionResult:
    payment_intent = session.get("payment_intent")
    if isinstance(payment_intent, dict):
        payment_intent = payment_intent.get("id")
    details = session.get("customer_details") or {}
    return StripeSessionResult(
        session_id=session.get("id"),
        status=str(session.get("status") or ""),
        payment_status=str(session.get("payment_status") or "").lower(),
        amount_total_minor=int(session.get("amount_total") or 0),
        currency=str(session.get("currency") or "").upper(),
        payment_intent_id=payment_intent,
        customer_email=details.get("email") or session.get("customer_email"),
        url=session.get("url"),
    )


class StripeGateway:
    def __init__(self, secret_key: str, webhook_secret: Optional[str] = None):
        if not (secret_key or "").strip():
            raise ProviderNotConfiguredError("Stripe secret key is not configured")
        self.secret_key = secret_key.strip()
        self.webhook_secret = (webhook_secret or "").strip() or None

    def construct_event(self, raw_body: bytes, signature: str):
        """
        Verify the stripe-signature header and parse the event.

        Raises stripe.SignatureVerificationError (bad signature) or
        ValueError (unparseable body).
        """
        if not self.webhook_secret:
            raise ProviderNotConfiguredError("Stripe webhook secret is not configured")
        return stripe.Webhook.construct_event(raw_body, signature, self.webhook_secret)

    def retrieve_checkout_session(self, session_id: str) -> StripeSessionResult:
        try:
            session = stripe.checkout.Session.retrieve(session_id, api_key=self.secret_key)
        except stripe.StripeError as e:
            logger.warning(f"Stripe session retrieve failed for {session_id}: {e}")
            raise GatewayError(f"Stripe session lookup failed: {e.user_message or e}")
        return _session_result(session)

    def create_checkout_session(
        self,
        booking_id: str,
        amount_minor: int,
        currency: str,
        product_name: str,
        success_url: str,
        cancel_url: str,
        customer_email: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> StripeSessionResult:
        try:
            session = stripe.checkout.Session.create(
                api_key=self.secret_key,
                mode="payment",
                client_reference_id=booking_id,
                customer_email=customer_email,
                line_items=[{
                    "quantity": 1,
                    "price_data": {
                        "currency": currency.lower(),
                        "unit_amount": int(amount_minor),
                        "product_data": {"name": product_name},
                    },
                }],
                metadata={"booking_id": booking_id, **(metadata or {})},
                success_url=success_url,
                cancel_url=cancel_url,
            )
        except stripe.StripeError as e:
            logger.warning(f"Stripe checkout create failed for booking {booking_id}: {e}")
            raise GatewayError(f"Unable to start Stripe checkout: {e.user_message or e}")
        return _session_result(session)


def get_stripe_gateway(settings: Settings) -> StripeGateway:
    """Factory function to create the Stripe gateway from settings"""
    return StripeGateway(
        secret_key=settings.stripe_secret_key,
        webhook_secret=settings.stripe_webhook_secret,
    )
