# Services package
from .availability import (
    UnavailableRange, AvailabilityConflictResult, RangeValidationResult, RangeValidationReason,
    expand_ranges_to_disabled_dates, apply_prep_buffer, resolve_availability_conflicts,
    validate_range_selection, is_range_valid, next_valid_end_date
)
from .calendar import ListingCalendar, ListingPolicy, load_listing_calendar
from .paystack_client import PaystackClient, get_paystack_client, verify_paystack_signature
from .stripe_gateway import StripeGateway, get_stripe_gateway
from .payments import ShortletPaymentService, BookingSnapshot, PaymentConfirmResult, choose_payment_provider
from .notifications import ShortletNotifier, EmailSender
from .webhook_ledger import WebhookLedger, hash_webhook_payload
from .webhook_reconciler import PaystackWebhookHandler, StripeWebhookHandler, WebhookOutcome
from .checkout import CheckoutService, CheckoutResult
from .booking_flow import BookingFlowService, AvailabilityVerdict, CreatedBooking
from .payment_reconcile import PaymentReconcileService, ReconcileSummary

__all__ = [
    "UnavailableRange", "AvailabilityConflictResult", "RangeValidationResult", "RangeValidationReason",
    "expand_ranges_to_disabled_dates", "apply_prep_buffer", "resolve_availability_conflicts",
    "validate_range_selection", "is_range_valid", "next_valid_end_date",
    "ListingCalendar", "ListingPolicy", "load_listing_calendar",
    "PaystackClient", "get_paystack_client", "verify_paystack_signature",
    "StripeGateway", "get_stripe_gateway",
    "ShortletPaymentService", "BookingSnapshot", "PaymentConfirmResult", "choose_payment_provider",
    "ShortletNotifier", "EmailSender",
    "WebhookLedger", "hash_webhook_payload",
    "PaystackWebhookHandler", "StripeWebhookHandler", "WebhookOutcome",
    "CheckoutService", "CheckoutResult",
    "BookingFlowService", "AvailabilityVerdict", "CreatedBooking",
    "PaymentReconcileService", "ReconcileSummary",
]
