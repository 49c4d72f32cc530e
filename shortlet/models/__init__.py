# Models package
from .listing import ShortletListing, BookingMode
from .booking import ShortletBooking, BookingStatus, BLOCKING_STATUSES, PAID_STATUSES
from .block import ShortletBlock
from .payment import ShortletPayment, PaymentProvider, PaymentStatus
from .webhook_event import PaymentWebhookEvent, WebhookEventStatus
from .notification import ShortletNotification, NotificationType

__all__ = [
    "ShortletListing", "BookingMode",
    "ShortletBooking", "BookingStatus", "BLOCKING_STATUSES", "PAID_STATUSES",
    "ShortletBlock",
    "ShortletPayment", "PaymentProvider", "PaymentStatus",
    "PaymentWebhookEvent", "WebhookEventStatus",
    "ShortletNotification", "NotificationType",
]
