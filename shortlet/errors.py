"""
Domain exceptions for the shortlet booking services.

Routers map these to HTTP responses; webhook handlers catch them and
record the failure on the ledger row instead.
"""

from typing import List, Optional


class ShortletError(Exception):
    """Base class for booking/payment service failures"""

    code = "shortlet_error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.code)
        self.message = message or self.code


class BookingNotFoundError(ShortletError):
    code = "booking_not_found"


class ListingNotFoundError(ShortletError):
    code = "listing_not_found"


class BookingNotPayableError(ShortletError):
    code = "booking_not_payable"

    def __init__(self, status: str):
        super().__init__(f"Booking is not payable in status {status}")
        self.status = status


class InvalidBookingTransitionError(ShortletError):
    code = "booking_status_transition_failed"

    def __init__(self, booking_id: str, expected: str, actual: Optional[str]):
        super().__init__(f"Booking {booking_id} expected {expected}, found {actual}")
        self.booking_id = booking_id
        self.expected = expected
        self.actual = actual


class BookingUnavailableError(ShortletError):
    code = "booking_unavailable"

    def __init__(self, reason: str, conflicting_dates: Optional[List[str]] = None, nights: Optional[int] = None):
        super().__init__(reason)
        self.reason = reason
        self.conflicting_dates = conflicting_dates or []
        self.nights = nights


class ProviderNotConfiguredError(ShortletError):
    code = "provider_not_configured"


class GatewayError(ShortletError):
    """Gateway HTTP call failed or returned an unusable answer"""

    code = "gateway_error"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
