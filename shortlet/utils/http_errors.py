"""Translate service exceptions into HTTP responses"""

from fastapi import HTTPException, status

from ..errors import (
    ShortletError,
    BookingNotFoundError,
    ListingNotFoundError,
    BookingNotPayableError,
    InvalidBookingTransitionError,
    BookingUnavailableError,
    ProviderNotConfiguredError,
    GatewayError,
)

STATUS_BY_ERROR = (
    (BookingNotFoundError, status.HTTP_404_NOT_FOUND),
    (ListingNotFoundError, status.HTTP_404_NOT_FOUND),
    (BookingNotPayableError, status.HTTP_409_CONFLICT),
    (InvalidBookingTransitionError, status.HTTP_409_CONFLICT),
    (BookingUnavailableError, status.HTTP_409_CONFLICT),
    (ProviderNotConfiguredError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (GatewayError, status.HTTP_502_BAD_GATEWAY),
)


def to_http_exception(error: ShortletError) -> HTTPException:
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(error, error_type):
            break
    else:
        status_code = status.HTTP_400_BAD_REQUEST

    detail = {"error": error.message, "code": error.code}
    if isinstance(error, BookingUnavailableError):
        detail.update({
            "reason": error.reason,
            "nights": error.nights,
            "conflictingDates": error.conflicting_dates,
        })
    return HTTPException(status_code=status_code, detail=detail)
