"""
Shortlet bookings - creation and host approval
"""
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session
import logging

from ..config import Settings, get_settings
from ..database import get_db
from ..errors import ShortletError, ProviderNotConfiguredError
from ..models.booking import ShortletBooking
from ..schemas.booking import BookingCreate, BookingRespond, BookingResponse, BookingCreateResponse
from ..services.booking_flow import BookingFlowService
from ..utils.dates import to_date_key
from ..utils.http_errors import to_http_exception
from ..utils.rate_limiter import limiter, get_rate_limit
from ..utils.security import Principal, require_roles, GUEST_ROLES, HOST_ROLES

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/shortlet/bookings", tags=["Shortlet Bookings"])


def booking_to_response(booking: ShortletBooking) -> BookingResponse:
    return BookingResponse(
        id=booking.id,
        listing_id=booking.listing_id,
        guest_user_id=booking.guest_user_id,
        host_user_id=booking.host_user_id,
        status=booking.status,
        booking_mode=booking.booking_mode,
        check_in=to_date_key(booking.check_in),
        check_out=to_date_key(booking.check_out),
        nights=booking.nights,
        total_amount_minor=booking.total_amount_minor,
        currency=booking.currency,
        expires_at=booking.expires_at,
        refund_required=bool(booking.refund_required),
        decline_reason=booking.decline_reason,
    )


@router.post("", response_model=BookingCreateResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(get_rate_limit("booking_create"))
def create_booking(
    request: Request,
    payload: BookingCreate,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    principal: Principal = Depends(require_roles(*GUEST_ROLES)),
):
    """
    Validate the stay against the live calendar and open a pending_payment booking.
    The response names the gateway the guest should pay through.
    """
    service = BookingFlowService(db, settings)
    try:
        created = service.create_booking(
            listing_id=payload.listing_id,
            guest_user_id=principal.user_id,
            check_in=payload.check_in,
            check_out=payload.check_out,
            guest_email=principal.email,
        )
    except ProviderNotConfiguredError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "No payment provider is available for this listing", "code": e.message},
        )
    except ShortletError as e:
        raise to_http_exception(e)

    return BookingCreateResponse(
        booking=booking_to_response(created.booking),
        payment_provider=created.payment_provider,
    )


@router.get("/pending-count")
def pending_count(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    principal: Principal = Depends(require_roles(*HOST_ROLES)),
):
    count = BookingFlowService(db, settings).count_pending_requests(principal.user_id)
    return {"ok": True, "pendingCount": count}


@router.post("/{booking_id}/respond")
@limiter.limit(get_rate_limit("booking_respond"))
def respond_to_booking(
    request: Request,
    booking_id: str,
    payload: BookingRespond,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    principal: Principal = Depends(require_roles(*HOST_ROLES)),
):
    """Host accepts or declines a paid request (pending -> confirmed | declined)"""
    service = BookingFlowService(db, settings)
    try:
        booking = service.get_booking(booking_id)
    except ShortletError as e:
        raise to_http_exception(e)

    if not principal.is_admin and booking.host_user_id != principal.user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")

    try:
        snapshot = service.respond(booking_id, payload.action.value, payload.reason)
    except ShortletError as e:
        logger.info(f"Respond on booking {booking_id} refused: {e.message}")
        raise to_http_exception(e)

    return {
        "ok": True,
        "booking": {
            "id": snapshot.booking_id,
            "status": snapshot.status,
            "listingId": snapshot.listing_id,
        },
    }
