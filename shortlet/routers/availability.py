"""
Shortlet availability - public calendar and pre-booking checks
"""
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session
from typing import Optional
from datetime import datetime

from ..config import Settings, get_settings
from ..database import get_db
from ..errors import ShortletError
from ..schemas.availability import (
    AvailabilityResponse, AvailabilityCheckRequest, AvailabilityCheckResponse,
    UnavailableRangeOut, ListingPolicyOut,
)
from ..services.booking_flow import BookingFlowService
from ..services.calendar import ListingPolicy, load_listing_calendar
from ..utils.dates import add_days, compare_date_keys, is_date_key, to_date_key
from ..utils.http_errors import to_http_exception
from ..utils.rate_limiter import limiter, get_rate_limit

router = APIRouter(prefix="/api/shortlet/availability", tags=["Shortlet Availability"])


def _policy_out(policy: ListingPolicy, booking_mode: str) -> ListingPolicyOut:
    return ListingPolicyOut(
        min_nights=policy.min_nights,
        max_nights=policy.max_nights,
        prep_days=policy.prep_days,
        booking_mode=booking_mode,
    )


@router.get("", response_model=AvailabilityResponse)
@limiter.limit(get_rate_limit("availability"))
def get_availability(
    request: Request,
    listing_id: str = Query(..., alias="listingId", min_length=1),
    window_from: Optional[str] = Query(None, alias="from"),
    window_to: Optional[str] = Query(None, alias="to"),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """
    Blocked and booked ranges for [from, to) plus the disabled nights a
    date picker should grey out. Malformed bounds fall back to defaults.
    """
    start = window_from if is_date_key(window_from) else to_date_key(datetime.utcnow().date())
    end = window_to if is_date_key(window_to) else add_days(start, settings.availability_window_days)
    if compare_date_keys(start, end) >= 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid availability window",
        )

    service = BookingFlowService(db, settings)
    try:
        listing = service.get_listing(listing_id)
    except ShortletError as e:
        raise to_http_exception(e)

    policy = ListingPolicy.from_listing(listing)
    calendar = load_listing_calendar(db, listing.id, start, end, lookback_days=policy.prep_days)

    return AvailabilityResponse(
        listing_id=listing.id,
        window_from=start,
        window_to=end,
        blocked_ranges=[UnavailableRangeOut(**r.to_dict()) for r in calendar.blocked_ranges],
        booked_ranges=[UnavailableRangeOut(**r.to_dict()) for r in calendar.booked_ranges],
        disabled_dates=sorted(calendar.disabled_dates(policy.prep_days, start, end)),
        policy=_policy_out(policy, listing.booking_mode),
    )


@router.post("/check", response_model=AvailabilityCheckResponse)
@limiter.limit(get_rate_limit("availability_check"))
def check_availability(
    request: Request,
    payload: AvailabilityCheckRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    service = BookingFlowService(db, settings)
    try:
        listing = service.get_listing(payload.listing_id)
    except ShortletError as e:
        raise to_http_exception(e)

    verdict = service.check_availability(listing, payload.check_in, payload.check_out)
    return AvailabilityCheckResponse(
        valid=verdict.valid,
        reason=verdict.reason,
        nights=verdict.nights,
        conflicting_dates=verdict.conflicting_dates,
        suggested_check_out=verdict.suggested_check_out,
    )
