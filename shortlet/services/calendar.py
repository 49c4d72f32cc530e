"""
Listing calendar loader

Turns booking and host-block rows into UnavailableRange values for the
availability engine. Rows never reach the engine directly.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

from sqlalchemy.orm import Session

from ..models.block import ShortletBlock
from ..models.booking import ShortletBooking, BLOCKING_STATUSES
from ..models.listing import ShortletListing
from ..utils.dates import add_days, date_key_to_date, to_date_key
from .availability import (
    BLOCK_SOURCE,
    BOOKING_SOURCE,
    UnavailableRange,
    apply_prep_buffer,
    expand_ranges_to_disabled_dates,
)

logger = logging.getLogger(__name__)

MAINTENANCE_SOURCE = "maintenance"


@dataclass
class ListingPolicy:
    min_nights: int = 1
    max_nights: Optional[int] = None
    prep_days: int = 0

    @classmethod
    def from_listing(cls, listing: ShortletListing) -> "ListingPolicy":
        return cls(
            min_nights=max(1, int(listing.min_nights or 1)),
            max_nights=int(listing.max_nights) if listing.max_nights else None,
            prep_days=max(0, int(listing.prep_days or 0)),
        )

    def to_dict(self) -> dict:
        return {
            "min_nights": self.min_nights,
            "max_nights": self.max_nights,
            "prep_days": self.prep_days,
        }


@dataclass
class ListingCalendar:
    blocked_ranges: List[UnavailableRange] = field(default_factory=list)
    booked_ranges: List[UnavailableRange] = field(default_factory=list)

    @property
    def all_ranges(self) -> List[UnavailableRange]:
        return self.blocked_ranges + self.booked_ranges

    def disabled_dates(self, prep_days: int = 0, from_key: Optional[str] = None, to_key: Optional[str] = None):
        """Blocked days with the turnover buffer already applied"""
        return expand_ranges_to_disabled_dates(
            apply_prep_buffer(self.all_ranges, prep_days),
            from_key,
            to_key,
        )


def block_source(reason: Optional[str]) -> str:
    if isinstance(reason, str) and "maint" in reason.strip().lower():
        return MAINTENANCE_SOURCE
    return BLOCK_SOURCE


def booking_to_range(booking: ShortletBooking) -> UnavailableRange:
    return UnavailableRange(
        start=to_date_key(booking.check_in),
        end=to_date_key(booking.check_out),
        source=BOOKING_SOURCE,
        booking_id=booking.id,
    )


def block_to_range(block: ShortletBlock) -> UnavailableRange:
    return UnavailableRange(
        start=to_date_key(block.date_from),
        end=to_date_key(block.date_to),
        source=block_source(block.reason),
    )


def load_listing_calendar(
    db: Session,
    listing_id: str,
    from_key: Optional[str] = None,
    to_key: Optional[str] = None,
    exclude_booking_id: Optional[str] = None,
    lookback_days: int = 0,
) -> ListingCalendar:
    """
    Blocks and blocking bookings touching the optional window.

    Bookings count only while pending, confirmed or completed; unpaid
    pending_payment rows do not hold the calendar. ``lookback_days`` widens
    the lower bound so a booking whose turnover buffer spills into the
    window is still loaded.
    """
    bookings = db.query(ShortletBooking).filter(
        ShortletBooking.listing_id == listing_id,
        ShortletBooking.status.in_(BLOCKING_STATUSES),
    )
    blocks = db.query(ShortletBlock).filter(ShortletBlock.listing_id == listing_id)

    window_from: Optional[date] = date_key_to_date(from_key) if from_key else None
    window_to: Optional[date] = date_key_to_date(to_key) if to_key else None
    if window_from:
        bookings = bookings.filter(
            ShortletBooking.check_out >= date_key_to_date(add_days(from_key, -max(0, lookback_days)))
        )
        blocks = blocks.filter(ShortletBlock.date_to >= window_from)
    if window_to:
        bookings = bookings.filter(ShortletBooking.check_in <= window_to)
        blocks = blocks.filter(ShortletBlock.date_from <= window_to)
    if exclude_booking_id:
        bookings = bookings.filter(ShortletBooking.id != exclude_booking_id)

    calendar = ListingCalendar(
        blocked_ranges=[block_to_range(row) for row in blocks.order_by(ShortletBlock.date_from).all()],
        booked_ranges=[booking_to_range(row) for row in bookings.order_by(ShortletBooking.check_in).all()],
    )
    logger.debug(
        f"Calendar for listing {listing_id}: {len(calendar.blocked_ranges)} blocks, "
        f"{len(calendar.booked_ranges)} bookings"
    )
    return calendar
