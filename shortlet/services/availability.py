"""
Availability Engine

Pure, in-memory checks over unavailable date ranges:
- Disabled-date projection for calendar pickers
- Prep (turnover) buffer after booking-sourced ranges
- Conflict detection for a candidate stay
- Ordered range validation (min/max nights, blocked nights)
- Next bookable checkout suggestion

Every range is half-open [start, end): a checkout day can be the next
guest's check-in day without colliding.
"""

import enum
from dataclasses import dataclass, field, replace
from typing import AbstractSet, Iterable, List, Optional, Set

from ..utils.dates import (
    add_days,
    compare_date_keys,
    date_key_to_epoch_day,
    epoch_day_to_date_key,
    is_date_key,
    iter_date_keys,
)

BOOKING_SOURCE = "booking"
BLOCK_SOURCE = "host_block"

DEFAULT_SEARCH_LIMIT_DAYS = 365


class RangeValidationReason(str, enum.Enum):
    MISSING_DATES = "missing_dates"
    INVALID_DATE = "invalid_date"
    CHECKOUT_BEFORE_CHECKIN = "checkout_before_checkin"
    MIN_NIGHTS = "min_nights"
    MAX_NIGHTS = "max_nights"
    INCLUDES_UNAVAILABLE_NIGHT = "includes_unavailable_night"


@dataclass(frozen=True)
class UnavailableRange:
    start: str
    end: str
    source: Optional[str] = None
    booking_id: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return (
            is_date_key(self.start)
            and is_date_key(self.end)
            and compare_date_keys(self.start, self.end) < 0
        )

    @property
    def is_booking_sourced(self) -> bool:
        return self.source == BOOKING_SOURCE or bool(self.booking_id)

    def overlaps(self, start: str, end: str) -> bool:
        return (
            compare_date_keys(self.start, end) < 0
            and compare_date_keys(start, self.end) < 0
        )

    def contains(self, date_key: str) -> bool:
        return (
            compare_date_keys(self.start, date_key) <= 0
            and compare_date_keys(date_key, self.end) < 0
        )

    def to_dict(self) -> dict:
        return {
            "start": self.start,
            "end": self.end,
            "source": self.source,
            "booking_id": self.booking_id,
        }


@dataclass
class AvailabilityConflictResult:
    has_conflict: bool = False
    conflicting_dates: List[str] = field(default_factory=list)
    conflicting_ranges: List[UnavailableRange] = field(default_factory=list)


@dataclass
class RangeValidationResult:
    valid: bool
    reason: Optional[RangeValidationReason] = None
    nights: Optional[int] = None


def _as_int(value) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return None


def normalize_min_nights(value) -> int:
    parsed = _as_int(value)
    return max(1, parsed) if parsed is not None else 1


def normalize_max_nights(value, min_nights: int) -> Optional[int]:
    parsed = _as_int(value)
    return max(min_nights, parsed) if parsed is not None else None


def expand_ranges_to_disabled_dates(
    ranges: Iterable[UnavailableRange],
    from_key: Optional[str] = None,
    to_key: Optional[str] = None,
) -> Set[str]:
    """
    Every blocked calendar day, optionally clipped to [from_key, to_key).

    Malformed or degenerate ranges are skipped so bad rows never break
    calendar rendering.
    """
    disabled: Set[str] = set()

    for item in ranges:
        if item is None or not item.is_valid:
            continue

        cursor = item.start
        stop = item.end
        if from_key and compare_date_keys(cursor, from_key) < 0:
            cursor = from_key
        if to_key and compare_date_keys(stop, to_key) > 0:
            stop = to_key
        if compare_date_keys(cursor, stop) >= 0:
            continue

        disabled.update(iter_date_keys(cursor, stop))

    return disabled


def apply_prep_buffer(ranges: Iterable[UnavailableRange], prep_days) -> List[UnavailableRange]:
    """Extend booking-sourced ranges by ``prep_days`` turnover days. Host blocks pass through."""
    normalized = max(0, _as_int(prep_days) or 0)
    ranges = list(ranges)
    if normalized < 1:
        return ranges

    return [
        replace(item, end=add_days(item.end, normalized)) if item.is_booking_sourced else item
        for item in ranges
    ]


def resolve_availability_conflicts(
    check_in: str,
    check_out: str,
    unavailable_ranges: Iterable[UnavailableRange],
    prep_days=0,
) -> AvailabilityConflictResult:
    """
    Nights of [check_in, check_out) that collide with the buffered ranges.

    A malformed or empty query is reported as conflict-free: rejecting it
    is validate_range_selection's job, and both run together on every
    booking path.
    """
    if not is_date_key(check_in) or not is_date_key(check_out):
        return AvailabilityConflictResult()
    if compare_date_keys(check_in, check_out) >= 0:
        return AvailabilityConflictResult()

    effective = [
        item
        for item in apply_prep_buffer(unavailable_ranges, prep_days)
        if item is not None and item.is_valid and item.overlaps(check_in, check_out)
    ]
    if not effective:
        return AvailabilityConflictResult()

    conflicting = [
        night
        for night in iter_date_keys(check_in, check_out)
        if any(item.contains(night) for item in effective)
    ]

    return AvailabilityConflictResult(
        has_conflict=bool(conflicting),
        conflicting_dates=sorted(conflicting),
        conflicting_ranges=effective,
    )


def validate_range_selection(
    check_in: Optional[str],
    check_out: Optional[str],
    disabled_dates: AbstractSet[str],
    min_nights=None,
    max_nights=None,
) -> RangeValidationResult:
    """
    Validate a candidate stay. Checks run in a fixed order and the first
    failure wins:

    1. missing_dates
    2. invalid_date
    3. checkout_before_checkin
    4. min_nights
    5. max_nights
    6. includes_unavailable_night
    """
    if not check_in or not check_out:
        return RangeValidationResult(False, RangeValidationReason.MISSING_DATES)

    start = date_key_to_epoch_day(check_in)
    end = date_key_to_epoch_day(check_out)
    if start is None or end is None:
        return RangeValidationResult(False, RangeValidationReason.INVALID_DATE)

    nights = end - start
    if nights < 1:
        return RangeValidationResult(False, RangeValidationReason.CHECKOUT_BEFORE_CHECKIN)

    minimum = normalize_min_nights(min_nights)
    if nights < minimum:
        return RangeValidationResult(False, RangeValidationReason.MIN_NIGHTS, nights)

    maximum = normalize_max_nights(max_nights, minimum)
    if maximum is not None and nights > maximum:
        return RangeValidationResult(False, RangeValidationReason.MAX_NIGHTS, nights)

    # The checkout day itself is not stayed
    for night in iter_date_keys(check_in, check_out):
        if night in disabled_dates:
            return RangeValidationResult(False, RangeValidationReason.INCLUDES_UNAVAILABLE_NIGHT, nights)

    return RangeValidationResult(True, None, nights)


def is_range_valid(check_in, check_out, disabled_dates, min_nights=None, max_nights=None) -> bool:
    return validate_range_selection(check_in, check_out, disabled_dates, min_nights, max_nights).valid


def next_valid_end_date(
    check_in: str,
    disabled_dates: AbstractSet[str],
    min_nights=None,
    max_nights=None,
    search_limit_days=DEFAULT_SEARCH_LIMIT_DAYS,
) -> Optional[str]:
    """First checkout after ``check_in`` that passes validation, or None within the search horizon."""
    start = date_key_to_epoch_day(check_in)
    if start is None:
        return None

    minimum = normalize_min_nights(min_nights)
    maximum = normalize_max_nights(max_nights, minimum)
    limit = _as_int(search_limit_days)
    limit = max(1, limit if limit is not None else DEFAULT_SEARCH_LIMIT_DAYS)

    for offset in range(minimum, limit + 1):
        if maximum is not None and offset > maximum:
            return None
        candidate = epoch_day_to_date_key(start + offset)
        if candidate is None:
            return None
        if is_range_valid(check_in, candidate, disabled_dates, minimum, maximum):
            return candidate

    return None
