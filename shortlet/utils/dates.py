"""
Date key helpers

Calendar days travel through the booking engine as timezone-free
``YYYY-MM-DD`` strings. All arithmetic goes through whole UTC day counts
so a night count never depends on the server timezone.
"""

import re
from datetime import date, timedelta
from typing import Optional, Tuple

DATE_KEY_PATTERN = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")

_EPOCH = date(1970, 1, 1)
_FIRST_EPOCH_DAY = (date.min - _EPOCH).days
_LAST_EPOCH_DAY = (date.max - _EPOCH).days


def parse_date_key(value) -> Optional[Tuple[int, int, int]]:
    """
    Strict YYYY-MM-DD parse.

    Returns (year, month, day) or None for anything that is not a real
    calendar date (e.g. "2024-02-30", "2024-2-3", None).
    """
    if not isinstance(value, str):
        return None
    match = DATE_KEY_PATTERN.match(value)
    if not match:
        return None

    year, month, day = (int(part) for part in match.groups())
    try:
        parsed = date(year, month, day)
    except ValueError:
        return None

    if (parsed.year, parsed.month, parsed.day) != (year, month, day):
        return None
    return year, month, day


def is_date_key(value) -> bool:
    return parse_date_key(value) is not None


def date_key_to_date(value) -> Optional[date]:
    parsed = parse_date_key(value)
    if parsed is None:
        return None
    return date(*parsed)


def date_key_to_epoch_day(value) -> Optional[int]:
    """Whole days since 1970-01-01 for a valid key, else None"""
    parsed = date_key_to_date(value)
    if parsed is None:
        return None
    return (parsed - _EPOCH).days


def epoch_day_to_date_key(epoch_day: int) -> Optional[str]:
    """Key for a day count, or None when it falls outside 0001-01-01..9999-12-31"""
    epoch_day = int(epoch_day)
    if epoch_day < _FIRST_EPOCH_DAY or epoch_day > _LAST_EPOCH_DAY:
        return None
    return to_date_key(_EPOCH + timedelta(days=epoch_day))


def to_date_key(value: date) -> str:
    return f"{value.year:04d}-{value.month:02d}-{value.day:02d}"


def add_days(date_key: str, days: int) -> str:
    """
    Shift a key by ``days``. Invalid keys come back unchanged; a shift past
    either end of the calendar stops at 0001-01-01 or 9999-12-31.
    """
    epoch_day = date_key_to_epoch_day(date_key)
    if epoch_day is None:
        return date_key
    shifted = min(max(epoch_day + int(days), _FIRST_EPOCH_DAY), _LAST_EPOCH_DAY)
    return epoch_day_to_date_key(shifted)


def compare_date_keys(left: str, right: str) -> int:
    # Canonical keys sort lexicographically in calendar order
    if left == right:
        return 0
    return -1 if left < right else 1


def nights_between(check_in: str, check_out: str) -> Optional[int]:
    start = date_key_to_epoch_day(check_in)
    end = date_key_to_epoch_day(check_out)
    if start is None or end is None:
        return None
    return end - start


def iter_date_keys(start: str, stop: str):
    """Yield every key in the half-open range [start, stop)"""
    if not is_date_key(start) or not is_date_key(stop):
        return
    cursor = start
    while compare_date_keys(cursor, stop) < 0:
        yield cursor
        following = add_days(cursor, 1)
        if following == cursor:
            return
        cursor = following
