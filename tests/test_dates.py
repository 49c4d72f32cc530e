"""
Tests for date key helpers

Tests cover:
- Strict YYYY-MM-DD parsing (no Feb 30, no unpadded parts)
- Day arithmetic across month/year/leap boundaries
- Comparison and night counts
"""

import pytest

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from shortlet.utils.dates import (
    parse_date_key,
    is_date_key,
    add_days,
    compare_date_keys,
    nights_between,
    iter_date_keys,
    date_key_to_epoch_day,
    epoch_day_to_date_key,
)


class TestParseDateKey:
    """Strict calendar parsing"""

    def test_valid_key(self):
        assert parse_date_key("2025-06-10") == (2025, 6, 10)

    @pytest.mark.parametrize("value", [
        "2024-02-30",
        "2023-02-29",
        "2024-13-01",
        "2024-2-3",
        "2024/02/03",
        "",
        None,
        20240203,
    ])
    def test_rejects_non_canonical(self, value):
        assert parse_date_key(value) is None
        assert is_date_key(value) is False

    def test_leap_day_accepted(self):
        assert is_date_key("2024-02-29")


class TestDayArithmetic:
    """Whole-day arithmetic, independent of timezone"""

    def test_add_days_across_month_and_year(self):
        assert add_days("2024-12-30", 3) == "2025-01-02"
        assert add_days("2024-02-28", 1) == "2024-02-29"
        assert add_days("2024-03-01", -1) == "2024-02-29"

    def test_add_days_invalid_key_unchanged(self):
        assert add_days("not-a-date", 5) == "not-a-date"

    @pytest.mark.parametrize("n", [-3650, -366, -1, 0, 1, 31, 365, 3650])
    def test_add_days_reverses(self, n):
        """addDays(d, n) then addDays(result, -n) returns d"""
        for key in ("2024-02-29", "2025-01-01", "1999-12-31"):
            assert add_days(add_days(key, n), -n) == key

    def test_epoch_day_round_trip(self):
        assert date_key_to_epoch_day("1970-01-01") == 0
        assert epoch_day_to_date_key(date_key_to_epoch_day("2025-06-15")) == "2025-06-15"

    def test_compare(self):
        assert compare_date_keys("2025-01-09", "2025-01-10") == -1
        assert compare_date_keys("2025-01-10", "2025-01-10") == 0
        assert compare_date_keys("2025-02-01", "2025-01-31") == 1

    def test_nights_between(self):
        assert nights_between("2025-03-30", "2025-04-02") == 3
        assert nights_between("2025-01-10", "2025-01-09") == -1
        assert nights_between("2025-01-10", "bad") is None

    def test_iter_date_keys_half_open(self):
        assert list(iter_date_keys("2025-06-29", "2025-07-02")) == [
            "2025-06-29", "2025-06-30", "2025-07-01",
        ]
        assert list(iter_date_keys("2025-06-29", "2025-06-29")) == []


class TestCalendarEdges:
    """Keys at 0001-01-01 and 9999-12-31 never overflow"""

    @pytest.mark.parametrize("n", [-3650, -1, 1, 3650])
    def test_add_days_reverses_away_from_edges(self, n):
        for key in ("0011-01-01", "9989-12-31"):
            assert add_days(add_days(key, n), -n) == key

    def test_add_days_stops_at_last_day(self):
        assert add_days("9999-12-30", 1) == "9999-12-31"
        assert add_days("9999-06-01", 3650) == "9999-12-31"

    def test_add_days_stops_at_first_day(self):
        assert add_days("0001-01-05", -10) == "0001-01-01"

    def test_epoch_day_outside_calendar(self):
        last = date_key_to_epoch_day("9999-12-31")
        first = date_key_to_epoch_day("0001-01-01")

        assert epoch_day_to_date_key(last) == "9999-12-31"
        assert epoch_day_to_date_key(last + 1) is None
        assert epoch_day_to_date_key(first - 1) is None

    def test_iter_date_keys_through_last_day(self):
        assert list(iter_date_keys("9999-12-29", "9999-12-31")) == ["9999-12-29", "9999-12-30"]
