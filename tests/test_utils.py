"""Tests for utility functions."""

from datetime import date, datetime

import pytest

from room_coordinator.exceptions import (
    InvalidDateFormatError,
    InvalidRangeError,
    InvalidTimeFormatError,
)
from room_coordinator.utils import (
    intersect_ranges,
    intervals_overlap,
    merge_ranges,
    minutes_to_time,
    normalize_time,
    normalize_weekday,
    parse_date,
    parse_datetime,
    round_up,
    subtract_ranges,
    time_to_minutes,
    validate_range,
    weekday_of,
)


class TestTimeConversion:
    """Tests for time_to_minutes and minutes_to_time."""

    def test_morning(self):
        assert time_to_minutes("09:30") == 570

    def test_single_digit_hour(self):
        assert time_to_minutes("9:05") == 545

    def test_end_of_day(self):
        assert time_to_minutes("24:00") == 1440

    def test_invalid_minutes(self):
        with pytest.raises(InvalidTimeFormatError):
            time_to_minutes("10:75")

    def test_past_end_of_day(self):
        with pytest.raises(InvalidTimeFormatError):
            time_to_minutes("24:10")

    def test_garbage(self):
        with pytest.raises(InvalidTimeFormatError) as exc_info:
            time_to_minutes("noon", "start")
        assert "start" in str(exc_info.value)

    def test_not_a_string(self):
        with pytest.raises(InvalidTimeFormatError):
            time_to_minutes(930)

    def test_minutes_to_time(self):
        assert minutes_to_time(570) == "09:30"
        assert minutes_to_time(0) == "00:00"

    def test_normalize_time_pads(self):
        assert normalize_time("9:00") == "09:00"


class TestParseDate:
    """Tests for parse_date and parse_datetime."""

    def test_iso_string(self):
        assert parse_date("2025-03-03") == date(2025, 3, 3)

    def test_datetime_string_truncated(self):
        assert parse_date("2025-03-03T10:00:00") == date(2025, 3, 3)

    def test_datetime_value_truncated(self):
        assert parse_date(datetime(2025, 3, 3, 10, 0)) == date(2025, 3, 3)

    def test_invalid(self):
        with pytest.raises(InvalidDateFormatError):
            parse_date("03/03/2025")

    def test_parse_datetime_none(self):
        assert parse_datetime(None) is None

    def test_parse_datetime_invalid(self):
        with pytest.raises(InvalidDateFormatError):
            parse_datetime("yesterday")


class TestWeekdays:
    """Tests for weekday numbering (0=Sunday)."""

    def test_sunday_is_zero(self):
        assert weekday_of(date(2025, 3, 2)) == 0

    def test_saturday_is_six(self):
        assert weekday_of(date(2025, 3, 8)) == 6

    def test_seven_means_sunday(self):
        assert normalize_weekday(7) == 0

    def test_regular_weekday_unchanged(self):
        assert normalize_weekday(3) == 3

    def test_out_of_range(self):
        with pytest.raises(InvalidRangeError):
            normalize_weekday(8)

    def test_bool_rejected(self):
        with pytest.raises(InvalidRangeError):
            normalize_weekday(True)


class TestRanges:
    """Tests for interval helpers."""

    def test_validate_range_empty(self):
        with pytest.raises(InvalidRangeError):
            validate_range(600, 600)

    def test_validate_range_reversed(self):
        with pytest.raises(InvalidRangeError):
            validate_range(660, 600, "slot")

    def test_touching_intervals_do_not_overlap(self):
        assert not intervals_overlap(540, 600, 600, 660)

    def test_overlapping_intervals(self):
        assert intervals_overlap(540, 610, 600, 660)

    def test_empty_interval_never_overlaps(self):
        assert not intervals_overlap(600, 600, 540, 660)

    def test_merge_touching_and_overlapping(self):
        assert merge_ranges([(660, 720), (540, 600), (600, 630), (620, 650)]) == [
            (540, 650),
            (660, 720),
        ]

    def test_subtract_middle(self):
        assert subtract_ranges([(540, 720)], [(600, 660)]) == [(540, 600), (660, 720)]

    def test_subtract_everything(self):
        assert subtract_ranges([(540, 600)], [(500, 700)]) == []

    def test_intersect(self):
        assert intersect_ranges([(540, 720)], [(600, 800), (500, 560)]) == [
            (540, 560),
            (600, 720),
        ]

    def test_round_up(self):
        assert round_up(121, 10) == 130
        assert round_up(120, 10) == 120
        assert round_up(-5, 10) == 0
