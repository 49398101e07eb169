"""Time, date and interval helpers."""

import math
import re
from datetime import date, datetime

from .constants import MINUTES_PER_DAY, WEEKDAY_ALIASES
from .exceptions import InvalidDateFormatError, InvalidRangeError, InvalidTimeFormatError

TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})$")


def time_to_minutes(value: str, field: str | None = None) -> int:
    """Convert an HH:MM string to minutes since midnight.

    "24:00" is accepted as the end of the day.

    Args:
        value: Time string like "09:30"
        field: Field name used in the error message

    Returns:
        Minutes since midnight (0-1440)

    Raises:
        InvalidTimeFormatError: If the value is not a valid time
    """
    if not isinstance(value, str):
        raise InvalidTimeFormatError(value, field)
    match = TIME_PATTERN.match(value.strip())
    if not match:
        raise InvalidTimeFormatError(value, field)

    hours, minutes = int(match.group(1)), int(match.group(2))
    if minutes >= 60:
        raise InvalidTimeFormatError(value, field)
    total = hours * 60 + minutes
    if total > MINUTES_PER_DAY:
        raise InvalidTimeFormatError(value, field)
    return total


def minutes_to_time(minutes: int) -> str:
    """Convert minutes since midnight to an HH:MM string (e.g., 570 → '09:30')."""
    hours, mins = divmod(int(minutes), 60)
    return f"{hours:02d}:{mins:02d}"


def normalize_time(value: str, field: str | None = None) -> str:
    """Validate a time string and return it zero-padded."""
    return minutes_to_time(time_to_minutes(value, field))


def parse_date(value: date | str, field: str | None = None) -> date:
    """Parse an ISO date string (datetimes are truncated to their date).

    Raises:
        InvalidDateFormatError: If the value is not a valid date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise InvalidDateFormatError(value, field)
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError as e:
        raise InvalidDateFormatError(value, field) from e


def parse_datetime(value: datetime | str | None, field: str | None = None) -> datetime | None:
    """Parse an ISO datetime string; None passes through."""
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(value)
    except (TypeError, ValueError) as e:
        raise InvalidDateFormatError(value, field) from e


def normalize_weekday(weekday: int) -> int:
    """Normalize a weekday number so that 7 and 0 both mean Sunday.

    Raises:
        InvalidRangeError: If the weekday is outside 0-7
    """
    if isinstance(weekday, bool) or not isinstance(weekday, int) or not 0 <= weekday <= 7:
        raise InvalidRangeError(f"Invalid weekday: {weekday!r}. Must be 0-7")
    return WEEKDAY_ALIASES.get(weekday, weekday)


def weekday_of(day: date) -> int:
    """Weekday number of a date (0=Sunday ... 6=Saturday)."""
    return (day.weekday() + 1) % 7


def validate_range(start: int, end: int, what: str = "range") -> None:
    """Ensure a minute range is non-empty.

    Raises:
        InvalidRangeError: If start is not before end
    """
    if start >= end:
        raise InvalidRangeError(
            f"Invalid {what}: start {minutes_to_time(start)} "
            f"must be before end {minutes_to_time(end)}"
        )


def intervals_overlap(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    """Check whether two half-open intervals overlap.

    Empty intervals never overlap anything.
    """
    if a_start >= a_end or b_start >= b_end:
        return False
    return a_start < b_end and b_start < a_end


def merge_ranges(ranges: list[tuple[int, int]]) -> list[tuple[int, int]]:
    """Merge overlapping or touching ranges into maximal contiguous ranges.

    Args:
        ranges: List of (start, end) minute pairs, in any order

    Returns:
        Sorted list of disjoint, non-touching (start, end) pairs
    """
    merged: list[tuple[int, int]] = []
    for start, end in sorted(r for r in ranges if r[0] < r[1]):
        if merged and start <= merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged


def subtract_ranges(
    ranges: list[tuple[int, int]], removed: list[tuple[int, int]]
) -> list[tuple[int, int]]:
    """Remove every removed range from a set of ranges.

    Args:
        ranges: Ranges to cut
        removed: Ranges to cut out

    Returns:
        Sorted list of what is left
    """
    current = merge_ranges(ranges)
    for cut_start, cut_end in merge_ranges(removed):
        next_ranges = []
        for start, end in current:
            if not intervals_overlap(start, end, cut_start, cut_end):
                next_ranges.append((start, end))
                continue
            if start < cut_start:
                next_ranges.append((start, cut_start))
            if end > cut_end:
                next_ranges.append((cut_end, end))
        current = next_ranges
    return current


def intersect_ranges(
    a: list[tuple[int, int]], b: list[tuple[int, int]]
) -> list[tuple[int, int]]:
    """Intersection of two range sets."""
    result = []
    for a_start, a_end in merge_ranges(a):
        for b_start, b_end in merge_ranges(b):
            start, end = max(a_start, b_start), min(a_end, b_end)
            if start < end:
                result.append((start, end))
    return merge_ranges(result)


def round_up(minutes: float, increment: int) -> int:
    """Round a minute value up to the next multiple of increment."""
    if minutes <= 0:
        return 0
    return int(math.ceil(minutes / increment)) * increment
