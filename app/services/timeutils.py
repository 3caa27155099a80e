"""Wall-clock arithmetic on "HH:MM" strings.

All values are times of day in the shop's local time with no date attached;
the caller carries the calendar date separately. Intervals are half-open,
``[start, end)``.
"""

import re
from datetime import date
from enum import IntEnum

from app.core.errors import FormatError


MINUTES_PER_DAY = 24 * 60

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


class Weekday(IntEnum):
    # same numbering as date.weekday()
    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6


def weekday_of(day: date) -> Weekday:
    return Weekday(day.weekday())


def is_valid_time(value: str) -> bool:
    return isinstance(value, str) and _TIME_RE.match(value) is not None


def to_minutes(value: str) -> int:
    match = _TIME_RE.match(value) if isinstance(value, str) else None
    if match is None:
        raise FormatError(f"Invalid time '{value}', expected HH:MM")
    return int(match.group(1)) * 60 + int(match.group(2))


def from_minutes(total: int) -> str:
    total %= MINUTES_PER_DAY
    return f"{total // 60:02d}:{total % 60:02d}"


def add_minutes(value: str, minutes: int) -> str:
    """Add ``minutes`` to a wall-clock time.

    Wraps around midnight without tracking the day change
    (``add_minutes("23:30", 45) == "00:15"``); booking validation rejects
    windows that would cross midnight before this matters.
    """
    return from_minutes(to_minutes(value) + minutes)


def overlaps(start_a: str, end_a: str, start_b: str, end_b: str) -> bool:
    """True if [start_a, end_a) intersects [start_b, end_b)."""
    return minutes_overlap(
        to_minutes(start_a), to_minutes(end_a), to_minutes(start_b), to_minutes(end_b)
    )


def minutes_overlap(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    return start_a < end_b and start_b < end_a
