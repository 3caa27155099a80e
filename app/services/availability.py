"""Bookable start times for one barber on one day.

Everything here is pure: the schedule, the day's appointments and "now"
are passed in, nothing is read from or written to the store.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, List, Optional, Protocol, Set

from app.services.schedule import WeeklySchedule
from app.services.timeutils import from_minutes, minutes_overlap, to_minutes, weekday_of


DEFAULT_SLOT_MINUTES = 30
DEFAULT_LEAD_MINUTES = 30


class Booked(Protocol):
    day: date
    start_time: str
    end_time: str
    status: str


@dataclass
class DayAvailability:
    day: date
    slots: List[str] = field(default_factory=list)
    reason: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None


def _grid(start: int, end: int, step: int) -> List[int]:
    # half-open: the last slot starts strictly before end
    return list(range(start, end, step))


def _booked_slots(
    grid: List[int], appointments: Iterable[Booked], day: date, step: int
) -> Set[int]:
    booked: Set[int] = set()
    for appt in appointments:
        if appt.status == "cancelled" or appt.day != day:
            continue
        appt_start = to_minutes(appt.start_time)
        appt_end = to_minutes(appt.end_time)
        for slot in grid:
            if minutes_overlap(slot, slot + step, appt_start, appt_end):
                booked.add(slot)
    return booked


def day_availability(
    schedule: WeeklySchedule,
    appointments: Iterable[Booked],
    day: date,
    now: datetime,
    granularity: int = DEFAULT_SLOT_MINUTES,
    lead_minutes: int = DEFAULT_LEAD_MINUTES,
) -> DayAvailability:
    if granularity <= 0:
        raise ValueError("granularity must be positive")

    hours = schedule[weekday_of(day)]
    if hours.is_off:
        return DayAvailability(day=day, reason="day off")

    result = DayAvailability(day=day, start_time=hours.start_time, end_time=hours.end_time)

    today = now.date()
    if day < today:
        result.reason = "date in the past"
        return result

    grid = _grid(hours.start_minutes, hours.end_minutes, granularity)
    booked = _booked_slots(grid, appointments, day, granularity)
    free = [slot for slot in grid if slot not in booked]

    if day == today:
        cutoff = now.hour * 60 + now.minute + lead_minutes
        free = [slot for slot in free if slot >= cutoff]

    result.slots = [from_minutes(slot) for slot in free]
    if not result.slots:
        result.reason = "fully booked"
    return result


def available_slots(
    schedule: WeeklySchedule,
    appointments: Iterable[Booked],
    day: date,
    now: datetime,
    granularity: int = DEFAULT_SLOT_MINUTES,
    lead_minutes: int = DEFAULT_LEAD_MINUTES,
) -> List[str]:
    return day_availability(
        schedule, appointments, day, now, granularity, lead_minutes
    ).slots
