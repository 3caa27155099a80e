from dataclasses import dataclass
from datetime import date, datetime

import pytest

from app.services.availability import available_slots, day_availability
from app.services.schedule import DEFAULT_SCHEDULE, OFF_DAY, DaySchedule, WeeklySchedule


MONDAY_MORNING = datetime(2026, 10, 19, 8, 0)
TUESDAY = date(2026, 10, 20)
SUNDAY = date(2026, 10, 25)


@dataclass
class Booking:
    start_time: str
    end_time: str
    day: date = TUESDAY
    status: str = "pending"


def short_day_schedule():
    # every day 09:00-11:00
    return WeeklySchedule(tuple([DaySchedule("09:00", "11:00")] * 7))


def test_full_day_grid():
    slots = available_slots(DEFAULT_SCHEDULE, [], TUESDAY, MONDAY_MORNING)

    assert slots[0] == "09:00"
    assert slots[-1] == "17:30"
    assert len(slots) == 18


def test_day_off_has_no_slots():
    # a stray Sunday booking must not reopen the day
    stray = [Booking("10:00", "10:30", day=SUNDAY)]
    result = day_availability(DEFAULT_SCHEDULE, stray, SUNDAY, MONDAY_MORNING)

    assert result.slots == []
    assert result.reason == "day off"
    assert result.start_time is None


def test_booked_slots_are_removed():
    slots = available_slots(
        short_day_schedule(),
        [Booking("09:30", "10:00")],
        TUESDAY,
        MONDAY_MORNING,
    )
    assert slots == ["09:00", "10:00", "10:30"]


def test_partial_overlap_blocks_both_slots():
    slots = available_slots(
        short_day_schedule(),
        [Booking("09:15", "09:45")],
        TUESDAY,
        MONDAY_MORNING,
    )
    assert slots == ["10:00", "10:30"]


def test_cancelled_and_other_day_bookings_are_ignored():
    bookings = [
        Booking("09:00", "10:00", status="cancelled"),
        Booking("09:00", "10:00", day=date(2026, 10, 21)),
    ]
    slots = available_slots(short_day_schedule(), bookings, TUESDAY, MONDAY_MORNING)
    assert slots == ["09:00", "09:30", "10:00", "10:30"]


def test_today_drops_slots_inside_lead_time():
    now = datetime(2026, 10, 20, 9, 10)
    slots = available_slots(short_day_schedule(), [], TUESDAY, now)

    # 09:10 + 30 minutes lead -> first bookable start is 09:40
    assert slots == ["10:00", "10:30"]


def test_past_day_is_reported():
    result = day_availability(short_day_schedule(), [], date(2026, 10, 18), MONDAY_MORNING)

    assert result.slots == []
    assert result.reason == "date in the past"
    assert result.start_time == "09:00"


def test_fully_booked_day():
    result = day_availability(
        short_day_schedule(), [Booking("09:00", "11:00")], TUESDAY, MONDAY_MORNING
    )
    assert result.slots == []
    assert result.reason == "fully booked"


def test_custom_granularity():
    slots = available_slots(
        short_day_schedule(), [], TUESDAY, MONDAY_MORNING, granularity=45
    )
    assert slots == ["09:00", "09:45", "10:30"]


def test_granularity_must_be_positive():
    with pytest.raises(ValueError):
        day_availability(short_day_schedule(), [], TUESDAY, MONDAY_MORNING, granularity=0)


def test_weekly_schedule_needs_seven_days():
    with pytest.raises(ValueError):
        WeeklySchedule((OFF_DAY,) * 6)


def test_default_schedule_shape():
    as_dict = DEFAULT_SCHEDULE.as_dict()

    assert list(as_dict) == [
        "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"
    ]
    assert as_dict["sunday"]["is_off"] is True
    assert as_dict["saturday"] == {"start_time": "09:00", "end_time": "18:00", "is_off": False}
