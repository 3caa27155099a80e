from dataclasses import dataclass
from typing import Dict, Iterable, List, Tuple

from sqlmodel import Session, select

from app.core.errors import ValidationError
from app.models.working_hours import WorkingHours
from app.services.timeutils import Weekday, is_valid_time, to_minutes


@dataclass(frozen=True)
class DaySchedule:
    start_time: str = "09:00"
    end_time: str = "18:00"
    is_off: bool = False

    @property
    def start_minutes(self) -> int:
        return to_minutes(self.start_time)

    @property
    def end_minutes(self) -> int:
        return to_minutes(self.end_time)


OFF_DAY = DaySchedule(is_off=True)


@dataclass(frozen=True)
class WeeklySchedule:
    """Seven day schedules, indexed by ``Weekday``."""

    days: Tuple[DaySchedule, ...]

    def __post_init__(self):
        if len(self.days) != 7:
            raise ValueError("a weekly schedule needs exactly 7 days")

    def __getitem__(self, weekday: Weekday) -> DaySchedule:
        return self.days[int(weekday)]

    @classmethod
    def from_rows(cls, rows: Iterable[WorkingHours]) -> "WeeklySchedule":
        days: List[DaySchedule] = [OFF_DAY] * 7
        for row in rows:
            days[row.weekday] = DaySchedule(row.start_time, row.end_time, row.is_off)
        return cls(tuple(days))

    def as_dict(self) -> Dict[str, Dict]:
        return {
            weekday.name.lower(): {
                "start_time": day.start_time,
                "end_time": day.end_time,
                "is_off": day.is_off,
            }
            for weekday, day in zip(Weekday, self.days)
        }


# mon-sat 09:00-18:00, sunday off
DEFAULT_SCHEDULE = WeeklySchedule(tuple([DaySchedule()] * 6 + [OFF_DAY]))


def validate_day(weekday: int, day: DaySchedule) -> None:
    if weekday < 0 or weekday > 6:
        raise ValidationError("weekday must be 0..6")

    # an off day keeps whatever interval it had
    if day.is_off:
        return

    if not is_valid_time(day.start_time) or not is_valid_time(day.end_time):
        raise ValidationError(f"{Weekday(weekday).name.lower()}: times must be HH:MM")

    if day.end_minutes <= day.start_minutes:
        raise ValidationError(f"{Weekday(weekday).name.lower()}: end_time must be after start_time")


def load_schedule(session: Session, barber_id: int) -> WeeklySchedule:
    rows = session.exec(
        select(WorkingHours).where(WorkingHours.barber_id == barber_id)
    ).all()
    return WeeklySchedule.from_rows(rows)


def save_schedule(session: Session, barber_id: int, days: Dict[int, DaySchedule]) -> None:
    """Upsert the given weekdays; weekdays not listed are left untouched.

    The caller commits.
    """
    for weekday, day in days.items():
        validate_day(weekday, day)

    existing = {
        row.weekday: row
        for row in session.exec(
            select(WorkingHours).where(WorkingHours.barber_id == barber_id)
        ).all()
    }

    for weekday, day in days.items():
        row = existing.get(weekday)
        if row is None:
            row = WorkingHours(barber_id=barber_id, weekday=weekday)
        row.start_time = day.start_time
        row.end_time = day.end_time
        row.is_off = day.is_off
        session.add(row)
