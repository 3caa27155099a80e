from typing import Optional
from sqlmodel import SQLModel, Field, UniqueConstraint


class WorkingHours(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("barber_id", "weekday"),)

    id: Optional[int] = Field(default=None, primary_key=True)

    barber_id: int = Field(foreign_key="barber.id", index=True)

    # 0=monday ... 6=sunday
    weekday: int = Field(index=True)

    # "HH:MM", shop-local wall clock
    start_time: str = "09:00"
    end_time: str = "18:00"

    # a day off overrides the interval above
    is_off: bool = False
