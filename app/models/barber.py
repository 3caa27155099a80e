from typing import List, Optional
from datetime import datetime
from sqlmodel import SQLModel, Field

from app.core.clock import utcnow


class Barber(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)

    user_id: int = Field(foreign_key="user.id", unique=True, index=True)

    bio: Optional[str] = None

    # global switch: an unavailable barber takes no bookings
    is_available: bool = Field(default=True, index=True)

    # false once an admin removes the barber; appointments keep the reference
    is_active: bool = Field(default=True, index=True)

    created_at: datetime = Field(default_factory=utcnow)


class BarberCreate(SQLModel):
    user_id: int
    bio: Optional[str] = Field(default=None, max_length=500)


class BarberUpdate(SQLModel):
    bio: Optional[str] = Field(default=None, max_length=500)


class DayScheduleIn(SQLModel):
    weekday: int = Field(ge=0, le=6)
    start_time: str = "09:00"
    end_time: str = "18:00"
    is_off: bool = False


class ScheduleUpdate(SQLModel):
    days: List[DayScheduleIn]
