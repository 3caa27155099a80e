from typing import Optional
from datetime import date
from sqlmodel import SQLModel, Field, UniqueConstraint


class ScheduleLock(SQLModel, table=True):
    """One row per barber and day; bumping ``version`` serializes writers."""

    __table_args__ = (UniqueConstraint("barber_id", "day"),)

    id: Optional[int] = Field(default=None, primary_key=True)

    barber_id: int = Field(foreign_key="barber.id", index=True)
    day: date = Field(index=True)

    version: int = 0
