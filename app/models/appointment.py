from typing import List, Optional
from datetime import date, datetime
from sqlmodel import SQLModel, Field

from app.core.clock import utcnow


class Appointment(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)

    customer_id: int = Field(foreign_key="user.id", index=True)
    barber_id: int = Field(foreign_key="barber.id", index=True)
    shop_id: int = Field(foreign_key="shop.id", index=True)

    day: date = Field(index=True)
    start_time: str  # "HH:MM"
    end_time: str  # start_time + total_duration

    # FINANCIAL SNAPSHOT (taken at booking time)
    total_price: int
    total_duration: int

    # BOOKING STATUS
    status: str = Field(default="pending", index=True)
    # pending | confirmed | in-progress | completed | cancelled

    # PAYMENT STATUS
    payment_status: str = Field(default="unpaid", index=True)
    # unpaid | paid

    notes: Optional[str] = None

    cancel_reason: Optional[str] = None
    cancelled_by: Optional[str] = None
    # customer | barber | admin

    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)


class AppointmentService(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)

    appointment_id: int = Field(foreign_key="appointment.id", index=True)
    service_id: int = Field(foreign_key="service.id", index=True)

    name_snapshot: str
    price_snapshot: int
    duration_snapshot: int


# =========================
# REQUEST BODIES
# =========================

class AppointmentCreate(SQLModel):
    barber_id: int
    service_ids: List[int]
    day: date
    start_time: str  # "HH:MM"
    notes: Optional[str] = Field(default=None, max_length=500)


class AppointmentReschedule(SQLModel):
    day: date
    start_time: str  # "HH:MM"


class ReasonIn(SQLModel):
    reason: Optional[str] = Field(default=None, max_length=500)


# =========================
# READ PROJECTION
# =========================

class PersonRead(SQLModel):
    id: int
    name: str
    email: Optional[str] = None


class ServiceLineRead(SQLModel):
    service_id: int
    name: str
    price: int
    duration_minutes: int


class AppointmentRead(SQLModel):
    id: int
    customer: PersonRead
    barber: PersonRead
    shop_id: int
    day: date
    start_time: str
    end_time: str
    services: List[ServiceLineRead]
    total_price: int
    total_duration: int
    status: str
    payment_status: str
    notes: Optional[str] = None
    cancel_reason: Optional[str] = None
    cancelled_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class AppointmentPage(SQLModel):
    items: List[AppointmentRead]
    total: int
    page: int
    limit: int
