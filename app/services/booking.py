"""Booking validation and conflict detection.

Overlap checks are read-then-write, so every write that places an
appointment on a barber's day runs inside ``barber_day_locked``: a
conditional UPDATE on the ``ScheduleLock`` row for (barber, day). The UPDATE
holds a row lock on PostgreSQL and the database write lock on SQLite until
the transaction ends, so two bookings for the same barber and day are
checked and written one after the other.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterator, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from app.core.clock import Clock
from app.core.config import settings
from app.core.errors import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from app.models.appointment import Appointment, AppointmentCreate, AppointmentService
from app.models.barber import Barber
from app.models.schedule_lock import ScheduleLock
from app.models.service import Service
from app.models.shop import Shop
from app.models.user import User
from app.services.schedule import WeeklySchedule, load_schedule
from app.services.timeutils import (
    MINUTES_PER_DAY,
    from_minutes,
    minutes_overlap,
    to_minutes,
    weekday_of,
)

logger = logging.getLogger(__name__)


@dataclass
class ServiceSelection:
    services: List[Service]
    total_duration: int
    total_price: int


# =========================
# LOOKUPS
# =========================

def get_default_shop(session: Session) -> Shop:
    shop = session.exec(select(Shop).order_by(Shop.id)).first()
    if not shop:
        raise NotFoundError("No shop found in the system")
    return shop


def get_barber(session: Session, barber_id: int) -> Barber:
    """Active barber by id; removed barbers are reported as missing."""
    barber = session.get(Barber, barber_id)
    if not barber or not barber.is_active:
        raise NotFoundError("Barber not found")
    return barber


def resolve_services(session: Session, service_ids: List[int]) -> ServiceSelection:
    if not service_ids:
        raise ValidationError("At least one service is required")

    # keep request order, drop repeats
    unique_ids = list(dict.fromkeys(service_ids))

    found = {
        s.id: s
        for s in session.exec(select(Service).where(col(Service.id).in_(unique_ids))).all()
    }

    services: List[Service] = []
    for service_id in unique_ids:
        service = found.get(service_id)
        if not service:
            raise NotFoundError(f"Service {service_id} not found")
        if not service.active:
            raise ConflictError(f"Service '{service.name}' is not available")
        services.append(service)

    return ServiceSelection(
        services=services,
        total_duration=sum(s.duration_minutes for s in services),
        total_price=sum(s.price for s in services),
    )


# =========================
# CRITICAL SECTION PER BARBER/DAY
# =========================

def lock_barber_day(session: Session, barber_id: int, day: date) -> None:
    bump = (
        update(ScheduleLock)
        .where(
            col(ScheduleLock.barber_id) == barber_id,
            col(ScheduleLock.day) == day,
        )
        .values(version=col(ScheduleLock.version) + 1)
        .execution_options(synchronize_session=False)
    )

    if session.connection().execute(bump).rowcount:
        return

    # first booking ever for this barber/day
    try:
        with session.begin_nested():
            session.add(ScheduleLock(barber_id=barber_id, day=day, version=1))
    except IntegrityError:
        # a concurrent writer inserted it first; queue behind its lock
        session.connection().execute(bump)


@contextmanager
def barber_day_locked(session: Session, barber_id: int, day: date) -> Iterator[None]:
    """Run the body while holding the (barber, day) lock.

    The body is expected to commit; any error rolls back and releases it.
    """
    try:
        lock_barber_day(session, barber_id, day)
        yield
    except Exception:
        session.rollback()
        raise


# =========================
# VALIDATION
# =========================

def busy_intervals(
    session: Session,
    barber_id: int,
    day: date,
    exclude_id: Optional[int] = None,
):
    """(id, start, end) of every non-cancelled appointment of the barber that day."""
    query = select(Appointment.id, Appointment.start_time, Appointment.end_time).where(
        col(Appointment.barber_id) == barber_id,
        col(Appointment.day) == day,
        col(Appointment.status) != "cancelled",
    )
    if exclude_id is not None:
        query = query.where(col(Appointment.id) != exclude_id)
    return session.exec(query).all()


def validate_window(
    session: Session,
    barber: Barber,
    schedule: WeeklySchedule,
    day: date,
    start_time: str,
    duration: int,
    now: datetime,
    exclude_id: Optional[int] = None,
    lead_minutes: int = settings.BOOKING_LEAD_MINUTES,
) -> str:
    """Check a proposed [start, start + duration) window; returns the end time."""
    if not barber.is_available:
        raise ConflictError("Barber is not available for booking")

    start = to_minutes(start_time)
    end = start + duration

    hours = schedule[weekday_of(day)]
    if hours.is_off:
        raise ConflictError(f"Barber does not work on {weekday_of(day).name.lower()} (day off)")

    today = now.date()
    if day < today:
        raise ValidationError("Cannot book an appointment in the past")
    if day == today and start < now.hour * 60 + now.minute + lead_minutes:
        raise ValidationError(
            f"Appointments must start at least {lead_minutes} minutes from now"
        )

    if end > MINUTES_PER_DAY:
        raise ValidationError("Appointment cannot run past midnight")

    if start < hours.start_minutes or end > hours.end_minutes:
        raise ConflictError(
            f"Appointment must be within working hours ({hours.start_time}-{hours.end_time})"
        )

    for _, busy_start, busy_end in busy_intervals(session, barber.id, day, exclude_id):
        if minutes_overlap(start, end, to_minutes(busy_start), to_minutes(busy_end)):
            raise ConflictError(
                f"Time slot conflicts with an existing appointment ({busy_start}-{busy_end})"
            )

    return from_minutes(end)


# =========================
# CREATE
# =========================

def create_appointment(
    session: Session,
    customer: User,
    payload: AppointmentCreate,
    clock: Clock,
) -> Appointment:
    if customer.role != "customer":
        raise PermissionDeniedError("Only customers can book appointments")

    shop = get_default_shop(session)
    barber = get_barber(session, payload.barber_id)
    selection = resolve_services(session, payload.service_ids)
    to_minutes(payload.start_time)

    with barber_day_locked(session, barber.id, payload.day):
        # availability may have been switched off while we waited
        session.refresh(barber)
        schedule = load_schedule(session, barber.id)

        end_time = validate_window(
            session,
            barber,
            schedule,
            payload.day,
            payload.start_time,
            selection.total_duration,
            clock.now(),
        )

        appointment = Appointment(
            customer_id=customer.id,
            barber_id=barber.id,
            shop_id=shop.id,
            day=payload.day,
            start_time=payload.start_time,
            end_time=end_time,
            total_price=selection.total_price,
            total_duration=selection.total_duration,
            notes=payload.notes,
        )
        session.add(appointment)
        session.flush()

        for service in selection.services:
            session.add(
                AppointmentService(
                    appointment_id=appointment.id,
                    service_id=service.id,
                    name_snapshot=service.name,
                    price_snapshot=service.price,
                    duration_snapshot=service.duration_minutes,
                )
            )

        session.commit()

    session.refresh(appointment)
    logger.info(
        "Appointment %s booked: barber=%s day=%s %s-%s customer=%s",
        appointment.id,
        barber.id,
        appointment.day,
        appointment.start_time,
        appointment.end_time,
        customer.id,
    )
    return appointment
