"""Read models assembled after a write has committed.

Nothing here changes state; the lifecycle and booking services return bare
``Appointment`` rows and the routers project them for the client.
"""

from datetime import date
from typing import List, Optional

from sqlalchemy import func
from sqlmodel import Session, col, select

from app.core.errors import NotFoundError, PermissionDeniedError, ValidationError
from app.models.appointment import (
    Appointment,
    AppointmentPage,
    AppointmentRead,
    AppointmentService,
    PersonRead,
    ServiceLineRead,
)
from app.models.barber import Barber
from app.models.user import User
from app.services.lifecycle import is_assigned_barber


APPOINTMENT_STATUSES = ("pending", "confirmed", "in-progress", "completed", "cancelled")


def _person(user: Optional[User], fallback_id: int) -> PersonRead:
    if user is None:
        return PersonRead(id=fallback_id, name="(removed)")
    return PersonRead(id=user.id, name=user.name, email=user.email)


def appointment_read(session: Session, appointment: Appointment) -> AppointmentRead:
    customer = session.get(User, appointment.customer_id)

    barber = session.get(Barber, appointment.barber_id)
    barber_user = session.get(User, barber.user_id) if barber else None
    barber_person = PersonRead(
        id=appointment.barber_id,
        name=barber_user.name if barber_user else "(removed)",
    )

    lines = session.exec(
        select(AppointmentService)
        .where(col(AppointmentService.appointment_id) == appointment.id)
        .order_by(col(AppointmentService.id))
    ).all()

    return AppointmentRead(
        id=appointment.id,
        customer=_person(customer, appointment.customer_id),
        barber=barber_person,
        shop_id=appointment.shop_id,
        day=appointment.day,
        start_time=appointment.start_time,
        end_time=appointment.end_time,
        services=[
            ServiceLineRead(
                service_id=line.service_id,
                name=line.name_snapshot,
                price=line.price_snapshot,
                duration_minutes=line.duration_snapshot,
            )
            for line in lines
        ],
        total_price=appointment.total_price,
        total_duration=appointment.total_duration,
        status=appointment.status,
        payment_status=appointment.payment_status,
        notes=appointment.notes,
        cancel_reason=appointment.cancel_reason,
        cancelled_by=appointment.cancelled_by,
        created_at=appointment.created_at,
        updated_at=appointment.updated_at,
    )


def can_view(session: Session, appointment: Appointment, actor: User) -> bool:
    if actor.role == "admin":
        return True
    if actor.role == "customer":
        return appointment.customer_id == actor.id
    return is_assigned_barber(session, appointment, actor)


def get_appointment(session: Session, appointment_id: int, actor: User) -> AppointmentRead:
    appointment = session.get(Appointment, appointment_id)
    if not appointment:
        raise NotFoundError("Appointment not found")
    if not can_view(session, appointment, actor):
        raise PermissionDeniedError("You cannot view this appointment")
    return appointment_read(session, appointment)


def list_appointments(
    session: Session,
    actor: User,
    status: Optional[str] = None,
    day: Optional[date] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    page: int = 1,
    limit: int = 10,
) -> AppointmentPage:
    if status is not None and status not in APPOINTMENT_STATUSES:
        raise ValidationError("Invalid status value")
    if page < 1:
        raise ValidationError("Page must be a positive integer")
    if limit < 1 or limit > 100:
        raise ValidationError("Limit must be between 1 and 100")

    conditions = []

    # scope by role
    if actor.role == "customer":
        conditions.append(col(Appointment.customer_id) == actor.id)
    elif actor.role == "barber":
        barber = session.exec(select(Barber).where(col(Barber.user_id) == actor.id)).first()
        if not barber:
            return AppointmentPage(items=[], total=0, page=page, limit=limit)
        conditions.append(col(Appointment.barber_id) == barber.id)
    elif actor.role != "admin":
        raise PermissionDeniedError("You cannot list appointments")

    if status:
        conditions.append(col(Appointment.status) == status)
    if day:
        conditions.append(col(Appointment.day) == day)
    else:
        if start_date:
            conditions.append(col(Appointment.day) >= start_date)
        if end_date:
            conditions.append(col(Appointment.day) <= end_date)

    total = session.exec(
        select(func.count()).select_from(Appointment).where(*conditions)
    ).one()

    rows: List[Appointment] = session.exec(
        select(Appointment)
        .where(*conditions)
        .order_by(col(Appointment.day).desc(), col(Appointment.start_time))
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()

    return AppointmentPage(
        items=[appointment_read(session, a) for a in rows],
        total=total,
        page=page,
        limit=limit,
    )
