from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session

from app.core.clock import Clock, get_clock
from app.core.security import (
    get_current_barber,
    get_current_customer,
    get_current_user,
    require_role,
)
from app.database import get_session
from app.models.appointment import (
    AppointmentCreate,
    AppointmentPage,
    AppointmentRead,
    AppointmentReschedule,
    ReasonIn,
)
from app.models.user import User
from app.services import lifecycle
from app.services.booking import create_appointment as book_appointment
from app.services.notifications import Notifier, get_notifier
from app.services.projections import appointment_read, get_appointment, list_appointments


router = APIRouter(prefix="/appointments", tags=["appointments"])


# =========================
# CREATE APPOINTMENT (CUSTOMER)
# =========================
@router.post("/", status_code=status.HTTP_201_CREATED, response_model=AppointmentRead)
def create_appointment(
    payload: AppointmentCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_customer),
    clock: Clock = Depends(get_clock),
):
    appointment = book_appointment(session, current_user, payload, clock)
    return appointment_read(session, appointment)


# =========================
# LIST APPOINTMENTS
# - customer: own bookings
# - barber: own agenda
# - admin: everything
# =========================
@router.get("/", response_model=AppointmentPage)
def list_my_appointments(
    status: Optional[str] = None,
    day: Optional[date] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    return list_appointments(
        session,
        current_user,
        status=status,
        day=day,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
    )


@router.get("/{appointment_id}", response_model=AppointmentRead)
def read_appointment(
    appointment_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    return get_appointment(session, appointment_id, current_user)


# =========================
# STATUS TRANSITIONS (BARBER)
# =========================
@router.patch("/{appointment_id}/confirm", response_model=AppointmentRead)
def confirm_appointment(
    appointment_id: int,
    session: Session = Depends(get_session),
    current_barber: User = Depends(get_current_barber),
    notifier: Notifier = Depends(get_notifier),
):
    appointment = lifecycle.confirm(session, appointment_id, current_barber, notifier)
    return appointment_read(session, appointment)


@router.patch("/{appointment_id}/reject", response_model=AppointmentRead)
def reject_appointment(
    appointment_id: int,
    payload: Optional[ReasonIn] = None,
    session: Session = Depends(get_session),
    current_barber: User = Depends(get_current_barber),
):
    reason = payload.reason if payload else None
    appointment = lifecycle.reject(session, appointment_id, current_barber, reason)
    return appointment_read(session, appointment)


@router.patch("/{appointment_id}/start", response_model=AppointmentRead)
def start_appointment(
    appointment_id: int,
    session: Session = Depends(get_session),
    current_barber: User = Depends(get_current_barber),
):
    appointment = lifecycle.start(session, appointment_id, current_barber)
    return appointment_read(session, appointment)


@router.patch("/{appointment_id}/complete", response_model=AppointmentRead)
def complete_appointment(
    appointment_id: int,
    session: Session = Depends(get_session),
    current_barber: User = Depends(get_current_barber),
):
    appointment = lifecycle.complete(session, appointment_id, current_barber)
    return appointment_read(session, appointment)


# =========================
# CANCEL (CUSTOMER OR ADMIN) / RESCHEDULE (CUSTOMER)
# =========================
@router.patch("/{appointment_id}/cancel", response_model=AppointmentRead)
def cancel_appointment(
    appointment_id: int,
    payload: Optional[ReasonIn] = None,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_role("customer", "admin")),
):
    reason = payload.reason if payload else None
    appointment = lifecycle.cancel(session, appointment_id, current_user, reason)
    return appointment_read(session, appointment)


@router.put("/{appointment_id}/reschedule", response_model=AppointmentRead)
def reschedule_appointment(
    appointment_id: int,
    payload: AppointmentReschedule,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_customer),
    clock: Clock = Depends(get_clock),
):
    appointment = lifecycle.reschedule(session, appointment_id, current_user, payload, clock)
    return appointment_read(session, appointment)
