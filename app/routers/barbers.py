import logging
from datetime import date
from typing import Dict

from fastapi import APIRouter, Depends, status
from sqlmodel import Session, col, select

from app.core.clock import Clock, get_clock
from app.core.config import settings
from app.core.errors import ConflictError, NotFoundError, PermissionDeniedError
from app.core.security import get_current_admin, get_current_user
from app.database import get_session
from app.models.appointment import Appointment
from app.models.barber import Barber, BarberCreate, BarberUpdate, ScheduleUpdate
from app.models.user import User
from app.services.availability import day_availability
from app.services.booking import get_barber
from app.services.schedule import DEFAULT_SCHEDULE, DaySchedule, load_schedule, save_schedule


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/barbers", tags=["barbers"])


def _barber_out(session: Session, barber: Barber) -> Dict:
    user = session.get(User, barber.user_id)
    return {
        "id": barber.id,
        "user_id": barber.user_id,
        "name": user.name if user else None,
        "bio": barber.bio,
        "is_available": barber.is_available,
        "is_active": barber.is_active,
        "working_hours": load_schedule(session, barber.id).as_dict(),
    }


# =========================
# PUBLIC
# =========================
@router.get("/")
def list_available_barbers(session: Session = Depends(get_session)):
    barbers = session.exec(
        select(Barber)
        .where(col(Barber.is_available) == True, col(Barber.is_active) == True)  # noqa: E712
        .order_by(Barber.id)
    ).all()
    return [_barber_out(session, b) for b in barbers]


# admin view: switched-off and removed barbers included
# declared before /{barber_id} so "all" is not read as an id
@router.get("/all")
def list_all_barbers(
    session: Session = Depends(get_session),
    current_admin: User = Depends(get_current_admin),
):
    barbers = session.exec(select(Barber).order_by(Barber.id)).all()
    return [_barber_out(session, b) for b in barbers]


@router.get("/{barber_id}")
def get_barber_detail(barber_id: int, session: Session = Depends(get_session)):
    return _barber_out(session, get_barber(session, barber_id))


# =========================
# AVAILABLE SLOTS
# GET /barbers/1/available-slots?day=2026-02-14
# =========================
@router.get("/{barber_id}/available-slots")
def get_available_slots(
    barber_id: int,
    day: date,
    session: Session = Depends(get_session),
    clock: Clock = Depends(get_clock),
) -> Dict:
    barber = get_barber(session, barber_id)

    response = {
        "barber_id": barber.id,
        "day": day.isoformat(),
        "slot_minutes": settings.SLOT_MINUTES,
    }

    if not barber.is_available:
        return {**response, "slots": [], "reason": "barber unavailable", "working_hours": None}

    appointments = session.exec(
        select(Appointment).where(
            col(Appointment.barber_id) == barber.id,
            col(Appointment.day) == day,
            col(Appointment.status) != "cancelled",
        )
    ).all()

    availability = day_availability(
        load_schedule(session, barber.id),
        appointments,
        day,
        clock.now(),
        granularity=settings.SLOT_MINUTES,
        lead_minutes=settings.BOOKING_LEAD_MINUTES,
    )

    working_hours = None
    if availability.start_time:
        working_hours = {"start": availability.start_time, "end": availability.end_time}

    return {
        **response,
        "slots": availability.slots,
        "reason": availability.reason,
        "working_hours": working_hours,
    }


# =========================
# ADMIN
# =========================
@router.post("/", status_code=status.HTTP_201_CREATED)
def create_barber(
    payload: BarberCreate,
    session: Session = Depends(get_session),
    current_admin: User = Depends(get_current_admin),
):
    user = session.get(User, payload.user_id)
    if not user:
        raise NotFoundError("User not found")

    existing = session.exec(select(Barber).where(col(Barber.user_id) == user.id)).first()
    if existing and existing.is_active:
        raise ConflictError("User is already a barber")

    user.role = "barber"
    if existing:
        # re-hire keeps the old id, schedule and appointment history
        existing.is_active = True
        existing.is_available = True
        if payload.bio is not None:
            existing.bio = payload.bio
        session.add(user)
        session.add(existing)
        session.commit()
        session.refresh(existing)
        logger.info("Barber %s reinstated (user %s)", existing.id, user.id)
        return _barber_out(session, existing)

    barber = Barber(user_id=user.id, bio=payload.bio)
    session.add(user)
    session.add(barber)
    session.flush()

    save_schedule(session, barber.id, dict(enumerate(DEFAULT_SCHEDULE.days)))

    session.commit()
    session.refresh(barber)
    return _barber_out(session, barber)


@router.patch("/{barber_id}/status")
def toggle_barber_status(
    barber_id: int,
    session: Session = Depends(get_session),
    current_admin: User = Depends(get_current_admin),
):
    barber = get_barber(session, barber_id)
    barber.is_available = not barber.is_available

    session.add(barber)
    session.commit()
    session.refresh(barber)
    return _barber_out(session, barber)


# soft removal: appointments keep pointing at the barber row
@router.delete("/{barber_id}")
def remove_barber(
    barber_id: int,
    session: Session = Depends(get_session),
    current_admin: User = Depends(get_current_admin),
):
    barber = get_barber(session, barber_id)
    barber.is_active = False
    barber.is_available = False

    session.add(barber)
    session.commit()
    session.refresh(barber)
    logger.info("Barber %s removed by admin %s", barber.id, current_admin.id)
    return _barber_out(session, barber)


# =========================
# BARBER (own profile) OR ADMIN
# =========================
@router.put("/{barber_id}/schedule")
def update_working_hours(
    barber_id: int,
    payload: ScheduleUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    barber = get_barber(session, barber_id)

    is_self = current_user.role == "barber" and barber.user_id == current_user.id
    if not (is_self or current_user.role == "admin"):
        raise PermissionDeniedError("You can only change your own schedule")

    days = {
        d.weekday: DaySchedule(start_time=d.start_time, end_time=d.end_time, is_off=d.is_off)
        for d in payload.days
    }
    save_schedule(session, barber.id, days)

    session.commit()
    return _barber_out(session, barber)


@router.put("/{barber_id}")
def update_barber(
    barber_id: int,
    payload: BarberUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    barber = get_barber(session, barber_id)

    is_self = current_user.role == "barber" and barber.user_id == current_user.id
    if not (is_self or current_user.role == "admin"):
        raise PermissionDeniedError("You can only edit your own profile")

    barber.sqlmodel_update(payload.model_dump(exclude_unset=True))
    session.add(barber)
    session.commit()
    session.refresh(barber)
    return _barber_out(session, barber)
