"""Appointment lifecycle.

    pending -> confirmed -> in-progress -> completed
    pending | confirmed -> cancelled
    pending | confirmed -> pending (reschedule)

Every transition re-reads the appointment, checks the actor, then writes
with ``UPDATE ... WHERE status IN (<allowed>)``. If the row moved in the
meantime nothing is written and a ``StateError`` reports the fresh status.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import update
from sqlmodel import Session, col, select

from app.core.clock import Clock, utcnow
from app.core.errors import NotFoundError, PermissionDeniedError, StateError
from app.models.appointment import Appointment, AppointmentReschedule
from app.models.barber import Barber
from app.models.user import User
from app.services.booking import barber_day_locked, validate_window
from app.services.notifications import Notifier, notify_safely
from app.services.schedule import load_schedule

logger = logging.getLogger(__name__)


TERMINAL_STATUSES = ("completed", "cancelled")


@dataclass(frozen=True)
class Transition:
    name: str
    sources: Tuple[str, ...]
    target: str


CONFIRM = Transition("confirm", ("pending",), "confirmed")
REJECT = Transition("reject", ("pending",), "cancelled")
START = Transition("start", ("confirmed",), "in-progress")
COMPLETE = Transition("complete", ("in-progress",), "completed")
CANCEL = Transition("cancel", ("pending", "confirmed"), "cancelled")
RESCHEDULE = Transition("reschedule", ("pending", "confirmed"), "pending")


# =========================
# HELPERS
# =========================

def load_appointment(session: Session, appointment_id: int) -> Appointment:
    appointment = session.get(Appointment, appointment_id)
    if not appointment:
        raise NotFoundError("Appointment not found")
    # never trust a status cached in the session
    session.refresh(appointment)
    return appointment


def is_assigned_barber(session: Session, appointment: Appointment, actor: User) -> bool:
    if actor.role != "barber":
        return False
    barber = session.get(Barber, appointment.barber_id)
    return barber is not None and barber.user_id == actor.id


def is_owner(appointment: Appointment, actor: User) -> bool:
    return actor.role == "customer" and appointment.customer_id == actor.id


def _require_barber(session: Session, appointment: Appointment, actor: User, verb: str) -> None:
    if not is_assigned_barber(session, appointment, actor):
        raise PermissionDeniedError(f"Only the assigned barber can {verb} this appointment")


def _state_error(transition: Transition, current: str) -> StateError:
    if current in TERMINAL_STATUSES:
        return StateError(
            f"Cannot {transition.name} an appointment that is already {current}", current
        )
    return StateError(f"Cannot {transition.name} an appointment that is {current}", current)


def _require_status(appointment: Appointment, transition: Transition) -> None:
    if appointment.status not in transition.sources:
        raise _state_error(transition, appointment.status)


def _apply(
    session: Session,
    appointment: Appointment,
    transition: Transition,
    values: Optional[Dict[str, Any]] = None,
) -> Appointment:
    """Conditional write; the caller must have checked the status already."""
    changes = dict(values or {})
    changes["status"] = transition.target
    changes["updated_at"] = utcnow()

    result = session.connection().execute(
        update(Appointment)
        .where(
            col(Appointment.id) == appointment.id,
            col(Appointment.status).in_(transition.sources),
        )
        .values(**changes)
        .execution_options(synchronize_session=False)
    )

    if result.rowcount != 1:
        session.rollback()
        current = session.exec(
            select(Appointment.status).where(col(Appointment.id) == appointment.id)
        ).one()
        raise _state_error(transition, current)

    session.commit()
    session.refresh(appointment)
    logger.info(
        "Appointment %s: %s -> %s (%s)",
        appointment.id,
        "/".join(transition.sources),
        transition.target,
        transition.name,
    )
    return appointment


# =========================
# BARBER
# =========================

def confirm(
    session: Session,
    appointment_id: int,
    actor: User,
    notifier: Notifier,
) -> Appointment:
    appointment = load_appointment(session, appointment_id)
    _require_barber(session, appointment, actor, "confirm")
    _require_status(appointment, CONFIRM)
    appointment = _apply(session, appointment, CONFIRM)

    customer = session.get(User, appointment.customer_id)
    notify_safely(
        "appointment confirmation",
        notifier.send_appointment_confirmation,
        {
            "appointment_id": appointment.id,
            "customer_name": customer.name if customer else None,
            "customer_email": customer.email if customer else None,
            "barber_name": actor.name,
            "day": appointment.day.isoformat(),
            "start_time": appointment.start_time,
            "end_time": appointment.end_time,
            "total_price": appointment.total_price,
        },
    )
    return appointment


def reject(
    session: Session,
    appointment_id: int,
    actor: User,
    reason: Optional[str] = None,
) -> Appointment:
    appointment = load_appointment(session, appointment_id)
    _require_barber(session, appointment, actor, "reject")
    _require_status(appointment, REJECT)
    return _apply(
        session,
        appointment,
        REJECT,
        {"cancel_reason": reason or "Rejected by barber", "cancelled_by": "barber"},
    )


def start(session: Session, appointment_id: int, actor: User) -> Appointment:
    appointment = load_appointment(session, appointment_id)
    _require_barber(session, appointment, actor, "start")
    _require_status(appointment, START)
    return _apply(session, appointment, START)


def complete(session: Session, appointment_id: int, actor: User) -> Appointment:
    appointment = load_appointment(session, appointment_id)
    _require_barber(session, appointment, actor, "complete")
    _require_status(appointment, COMPLETE)
    return _apply(session, appointment, COMPLETE)


# =========================
# CUSTOMER / ADMIN
# =========================

def cancel(
    session: Session,
    appointment_id: int,
    actor: User,
    reason: Optional[str] = None,
) -> Appointment:
    appointment = load_appointment(session, appointment_id)

    if not (is_owner(appointment, actor) or actor.role == "admin"):
        raise PermissionDeniedError("Only the customer or an admin can cancel this appointment")

    _require_status(appointment, CANCEL)
    return _apply(
        session,
        appointment,
        CANCEL,
        {
            "cancel_reason": reason or "Cancelled",
            "cancelled_by": "admin" if actor.role == "admin" else "customer",
        },
    )


def reschedule(
    session: Session,
    appointment_id: int,
    actor: User,
    payload: AppointmentReschedule,
    clock: Clock,
) -> Appointment:
    appointment = load_appointment(session, appointment_id)

    if not is_owner(appointment, actor):
        raise PermissionDeniedError("Only the customer can reschedule this appointment")

    _require_status(appointment, RESCHEDULE)

    barber = session.get(Barber, appointment.barber_id)
    if not barber:
        raise NotFoundError("Barber not found")

    with barber_day_locked(session, barber.id, payload.day):
        session.refresh(barber)
        session.refresh(appointment)
        _require_status(appointment, RESCHEDULE)

        end_time = validate_window(
            session,
            barber,
            load_schedule(session, barber.id),
            payload.day,
            payload.start_time,
            appointment.total_duration,
            clock.now(),
            exclude_id=appointment.id,
        )

        return _apply(
            session,
            appointment,
            RESCHEDULE,
            {"day": payload.day, "start_time": payload.start_time, "end_time": end_time},
        )
