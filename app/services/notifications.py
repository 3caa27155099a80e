"""Outbound notifications.

Delivery is best effort: a failing notifier must never undo or block the
booking or payment that triggered it, so callers go through
``notify_safely``.
"""

import logging
from typing import Any, Dict, Protocol

from app.models.appointment import Appointment
from app.models.transaction import Transaction

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def send_appointment_confirmation(self, details: Dict[str, Any]) -> None:
        ...

    def send_invoice_email(self, transaction: Transaction, appointment: Appointment) -> None:
        ...


class LoggingNotifier:
    """Default notifier: writes what would have been sent to the log."""

    def send_appointment_confirmation(self, details: Dict[str, Any]) -> None:
        logger.info(
            "Appointment confirmation for %s: %s %s-%s with %s",
            details.get("customer_email"),
            details.get("day"),
            details.get("start_time"),
            details.get("end_time"),
            details.get("barber_name"),
        )

    def send_invoice_email(self, transaction: Transaction, appointment: Appointment) -> None:
        logger.info(
            "Invoice for appointment %s: txn_ref=%s amount=%s",
            appointment.id,
            transaction.txn_ref,
            transaction.amount,
        )


def notify_safely(action: str, func, *args, **kwargs) -> bool:
    try:
        func(*args, **kwargs)
        return True
    except Exception:
        logger.exception("Notification '%s' failed; ignoring", action)
        return False


_default_notifier = LoggingNotifier()


def get_notifier() -> Notifier:
    return _default_notifier
