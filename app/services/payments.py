"""Payment initiation and gateway reconciliation.

A gateway result is applied with one conditional write,
``UPDATE ... WHERE id = :id AND status = 'pending'``. Duplicate or concurrent
callbacks for the same reference race on that statement and only the one
that changes the row marks the appointment paid and sends the invoice.
"""

import logging
import secrets
import string
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Mapping

from sqlalchemy import update
from sqlmodel import Session, col, select

from app.core.clock import Clock, utcnow
from app.core.errors import (
    AlreadyPaidError,
    AmountMismatchError,
    InvalidSignatureError,
    NotFoundError,
    PermissionDeniedError,
    StateError,
)
from app.models.appointment import Appointment
from app.models.transaction import Transaction
from app.models.user import User
from app.services import vnpay
from app.services.lifecycle import is_assigned_barber
from app.services.notifications import Notifier, notify_safely
from app.services.vnpay import IpnCode, VNPayConfig

logger = logging.getLogger(__name__)

_REF_ALPHABET = string.ascii_uppercase + string.digits


@dataclass
class ReconcileOutcome:
    transaction: Transaction
    applied: bool  # False when another callback already resolved it

    @property
    def succeeded(self) -> bool:
        return self.transaction.status == "success"


def generate_txn_ref(now: datetime) -> str:
    millis = int(now.timestamp() * 1000)
    suffix = "".join(secrets.choice(_REF_ALPHABET) for _ in range(6))
    return f"{millis}{suffix}"


# =========================
# INITIATE
# =========================

def initiate_payment(
    session: Session,
    customer: User,
    appointment_id: int,
    client_ip: str,
    clock: Clock,
    config: VNPayConfig,
) -> Dict:
    appointment = session.get(Appointment, appointment_id)
    if not appointment:
        raise NotFoundError("Appointment not found")

    if appointment.customer_id != customer.id:
        raise PermissionDeniedError("You can only pay for your own appointments")

    now = clock.now()

    # serialize initiations for this appointment on its row
    session.connection().execute(
        update(Appointment)
        .where(col(Appointment.id) == appointment.id)
        .values(updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    session.refresh(appointment)

    try:
        if appointment.payment_status == "paid":
            raise AlreadyPaidError("Appointment is already paid")
        if appointment.status == "cancelled":
            raise StateError("Cannot pay for a cancelled appointment", appointment.status)

        txn = session.exec(
            select(Transaction).where(
                col(Transaction.appointment_id) == appointment.id,
                col(Transaction.status) == "pending",
            )
        ).first()

        txn_ref = generate_txn_ref(now)
        if txn:
            # rotate the reference; the old one will no longer match
            txn.txn_ref = txn_ref
            txn.amount = appointment.total_price
            txn.updated_at = utcnow()
        else:
            txn = Transaction(
                appointment_id=appointment.id,
                customer_id=customer.id,
                amount=appointment.total_price,
                txn_ref=txn_ref,
            )
        session.add(txn)
        session.commit()
    except Exception:
        session.rollback()
        raise

    session.refresh(txn)

    payment_url = vnpay.build_payment_url(
        config,
        txn_ref=txn.txn_ref,
        amount=txn.amount,
        order_info=f"Payment for appointment {appointment.id}",
        client_ip=client_ip,
        now=now,
    )

    logger.info(
        "Payment initiated: appointment=%s txn_ref=%s amount=%s",
        appointment.id,
        txn.txn_ref,
        txn.amount,
    )
    return {"payment_url": payment_url, "txn_ref": txn.txn_ref, "amount": txn.amount}


# =========================
# RECONCILE
# =========================

def reconcile(
    session: Session,
    params: Mapping[str, str],
    notifier: Notifier,
    clock: Clock,
    config: VNPayConfig,
) -> ReconcileOutcome:
    txn_ref = params.get("vnp_TxnRef")

    if not vnpay.verify_signature(params, config.hash_secret):
        logger.warning("Rejected gateway callback with invalid signature (txn_ref=%s)", txn_ref)
        raise InvalidSignatureError("Invalid payment signature")

    txn = session.exec(select(Transaction).where(col(Transaction.txn_ref) == txn_ref)).first()
    if not txn:
        logger.info("Gateway callback for unknown txn_ref=%s", txn_ref)
        raise NotFoundError("Transaction not found")

    if txn.status != "pending":
        logger.info("Gateway callback for txn_ref=%s already processed (%s)", txn_ref, txn.status)
        return ReconcileOutcome(transaction=txn, applied=False)

    try:
        paid_amount = int(params.get("vnp_Amount", ""))
    except ValueError:
        paid_amount = None
    if paid_amount != txn.amount * 100:
        logger.warning(
            "Amount mismatch for txn_ref=%s: expected %s, got %s",
            txn_ref,
            txn.amount * 100,
            params.get("vnp_Amount"),
        )
        raise AmountMismatchError("Payment amount does not match")

    response_code = params.get("vnp_ResponseCode", "")
    succeeded = response_code == "00"

    changes = {
        "status": "success" if succeeded else "failed",
        "response_code": response_code,
        "bank_code": params.get("vnp_BankCode"),
        "gateway_transaction_no": params.get("vnp_TransactionNo"),
        "updated_at": utcnow(),
    }
    if succeeded:
        changes["paid_at"] = vnpay.parse_pay_date(params.get("vnp_PayDate")) or clock.now()

    try:
        result = session.connection().execute(
            update(Transaction)
            .where(col(Transaction.id) == txn.id, col(Transaction.status) == "pending")
            .values(**changes)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount != 1:
            # lost the race against a duplicate callback
            session.rollback()
            session.refresh(txn)
            logger.info("Gateway callback for txn_ref=%s already processed (%s)", txn_ref, txn.status)
            return ReconcileOutcome(transaction=txn, applied=False)

        if succeeded:
            session.connection().execute(
                update(Appointment)
                .where(col(Appointment.id) == txn.appointment_id)
                .values(payment_status="paid", updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )

        session.commit()
    except Exception:
        session.rollback()
        raise

    session.refresh(txn)
    logger.info(
        "Payment %s: txn_ref=%s appointment=%s code=%s (%s)",
        txn.status,
        txn.txn_ref,
        txn.appointment_id,
        response_code,
        vnpay.response_message(response_code),
    )

    if succeeded:
        appointment = session.get(Appointment, txn.appointment_id)
        if appointment:
            session.refresh(appointment)
            notify_safely("invoice email", notifier.send_invoice_email, txn, appointment)

    return ReconcileOutcome(transaction=txn, applied=True)


def handle_return(
    session: Session,
    params: Mapping[str, str],
    notifier: Notifier,
    clock: Clock,
    config: VNPayConfig,
) -> Dict:
    """Browser redirect back from the gateway; domain errors propagate."""
    outcome = reconcile(session, params, notifier, clock, config)
    txn = outcome.transaction
    code = txn.response_code or params.get("vnp_ResponseCode", "")
    return {
        "success": outcome.succeeded,
        "code": code,
        "message": vnpay.response_message(code),
        "txn_ref": txn.txn_ref,
        "status": txn.status,
        "appointment_id": txn.appointment_id,
        "already_processed": not outcome.applied,
    }


def handle_ipn(
    session: Session,
    params: Mapping[str, str],
    notifier: Notifier,
    clock: Clock,
    config: VNPayConfig,
) -> Dict[str, str]:
    """Server-to-server notification; always answers with an acknowledgement code."""
    try:
        outcome = reconcile(session, params, notifier, clock, config)
    except InvalidSignatureError:
        code = IpnCode.INVALID_SIGNATURE
    except NotFoundError:
        code = IpnCode.ORDER_NOT_FOUND
    except AmountMismatchError:
        code = IpnCode.INVALID_AMOUNT
    except Exception:
        logger.exception("Unexpected error handling IPN for txn_ref=%s", params.get("vnp_TxnRef"))
        session.rollback()
        code = IpnCode.UNKNOWN_ERROR
    else:
        code = IpnCode.SUCCESS if outcome.applied else IpnCode.ALREADY_CONFIRMED

    return {"RspCode": code, "Message": vnpay.IPN_MESSAGES[code]}


# =========================
# HISTORY
# =========================

def list_transactions(session: Session, appointment_id: int, actor: User) -> List[Transaction]:
    appointment = session.get(Appointment, appointment_id)
    if not appointment:
        raise NotFoundError("Appointment not found")

    allowed = (
        actor.role == "admin"
        or appointment.customer_id == actor.id
        or is_assigned_barber(session, appointment, actor)
    )
    if not allowed:
        raise PermissionDeniedError("You cannot view these transactions")

    return session.exec(
        select(Transaction)
        .where(col(Transaction.appointment_id) == appointment_id)
        .order_by(col(Transaction.created_at).desc())
    ).all()
