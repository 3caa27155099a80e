import warnings
from datetime import datetime

import pytest
from sqlmodel import Session, select

from app.core.errors import (
    AlreadyPaidError,
    AmountMismatchError,
    InvalidSignatureError,
    NotFoundError,
    PermissionDeniedError,
    StateError,
)
from app.models.appointment import Appointment, AppointmentCreate
from app.models.barber import Barber
from app.models.shop import Shop
from app.models.transaction import Transaction
from app.models.user import User
from app.services import lifecycle, payments, vnpay
from app.services.booking import create_appointment

from conftest import TEST_VNPAY, TUESDAY, BrokenNotifier, RecordingNotifier


@pytest.fixture
def appointment(session, shop, customer, barber, make_service, clock):
    combo = make_service("Haircut + Shave", 50, 150000)
    payload = AppointmentCreate(
        barber_id=barber.id, service_ids=[combo.id], day=TUESDAY, start_time="10:00"
    )
    return create_appointment(session, customer, payload, clock)


@pytest.fixture
def initiate(session, customer, clock, vnpay_config):
    def _initiate(appointment, who=None):
        return payments.initiate_payment(
            session, who or customer, appointment.id, "127.0.0.1", clock, vnpay_config
        )

    return _initiate


@pytest.fixture
def reconcile(session, notifier, clock, vnpay_config):
    def _reconcile(params):
        return payments.reconcile(session, params, notifier, clock, vnpay_config)

    return _reconcile


@pytest.fixture
def ipn(session, notifier, clock, vnpay_config):
    def _ipn(params):
        return payments.handle_ipn(session, params, notifier, clock, vnpay_config)

    return _ipn


def transactions_for(session, appointment):
    return session.exec(
        select(Transaction).where(Transaction.appointment_id == appointment.id)
    ).all()


# =========================
# INITIATE
# =========================

def test_initiate_creates_pending_transaction(session, appointment, initiate):
    result = initiate(appointment)

    assert result["amount"] == 150000
    assert result["payment_url"].startswith(TEST_VNPAY.payment_url + "?")
    assert "vnp_Amount=15000000" in result["payment_url"]
    assert f"vnp_TxnRef={result['txn_ref']}" in result["payment_url"]

    [txn] = transactions_for(session, appointment)
    assert txn.status == "pending"
    assert txn.txn_ref == result["txn_ref"]
    assert txn.amount == 150000


def test_txn_ref_format():
    ref = payments.generate_txn_ref(datetime(2026, 10, 19, 9, 0))

    assert ref[:-6].isdigit()
    assert len(ref[-6:]) == 6
    assert all(c.isupper() or c.isdigit() for c in ref[-6:])


def test_initiate_again_rotates_the_reference(session, appointment, initiate, reconcile, signed_callback):
    first = initiate(appointment)
    second = initiate(appointment)

    assert first["txn_ref"] != second["txn_ref"]
    [txn] = transactions_for(session, appointment)
    assert txn.txn_ref == second["txn_ref"]

    with pytest.raises(NotFoundError):
        reconcile(signed_callback(first["txn_ref"], 150000))


def test_initiate_checks_owner_and_state(session, appointment, initiate, make_user, customer):
    with pytest.raises(PermissionDeniedError):
        initiate(appointment, who=make_user("customer"))

    with pytest.raises(NotFoundError):
        payments.initiate_payment(
            session, customer, 999, "127.0.0.1", None, TEST_VNPAY
        )

    lifecycle.cancel(session, appointment.id, customer)
    with pytest.raises(StateError):
        initiate(appointment)


# =========================
# RECONCILE
# =========================

def test_successful_payment(session, appointment, initiate, reconcile, signed_callback, notifier):
    ref = initiate(appointment)["txn_ref"]

    outcome = reconcile(signed_callback(ref, 150000))

    assert outcome.applied
    assert outcome.succeeded
    txn = outcome.transaction
    assert txn.status == "success"
    assert txn.response_code == "00"
    assert txn.bank_code == "NCB"
    assert txn.gateway_transaction_no == "14000001"
    assert txn.paid_at == datetime(2026, 10, 19, 9, 30)

    session.refresh(appointment)
    assert appointment.payment_status == "paid"
    assert notifier.invoices == [(ref, appointment.id)]


def test_paid_appointment_cannot_be_paid_again(appointment, initiate, reconcile, signed_callback):
    ref = initiate(appointment)["txn_ref"]
    reconcile(signed_callback(ref, 150000))

    with pytest.raises(AlreadyPaidError):
        initiate(appointment)


def test_duplicate_callback_is_a_no_op(session, appointment, initiate, reconcile, ipn, signed_callback, notifier):
    ref = initiate(appointment)["txn_ref"]
    params = signed_callback(ref, 150000)

    assert reconcile(params).applied
    again = reconcile(params)

    assert not again.applied
    assert again.transaction.status == "success"
    assert ipn(params) == {"RspCode": "02", "Message": "Order already confirmed"}
    assert len(notifier.invoices) == 1


def test_failed_payment(session, appointment, initiate, ipn, signed_callback, notifier):
    ref = initiate(appointment)["txn_ref"]

    assert ipn(signed_callback(ref, 150000, response_code="24"))["RspCode"] == "00"

    [txn] = transactions_for(session, appointment)
    session.refresh(txn)
    assert txn.status == "failed"
    assert txn.response_code == "24"
    assert txn.paid_at is None

    session.refresh(appointment)
    assert appointment.payment_status == "unpaid"
    assert notifier.invoices == []


def test_invalid_signature_changes_nothing(session, appointment, initiate, reconcile, ipn, signed_callback):
    ref = initiate(appointment)["txn_ref"]
    params = {**signed_callback(ref, 150000), "vnp_ResponseCode": "00", "vnp_Amount": "100"}

    with pytest.raises(InvalidSignatureError):
        reconcile(params)
    assert ipn(params) == {"RspCode": "97", "Message": "Invalid signature"}

    [txn] = transactions_for(session, appointment)
    session.refresh(txn)
    assert txn.status == "pending"
    session.refresh(appointment)
    assert appointment.payment_status == "unpaid"


def test_amount_mismatch(session, appointment, initiate, reconcile, ipn, signed_callback):
    ref = initiate(appointment)["txn_ref"]
    params = signed_callback(ref, 100000)

    with pytest.raises(AmountMismatchError):
        reconcile(params)
    assert ipn(params)["RspCode"] == "04"

    [txn] = transactions_for(session, appointment)
    session.refresh(txn)
    assert txn.status == "pending"


def test_unknown_reference(ipn, signed_callback):
    assert ipn(signed_callback("NOPE", 150000)) == {"RspCode": "01", "Message": "Order not found"}


def test_unexpected_error_answers_99(session, appointment, initiate, ipn, signed_callback, monkeypatch):
    ref = initiate(appointment)["txn_ref"]

    def boom(value):
        raise RuntimeError("bad pay date")

    monkeypatch.setattr(vnpay, "parse_pay_date", boom)

    assert ipn(signed_callback(ref, 150000))["RspCode"] == "99"
    [txn] = transactions_for(session, appointment)
    session.refresh(txn)
    assert txn.status == "pending"


def test_broken_notifier_keeps_the_payment(session, appointment, initiate, clock, signed_callback):
    ref = initiate(appointment)["txn_ref"]

    outcome = payments.reconcile(
        session, signed_callback(ref, 150000), BrokenNotifier(), clock, TEST_VNPAY
    )

    assert outcome.applied
    session.refresh(appointment)
    assert appointment.payment_status == "paid"


def test_return_summary(session, appointment, initiate, notifier, clock, signed_callback):
    ref = initiate(appointment)["txn_ref"]
    params = signed_callback(ref, 150000)

    summary = payments.handle_return(session, params, notifier, clock, TEST_VNPAY)
    assert summary == {
        "success": True,
        "code": "00",
        "message": "Transaction successful",
        "txn_ref": ref,
        "status": "success",
        "appointment_id": appointment.id,
        "already_processed": False,
    }

    replay = payments.handle_return(session, params, notifier, clock, TEST_VNPAY)
    assert replay["already_processed"] is True
    assert replay["success"] is True


# =========================
# RACING CALLBACKS
# =========================

def test_racing_success_callbacks_apply_once(file_engine, clock, signed_callback, monkeypatch):
    with Session(file_engine) as session:
        customer = User(name="Carol", email="carol@example.com", password_hash="x")
        barber_user = User(name="Bob", email="bob@example.com", password_hash="x", role="barber")
        shop = Shop(name="Shop")
        session.add_all([customer, barber_user, shop])
        session.flush()
        barber = Barber(user_id=barber_user.id)
        session.add(barber)
        session.flush()
        appointment = Appointment(
            customer_id=customer.id,
            barber_id=barber.id,
            shop_id=shop.id,
            day=TUESDAY,
            start_time="10:00",
            end_time="10:30",
            total_price=100000,
            total_duration=30,
        )
        session.add(appointment)
        session.flush()
        session.add(
            Transaction(
                appointment_id=appointment.id,
                customer_id=customer.id,
                amount=100000,
                txn_ref="RACE0001",
            )
        )
        session.commit()
        appointment_id = appointment.id

    notifier = RecordingNotifier()
    params = signed_callback("RACE0001", 100000)
    real_parse_pay_date = vnpay.parse_pay_date
    winner = {}

    def duplicate_lands_first(value):
        if "started" not in winner:
            winner["started"] = True
            # the second delivery is processed after our read, before our write
            with Session(file_engine) as other:
                winner["outcome"] = payments.reconcile(other, params, notifier, clock, TEST_VNPAY)
        return real_parse_pay_date(value)

    monkeypatch.setattr(vnpay, "parse_pay_date", duplicate_lands_first)

    with Session(file_engine) as session:
        late = payments.reconcile(session, params, notifier, clock, TEST_VNPAY)
        late_status = late.transaction.status

    assert winner["outcome"].applied
    assert not late.applied
    assert late_status == "success"
    assert notifier.invoices == [("RACE0001", appointment_id)]

    with Session(file_engine) as session:
        assert session.get(Appointment, appointment_id).payment_status == "paid"
        [txn] = session.exec(select(Transaction)).all()
        assert txn.status == "success"


# =========================
# HISTORY
# =========================

def test_transaction_history_visibility(session, appointment, initiate, customer, barber_user, admin, make_user):
    initiate(appointment)

    assert len(payments.list_transactions(session, appointment.id, customer)) == 1
    assert len(payments.list_transactions(session, appointment.id, barber_user)) == 1
    assert len(payments.list_transactions(session, appointment.id, admin)) == 1

    with pytest.raises(PermissionDeniedError):
        payments.list_transactions(session, appointment.id, make_user("customer"))


# =========================
# TIMESTAMPS
# =========================

def test_audit_timestamps_avoid_deprecated_utcnow(
    session, shop, customer, barber, barber_user, haircut, clock, initiate, reconcile, signed_callback, notifier
):
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")

        payload = AppointmentCreate(
            barber_id=barber.id, service_ids=[haircut.id], day=TUESDAY, start_time="15:00"
        )
        appointment = create_appointment(session, customer, payload, clock)
        lifecycle.confirm(session, appointment.id, barber_user, notifier)
        started = initiate(appointment)
        reconcile(signed_callback(started["txn_ref"], 100000))

    assert not [w for w in caught if "utcnow" in str(w.message)]

    session.refresh(appointment)
    assert appointment.payment_status == "paid"
    assert appointment.updated_at >= appointment.created_at
