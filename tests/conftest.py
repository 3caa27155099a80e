"""Shared fixtures.

Uses an in-memory SQLite engine; the request handlers and the test body
share one session, as in the SQLModel testing guide.
"""

from datetime import date, datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from app.core.clock import FixedClock, get_clock
from app.core.security import create_access_token
from app.database import get_session
from app.main import app
from app.models.barber import Barber
from app.models.service import Service
from app.models.shop import Shop
from app.models.user import User
from app.services import vnpay
from app.services.notifications import get_notifier
from app.services.schedule import DEFAULT_SCHEDULE, DaySchedule, save_schedule
from app.services.vnpay import VNPayConfig, get_vnpay_config


# Monday 2026-10-19, 08:00 shop time
NOW = datetime(2026, 10, 19, 8, 0)
TODAY = NOW.date()
TUESDAY = date(2026, 10, 20)
SUNDAY = date(2026, 10, 25)

TEST_VNPAY = VNPayConfig(
    tmn_code="TESTTMN1",
    hash_secret="TESTHASHSECRETKEY0123456789",
    payment_url="https://sandbox.vnpayment.vn/paymentv2/vpcpay.html",
    return_url="http://localhost:3000/payment/vnpay-return",
)


class RecordingNotifier:
    def __init__(self):
        self.confirmations = []
        self.invoices = []

    def send_appointment_confirmation(self, details):
        self.confirmations.append(details)

    def send_invoice_email(self, transaction, appointment):
        self.invoices.append((transaction.txn_ref, appointment.id))


class BrokenNotifier:
    def send_appointment_confirmation(self, details):
        raise RuntimeError("smtp down")

    def send_invoice_email(self, transaction, appointment):
        raise RuntimeError("smtp down")


@pytest.fixture(name="engine")
def engine_fixture():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def file_engine(tmp_path):
    """On-disk database for tests where threads need their own connections."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'race.db'}",
        connect_args={"check_same_thread": False},
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture(name="session")
def session_fixture(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def vnpay_config():
    return TEST_VNPAY


@pytest.fixture(name="client")
def client_fixture(session, clock, notifier, vnpay_config):
    app.dependency_overrides[get_session] = lambda: session
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_vnpay_config] = lambda: vnpay_config

    client = TestClient(app)
    yield client

    app.dependency_overrides.clear()


# =========================
# FACTORIES
# =========================

@pytest.fixture
def shop(session):
    shop = Shop(name="Test Barbershop", address="1 Test Street")
    session.add(shop)
    session.commit()
    session.refresh(shop)
    return shop


@pytest.fixture
def make_user(session):
    counter = {"n": 0}

    def _make(role="customer", name=None):
        counter["n"] += 1
        user = User(
            name=name or f"{role.title()} {counter['n']}",
            email=f"{role}{counter['n']}@example.com",
            role=role,
            password_hash="not-used",
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _make


@pytest.fixture
def make_barber(session, make_user):
    def _make(user=None, schedule=DEFAULT_SCHEDULE, is_available=True):
        user = user or make_user("barber")
        barber = Barber(user_id=user.id, is_available=is_available)
        session.add(barber)
        session.flush()
        save_schedule(session, barber.id, dict(enumerate(schedule.days)))
        session.commit()
        session.refresh(barber)
        return barber

    return _make


@pytest.fixture
def make_service(session):
    def _make(name="Haircut", duration_minutes=30, price=100000, active=True):
        service = Service(
            name=name, duration_minutes=duration_minutes, price=price, active=active
        )
        session.add(service)
        session.commit()
        session.refresh(service)
        return service

    return _make


@pytest.fixture
def customer(make_user):
    return make_user("customer", name="Carol Customer")


@pytest.fixture
def admin(make_user):
    return make_user("admin", name="Ada Admin")


@pytest.fixture
def barber_user(make_user):
    return make_user("barber", name="Bob Barber")


@pytest.fixture
def barber(make_barber, barber_user):
    return make_barber(barber_user)


@pytest.fixture
def haircut(make_service):
    return make_service("Haircut", 30, 100000)


@pytest.fixture
def auth_headers():
    def _headers(user):
        token = create_access_token({"sub": user.email})
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def book(client, auth_headers, shop):
    """POST /appointments/ as ``customer``; returns the response."""

    def _book(customer, barber, services, day=TUESDAY, start_time="10:00"):
        return client.post(
            "/appointments/",
            json={
                "barber_id": barber.id,
                "service_ids": [s.id for s in services],
                "day": day.isoformat(),
                "start_time": start_time,
            },
            headers=auth_headers(customer),
        )

    return _book


@pytest.fixture
def signed_callback(vnpay_config):
    """Gateway callback query parameters signed with the test secret."""

    def _callback(txn_ref, amount, response_code="00", **overrides):
        params = {
            "vnp_Amount": str(amount * 100),
            "vnp_BankCode": "NCB",
            "vnp_BankTranNo": "VNP14000001",
            "vnp_CardType": "ATM",
            "vnp_OrderInfo": "Payment for appointment",
            "vnp_PayDate": "20261019093000",
            "vnp_ResponseCode": response_code,
            "vnp_TmnCode": vnpay_config.tmn_code,
            "vnp_TransactionNo": "14000001",
            "vnp_TransactionStatus": response_code,
            "vnp_TxnRef": txn_ref,
        }
        params.update(overrides)
        params["vnp_SecureHash"] = vnpay.sign(params, vnpay_config.hash_secret)
        return params

    return _callback


def day_schedule(start="09:00", end="18:00", off=False):
    return DaySchedule(start_time=start, end_time=end, is_off=off)
