from fastapi import APIRouter, Depends, Request
from sqlmodel import Session

from app.core.clock import Clock, get_clock
from app.core.security import get_current_customer, get_current_user
from app.database import get_session
from app.models.user import User
from app.services import payments as payment_service
from app.services.notifications import Notifier, get_notifier
from app.services.vnpay import VNPayConfig, get_vnpay_config


router = APIRouter(prefix="/payments", tags=["payments"])


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "127.0.0.1"


# =========================
# CREATE PAYMENT (customer)
# =========================
@router.post("/create/{appointment_id}")
def create_payment(
    appointment_id: int,
    request: Request,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_customer),
    clock: Clock = Depends(get_clock),
    config: VNPayConfig = Depends(get_vnpay_config),
):
    return payment_service.initiate_payment(
        session, current_user, appointment_id, _client_ip(request), clock, config
    )


# =========================
# GATEWAY CALLBACKS
# =========================
@router.get("/vnpay-return")
def vnpay_return(
    request: Request,
    session: Session = Depends(get_session),
    notifier: Notifier = Depends(get_notifier),
    clock: Clock = Depends(get_clock),
    config: VNPayConfig = Depends(get_vnpay_config),
):
    params = dict(request.query_params)
    return payment_service.handle_return(session, params, notifier, clock, config)


@router.get("/vnpay-ipn")
def vnpay_ipn(
    request: Request,
    session: Session = Depends(get_session),
    notifier: Notifier = Depends(get_notifier),
    clock: Clock = Depends(get_clock),
    config: VNPayConfig = Depends(get_vnpay_config),
):
    # always HTTP 200: the gateway retries on the RspCode only
    params = dict(request.query_params)
    return payment_service.handle_ipn(session, params, notifier, clock, config)


# =========================
# HISTORY
# =========================
@router.get("/appointment/{appointment_id}")
def list_appointment_transactions(
    appointment_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    return payment_service.list_transactions(session, appointment_id, current_user)
