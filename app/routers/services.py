from fastapi import APIRouter, Depends, status
from sqlmodel import Session, select

from app.core.errors import NotFoundError
from app.database import get_session
from app.models.service import Service, ServiceCreate, ServiceUpdate
from app.models.user import User
from app.core.security import get_current_admin


router = APIRouter(
    prefix="/services",
    tags=["services"]
)


@router.post("/", status_code=status.HTTP_201_CREATED)
def create_service(
    payload: ServiceCreate,
    session: Session = Depends(get_session),
    current_admin: User = Depends(get_current_admin),
):
    service = Service.model_validate(payload)

    session.add(service)
    session.commit()
    session.refresh(service)

    return service


@router.get("/")
def list_services(session: Session = Depends(get_session)):
    # only active services can be booked
    return session.exec(
        select(Service).where(Service.active == True).order_by(Service.id)  # noqa: E712
    ).all()


@router.patch("/{service_id}")
def update_service(
    service_id: int,
    payload: ServiceUpdate,
    session: Session = Depends(get_session),
    current_admin: User = Depends(get_current_admin),
):
    service = session.get(Service, service_id)
    if not service:
        raise NotFoundError("Service not found")

    # existing bookings keep their price/duration snapshot
    service.sqlmodel_update(payload.model_dump(exclude_unset=True))

    session.add(service)
    session.commit()
    session.refresh(service)
    return service
