from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Session, col, select

from app.core.security import get_current_user, get_password_hash
from app.database import get_session
from app.models.user import User, UserCreate, UserUpdate

router = APIRouter(prefix="/users", tags=["users"])


def _user_out(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "phone": user.phone,
        "role": user.role,
    }


def _ensure_unique(
    session: Session,
    email: Optional[str],
    phone: Optional[str],
    exclude_id: Optional[int] = None,
) -> None:
    query = select(User)
    if exclude_id is not None:
        query = query.where(col(User.id) != exclude_id)

    if email and session.exec(query.where(col(User.email) == email)).first():
        raise HTTPException(status_code=400, detail="Email already registered")
    if phone and session.exec(query.where(col(User.phone) == phone)).first():
        raise HTTPException(status_code=400, detail="Phone number already registered")


# =========================
# REGISTER
# self-registration always creates a customer; barbers are promoted by an admin
# =========================
@router.post("/", status_code=status.HTTP_201_CREATED)
def create_user(user: UserCreate, session: Session = Depends(get_session)):
    _ensure_unique(session, user.email, user.phone)

    db_user = User(
        name=user.name,
        email=user.email,
        phone=user.phone,
        password_hash=get_password_hash(user.password),
        role="customer",
    )

    session.add(db_user)
    session.commit()
    session.refresh(db_user)

    return _user_out(db_user)


# =========================
# PROFILE
# =========================
@router.get("/me")
def read_me(current_user: User = Depends(get_current_user)):
    return _user_out(current_user)


@router.patch("/me")
def update_me(
    payload: UserUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    _ensure_unique(session, changes.get("email"), changes.get("phone"), exclude_id=current_user.id)

    current_user.sqlmodel_update(changes)
    session.add(current_user)
    session.commit()
    session.refresh(current_user)

    return _user_out(current_user)
