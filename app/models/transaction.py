from typing import Optional
from datetime import datetime
from sqlmodel import SQLModel, Field

from app.core.clock import utcnow


class Transaction(SQLModel, table=True):
    __tablename__ = "payment_transaction"

    id: Optional[int] = Field(default=None, primary_key=True)

    appointment_id: int = Field(foreign_key="appointment.id", index=True)
    customer_id: int = Field(foreign_key="user.id", index=True)

    amount: int  # VND, equals the appointment total when minted

    # correlation key with the gateway, minted locally
    txn_ref: str = Field(unique=True, index=True)

    # filled in by the gateway callback
    gateway_transaction_no: Optional[str] = None
    response_code: Optional[str] = None
    bank_code: Optional[str] = None

    status: str = Field(default="pending", index=True)
    # pending | success | failed | refunded

    payment_method: str = "vnpay"

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    paid_at: Optional[datetime] = None
