from typing import Optional
from sqlmodel import SQLModel, Field


class ServiceBase(SQLModel):
    name: str
    description: Optional[str] = None
    duration_minutes: int = Field(ge=5)
    price: int = Field(ge=0)  # VND
    category: str = "other"
    # haircut | shave | styling | combo | other


class Service(ServiceBase, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    active: bool = True


class ServiceCreate(ServiceBase):
    pass


class ServiceUpdate(SQLModel):
    name: Optional[str] = None
    description: Optional[str] = None
    duration_minutes: Optional[int] = Field(default=None, ge=5)
    price: Optional[int] = Field(default=None, ge=0)
    category: Optional[str] = None
    active: Optional[bool] = None
