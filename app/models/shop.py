from typing import Optional
from sqlmodel import SQLModel, Field


class Shop(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)

    name: str
    address: Optional[str] = None
    phone: Optional[str] = None
