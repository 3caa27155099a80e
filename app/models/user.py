from typing import Optional
from sqlmodel import SQLModel, Field


class UserBase(SQLModel):
    name: str
    email: str = Field(index=True, unique=True)
    phone: Optional[str] = None


class User(UserBase, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    password_hash: str

    role: str = Field(default="customer", index=True)
    # customer | barber | admin


class UserCreate(UserBase):
    password: str = Field(min_length=6)


class UserUpdate(SQLModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
