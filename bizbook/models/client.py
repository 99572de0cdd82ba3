from __future__ import annotations
from pydantic import BaseModel, EmailStr, Field
from typing import Literal, Optional
from datetime import datetime
from .common import gen_id, now

ClientStatus = Literal["Active", "Inactive"]


class Client(BaseModel):
    id: str = Field(default_factory=gen_id)
    name: str
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    ifu: Optional[str] = None
    rccm: Optional[str] = None
    tax_regime: Optional[str] = None
    registration_date: datetime = Field(default_factory=now)
    status: ClientStatus = "Active"


class Supplier(BaseModel):
    id: str = Field(default_factory=gen_id)
    name: str
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    contact_person: Optional[str] = None
    registration_date: datetime = Field(default_factory=now)
