from pydantic import BaseModel, EmailStr, Field
from typing import Literal, Optional
from .common import gen_id

Role = Literal["SuperAdmin", "Admin", "User"]


class User(BaseModel):
    id: str = Field(default_factory=gen_id)
    name: str
    email: Optional[EmailStr] = None
    role: Role = "User"
    organization_id: Optional[str] = None
