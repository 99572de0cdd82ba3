from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from .common import gen_id, now


class Expense(BaseModel):
    id: str = Field(default_factory=gen_id)
    date: datetime = Field(default_factory=now)
    description: str = ""
    amount: Decimal
    category: str = "Other"  # Fuel, Salary, Shipping, Rent, Savings, Other
