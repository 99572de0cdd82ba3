from __future__ import annotations
from pydantic import BaseModel, Field
from typing import List, Literal, Optional
from datetime import datetime
from decimal import Decimal
from .common import ZERO, Versioned, gen_id, now

ClientOrderStatus = Literal["Pending", "Processed", "Cancelled"]


class ClientOrderItem(BaseModel):
    product_id: str
    product_name: str = ""
    reference: str = ""
    quantity: int = Field(ge=1)
    unit_price: Decimal = ZERO
    total: Decimal = ZERO


class ClientOrder(Versioned):
    id: str = Field(default_factory=gen_id)
    order_number: str = ""
    client_id: str
    client_name: str = ""
    date: datetime = Field(default_factory=now)
    items: List[ClientOrderItem] = Field(default_factory=list)
    total_amount: Decimal = ZERO
    status: ClientOrderStatus = "Pending"
    invoice_id: Optional[str] = None
