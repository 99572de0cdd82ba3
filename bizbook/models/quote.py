from __future__ import annotations
from pydantic import BaseModel, Field
from typing import List, Literal, Optional
from datetime import datetime
from decimal import Decimal
from .common import ZERO, Versioned, gen_id, now

QuoteStatus = Literal["Draft", "Sent", "Accepted", "Declined"]

# seuls ces statuts peuvent encore basculer vers "Accepted"
CONVERTIBLE_STATUSES = ("Draft", "Sent")


class QuoteItem(BaseModel):
    product_id: str
    product_name: str = ""
    reference: str = ""
    quantity: int = Field(ge=1)
    unit_price: Decimal = ZERO
    total: Decimal = ZERO


class Quote(Versioned):
    id: str = Field(default_factory=gen_id)
    quote_number: str = ""
    client_id: str
    client_name: str = ""
    date: datetime = Field(default_factory=now)
    expiry_date: Optional[datetime] = None

    items: List[QuoteItem] = Field(default_factory=list)
    sub_total: Decimal = ZERO
    vat: Decimal = ZERO
    vat_amount: Decimal = ZERO
    discount: Decimal = ZERO
    discount_amount: Decimal = ZERO
    total_amount: Decimal = ZERO

    status: QuoteStatus = "Draft"
    invoice_id: Optional[str] = None

    class Config:
        extra = "ignore"  # tolère d'anciennes clés dans les JSON
