from __future__ import annotations
from pydantic import BaseModel, Field
from typing import List, Literal
from datetime import datetime
from decimal import Decimal
from .common import ZERO, Versioned, gen_id, now

PurchaseStatus = Literal["Pending", "Received", "Cancelled"]


class PurchaseItem(BaseModel):
    # pas de prix unitaire: le coût est suivi globalement (versements + frais)
    product_id: str
    product_name: str = ""
    reference: str = ""
    quantity: int = Field(ge=1)


class Purchase(Versioned):
    id: str = Field(default_factory=gen_id)
    purchase_number: str = ""
    supplier_id: str
    supplier_name: str = ""
    date: datetime = Field(default_factory=now)
    items: List[PurchaseItem] = Field(default_factory=list)

    premier_versement: Decimal = ZERO
    deuxieme_versement: Decimal = ZERO
    transport_cost: Decimal = ZERO
    other_fees: Decimal = ZERO
    total_amount: Decimal = ZERO

    status: PurchaseStatus = "Pending"
    received_at: datetime | None = None
