from __future__ import annotations
from pydantic import BaseModel, Field
from typing import List, Literal, Optional
from datetime import datetime
from decimal import Decimal
from .common import EPSILON, ZERO, Versioned, gen_id, now

InvoiceStatus = Literal["Unpaid", "Partially Paid", "Paid", "Cancelled"]
PaymentMethod = Literal["Cash", "Transfer", "Check", "Other"]

OPEN_STATUSES = ("Unpaid", "Partially Paid")
LOCKED_STATUSES = ("Paid", "Cancelled")


class InvoiceItem(BaseModel):
    product_id: str
    product_name: str = ""
    reference: str = ""
    quantity: int
    unit_price: Decimal
    total: Decimal = ZERO
    # coût d'achat figé au moment de la vente (marge), jamais recalculé
    purchase_price: Optional[Decimal] = None


class Payment(BaseModel):
    id: str = Field(default_factory=gen_id)
    date: datetime = Field(default_factory=now)
    amount: Decimal = Field(gt=0)
    method: PaymentMethod = "Cash"
    notes: str = ""


def derive_status(amount_paid: Decimal, total_amount: Decimal) -> InvoiceStatus:
    if amount_paid >= total_amount - EPSILON:
        return "Paid"
    if amount_paid > ZERO:
        return "Partially Paid"
    return "Unpaid"


class Invoice(Versioned):
    id: str = Field(default_factory=gen_id)
    invoice_number: str
    client_id: str
    client_name: str = ""
    date: datetime = Field(default_factory=now)
    due_date: datetime = Field(default_factory=now)

    items: List[InvoiceItem] = Field(default_factory=list)

    sub_total: Decimal = ZERO
    vat: Decimal = ZERO
    vat_amount: Decimal = ZERO
    discount: Decimal = ZERO
    discount_amount: Decimal = ZERO
    total_amount: Decimal = ZERO
    retenue: Decimal = ZERO
    retenue_amount: Decimal = ZERO
    net_a_payer: Decimal = ZERO

    status: InvoiceStatus = "Unpaid"
    amount_paid: Decimal = ZERO
    payments: List[Payment] = Field(default_factory=list)

    # helpers
    def balance_due(self) -> Decimal:
        return self.total_amount - self.amount_paid

    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    def is_locked(self) -> bool:
        return self.status in LOCKED_STATUSES


class PaymentHistoryItem(BaseModel):
    invoice_id: str
    invoice_number: str
    payment: Payment
