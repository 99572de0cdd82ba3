from __future__ import annotations
from pydantic import BaseModel
from typing import Literal

Currency = Literal["EUR", "USD", "GBP", "XOF"]
InvoiceNumberFormat = Literal["PREFIX-YEAR-NUM", "YEAR-NUM", "PREFIX-NUM"]


class Settings(BaseModel):
    company_name: str = "BizBook Inc."
    legal_name: str = "BizBook Incorporated"
    currency: Currency = "XOF"
    invoice_number_format: InvoiceNumberFormat = "PREFIX-YEAR-NUM"
    invoice_prefix: str = "FACT"
    payment_terms_days: int = 30

    class Config:
        extra = "ignore"
