from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from bizbook.errors import InvalidInput
from bizbook.models.common import ZERO, ActionResult
from bizbook.models.expense import Expense
from bizbook.models.invoice import Invoice, InvoiceItem
from bizbook.models.product import Product
from bizbook.models.user import User
from bizbook.services.authz import authorize
from bizbook.services.boundary import action
from bizbook.storage.ledger import LedgerStore

logger = logging.getLogger(__name__)

StatusFilter = Literal["all", "paid", "unpaid", "cancelled"]


class ProductSale(BaseModel):
    product_name: str
    unit_price: Decimal
    quantity_sold: int = 0
    total_value: Decimal = ZERO
    quantity_in_stock: Optional[int] = None


class FinancialSummary(BaseModel):
    gross_sales: Decimal = ZERO
    total_expenses: Decimal = ZERO
    cost_of_goods_sold: Decimal = ZERO
    gross_profit: Decimal = ZERO
    net_profit: Decimal = ZERO
    total_unpaid: Decimal = ZERO


class FinancialReport(BaseModel):
    start: datetime
    end: datetime
    client_id: str = "all"
    status: StatusFilter = "all"
    summary: FinancialSummary
    product_sales: List[ProductSale] = Field(default_factory=list)
    invoices: List[Invoice] = Field(default_factory=list)
    expenses: List[Expense] = Field(default_factory=list)


# ---------- Helpers ---------- #

def _status_matches(inv: Invoice, status: StatusFilter) -> bool:
    if status == "all":
        return True
    if status == "unpaid":
        return inv.status in ("Unpaid", "Partially Paid")
    if status == "paid":
        return inv.status == "Paid"
    return inv.status == "Cancelled"


def item_cost(item: InvoiceItem, products: Dict[str, Product]) -> Decimal:
    """Coût unitaire d'une ligne vendue: prix d'achat figé, sinon estimation par le ratio coût/prix actuel."""
    if item.purchase_price is not None:
        return item.purchase_price
    p = products.get(item.product_id)
    if p is None or p.unit_price <= 0 or p.purchase_price < 0:
        return ZERO
    return item.unit_price * p.purchase_price / p.unit_price


# ---------- Service ---------- #

class ReportService:
    def __init__(self, store: LedgerStore, user: User) -> None:
        self.store = store
        self.user = user

    def build(
        self,
        start: datetime,
        end: datetime,
        client_id: str = "all",
        status: StatusFilter = "all",
    ) -> FinancialReport:
        if start > end:
            raise InvalidInput("The report period is invalid: start is after end.")

        invoices = [
            inv for inv in self.store.get_invoices()
            if start <= inv.date <= end
            and (client_id == "all" or inv.client_id == client_id)
            and _status_matches(inv, status)
        ]
        expenses = [e for e in self.store.get_expenses() if start <= e.date <= end]
        products = {p.id: p for p in self.store.get_products()}
        stock_by_name = {p.name: p.quantity_in_stock for p in products.values()}

        active = [inv for inv in invoices if inv.status != "Cancelled"]
        summary = FinancialSummary(
            gross_sales=sum((inv.total_amount for inv in active), ZERO),
            total_unpaid=sum((inv.balance_due() for inv in active), ZERO),
            total_expenses=sum((e.amount for e in expenses), ZERO),
        )

        sales: Dict[tuple, ProductSale] = {}
        cogs = ZERO
        for inv in active:
            for it in inv.items:
                cogs += item_cost(it, products) * it.quantity
                # une ligne par couple (produit, prix de vente)
                key = (it.product_name, it.unit_price)
                row = sales.get(key)
                if row is None:
                    row = sales[key] = ProductSale(
                        product_name=it.product_name,
                        unit_price=it.unit_price,
                        quantity_in_stock=stock_by_name.get(it.product_name),
                    )
                row.quantity_sold += it.quantity
                row.total_value += it.total

        summary.cost_of_goods_sold = cogs
        summary.gross_profit = summary.gross_sales - cogs
        summary.net_profit = summary.gross_profit - summary.total_expenses

        return FinancialReport(
            start=start,
            end=end,
            client_id=client_id,
            status=status,
            summary=summary,
            product_sales=sorted(sales.values(), key=lambda s: s.quantity_sold, reverse=True),
            invoices=invoices,
            expenses=expenses,
        )

    @action
    def financial_summary(
        self,
        start: datetime,
        end: datetime,
        client_id: str = "all",
        status: Union[StatusFilter, str] = "all",
    ) -> ActionResult:
        authorize(self.user, "report.read")
        if status not in ("all", "paid", "unpaid", "cancelled"):
            raise InvalidInput(f"Unknown invoice status filter: {status}")
        report = self.build(start, end, client_id, status)
        logger.info(
            "Report %s..%s: %d invoice(s), net profit %s",
            start.date(), end.date(), len(report.invoices), report.summary.net_profit,
        )
        return ActionResult.ok(report)
