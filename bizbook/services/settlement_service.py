from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from functools import partial
from typing import List, Mapping, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

from bizbook.errors import InvalidInput, NotFound, StateConflict
from bizbook.models.common import EPSILON, ZERO, ActionResult, now
from bizbook.models.invoice import Invoice, InvoiceStatus, Payment, PaymentHistoryItem, PaymentMethod
from bizbook.models.user import User
from bizbook.services.authz import authorize
from bizbook.services.boundary import action
from bizbook.services.saga import Compensation
from bizbook.storage.ledger import LedgerStore

logger = logging.getLogger(__name__)


class SettlementRequest(BaseModel):
    client_id: str = Field(min_length=1)
    invoice_ids: List[str] = Field(min_length=1)
    amount: Decimal = Field(gt=0)
    date: datetime = Field(default_factory=now)
    method: PaymentMethod = "Cash"
    notes: str = ""


class PaymentRequest(BaseModel):
    amount: Decimal = Field(gt=0)
    date: datetime = Field(default_factory=now)
    method: PaymentMethod = "Cash"
    notes: str = ""


class Allocation(BaseModel):
    invoice_id: str
    invoice_number: str
    amount: Decimal
    amount_paid: Decimal
    status: InvoiceStatus


# ---------- Ordre d'imputation ---------- #

class AllocationStrategy:
    """Ordre dans lequel un règlement solde les factures sélectionnées."""
    name = "base"

    def order(self, invoices: Sequence[Invoice]) -> List[Invoice]:
        raise NotImplementedError


class OldestDueFirst(AllocationStrategy):
    """La dette la plus ancienne d'abord; égalité départagée par numéro puis id."""
    name = "oldest-due-first"

    def order(self, invoices: Sequence[Invoice]) -> List[Invoice]:
        return sorted(invoices, key=lambda i: (i.date, i.invoice_number, i.id))


class SmallestBalanceFirst(AllocationStrategy):
    name = "smallest-balance-first"

    def order(self, invoices: Sequence[Invoice]) -> List[Invoice]:
        return sorted(invoices, key=lambda i: (i.balance_due(), i.date, i.invoice_number, i.id))


def plan_allocation(invoices: Sequence[Invoice], amount: Decimal) -> List[Tuple[Invoice, Decimal]]:
    """Répartit `amount` dans l'ordre donné sans jamais dépasser le solde d'une facture."""
    plan: List[Tuple[Invoice, Decimal]] = []
    remaining = amount
    for inv in invoices:
        if remaining <= ZERO:
            break
        applied = min(remaining, inv.balance_due())
        if applied > ZERO:
            plan.append((inv, applied))
            remaining -= applied
    return plan


# ---------- Service ---------- #

class SettlementService:
    def __init__(
        self,
        store: LedgerStore,
        user: User,
        strategy: Optional[AllocationStrategy] = None,
    ) -> None:
        self.store = store
        self.user = user
        self.strategy = strategy or OldestDueFirst()

    # ----- lecture ----- #

    @action
    def unpaid_invoices_for_client(self, client_id: str) -> ActionResult:
        authorize(self.user, "settlement.read")
        invoices = [inv for inv in self.store.get_invoices() if inv.client_id == client_id and inv.is_open()]
        return ActionResult.ok(self.strategy.order(invoices))

    @action
    def payment_history_for_client(self, client_id: str) -> ActionResult:
        authorize(self.user, "settlement.read")
        history = [
            PaymentHistoryItem(invoice_id=inv.id, invoice_number=inv.invoice_number, payment=p)
            for inv in self.store.get_invoices()
            if inv.client_id == client_id
            for p in inv.payments
        ]
        history.sort(key=lambda h: h.payment.date, reverse=True)
        return ActionResult.ok(history)

    # ----- règlement ----- #

    def _selected_invoices(self, req: SettlementRequest) -> List[Invoice]:
        selected: List[Invoice] = []
        seen = set()
        for invoice_id in req.invoice_ids:
            if invoice_id in seen:
                continue
            seen.add(invoice_id)
            inv = self.store.get_invoice(invoice_id)
            if inv is None:
                raise NotFound(f"Invoice not found: {invoice_id}")
            if inv.client_id != req.client_id:
                raise InvalidInput(f"Invoice {inv.invoice_number} does not belong to this client.")
            if not inv.is_open():
                raise StateConflict(f"Invoice {inv.invoice_number} is {inv.status.lower()} and cannot be settled.")
            selected.append(inv)
        return selected

    def _restore(self, invoice_id: str, fields: Mapping) -> None:
        self.store.update_invoice(invoice_id, fields)

    def _allocate(self, req: SettlementRequest) -> ActionResult:
        if self.store.get_client(req.client_id) is None:
            raise NotFound("Client not found.")
        invoices = self._selected_invoices(req)

        total_due = sum((inv.balance_due() for inv in invoices), ZERO)
        if req.amount > total_due + EPSILON:
            raise StateConflict(
                f"Payment amount ({req.amount}) exceeds the total due ({total_due}) on the selected invoices."
            )

        plan = plan_allocation(self.strategy.order(invoices), req.amount)
        allocations: List[Allocation] = []
        with Compensation(f"settlement for client {req.client_id}") as saga:
            for inv, applied in plan:
                payment = Payment(amount=applied, date=req.date, method=req.method, notes=req.notes)
                new_paid = inv.amount_paid + applied
                status: InvoiceStatus = "Paid" if new_paid >= inv.total_amount - EPSILON else "Partially Paid"
                self.store.update_invoice(
                    inv.id,
                    {"amount_paid": new_paid, "status": status, "payments": [*inv.payments, payment]},
                    expected_version=inv.version,
                )
                saga.record(
                    f"payment on {inv.invoice_number}",
                    partial(self._restore, inv.id, inv.model_dump(include={"amount_paid", "status", "payments"})),
                )
                allocations.append(Allocation(
                    invoice_id=inv.id, invoice_number=inv.invoice_number,
                    amount=applied, amount_paid=new_paid, status=status,
                ))

        logger.info(
            "Settlement of %s (%s) for client %s spread over %d invoice(s) [%s]",
            req.amount, req.method, req.client_id, len(allocations), self.strategy.name,
        )
        return ActionResult.ok(allocations)

    @action
    def allocate_payment(self, payload: SettlementRequest | Mapping) -> ActionResult:
        authorize(self.user, "settlement.allocate")
        return self._allocate(SettlementRequest.model_validate(payload))

    @action
    def record_payment(self, invoice_id: str, payload: PaymentRequest | Mapping) -> ActionResult:
        """Encaissement sur une seule facture: règlement restreint à cette facture."""
        authorize(self.user, "settlement.allocate")
        pay = PaymentRequest.model_validate(payload)
        inv = self.store.get_invoice(invoice_id)
        if inv is None:
            raise NotFound("Invoice not found.")
        req = SettlementRequest(
            client_id=inv.client_id, invoice_ids=[invoice_id],
            amount=pay.amount, date=pay.date, method=pay.method, notes=pay.notes,
        )
        return self._allocate(req)
