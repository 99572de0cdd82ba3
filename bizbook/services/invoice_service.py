# bizbook/services/invoice_service.py
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from functools import partial
from typing import Annotated, Dict, Iterable, List, Mapping, Optional

from pydantic import BaseModel, Field, model_validator

from bizbook.errors import InvalidInput, NotFound, StateConflict
from bizbook.models.client import Client
from bizbook.models.common import EPSILON, ZERO, ActionResult, now, pct_of
from bizbook.models.invoice import Invoice, InvoiceItem, derive_status
from bizbook.models.product import Product
from bizbook.models.user import User
from bizbook.services import numbering
from bizbook.services.authz import authorize
from bizbook.services.boundary import action
from bizbook.services.saga import Compensation
from bizbook.services.settings_service import SettingsService
from bizbook.services.stock_service import StockAdjuster, requirements
from bizbook.storage.ledger import LedgerStore

logger = logging.getLogger(__name__)

Percent = Annotated[Decimal, Field(ge=0, le=100)]


# ---------- Saisie ---------- #

class InvoiceLineInput(BaseModel):
    product_id: str = Field(min_length=1)
    quantity: int = Field(ge=1)
    unit_price: Decimal = Field(ge=0)


class InvoiceDraft(BaseModel):
    client_id: str = Field(min_length=1)
    items: List[InvoiceLineInput] = Field(min_length=1)
    date: datetime = Field(default_factory=now)
    due_date: Optional[datetime] = None
    vat: Percent = ZERO
    discount: Percent = ZERO
    retenue: Percent = ZERO
    # création: suffixe saisi (sinon numéro séquentiel) ; édition: numéro complet
    invoice_number_suffix: Optional[str] = None
    invoice_number: Optional[str] = None

    @model_validator(mode="after")
    def _due_after_date(self) -> "InvoiceDraft":
        if self.due_date is not None and self.date is not None and self.due_date < self.date:
            raise ValueError("due date cannot be before the invoice date")
        return self


class InvoiceEdit(InvoiceDraft):
    # dates absentes -> celles de la facture d'origine
    date: Optional[datetime] = None


# ---------- Calculs ---------- #

def compute_totals(
    items: Iterable[InvoiceItem],
    vat: Decimal,
    discount: Decimal,
    retenue: Decimal = ZERO,
) -> Dict[str, Decimal]:
    sub_total = sum((it.total for it in items), ZERO)
    discount_amount = pct_of(sub_total, discount)
    after_discount = sub_total - discount_amount
    vat_amount = pct_of(after_discount, vat)
    total_amount = after_discount + vat_amount
    retenue_amount = pct_of(after_discount, retenue)
    return {
        "sub_total": sub_total,
        "vat": vat,
        "vat_amount": vat_amount,
        "discount": discount,
        "discount_amount": discount_amount,
        "total_amount": total_amount,
        "retenue": retenue,
        "retenue_amount": retenue_amount,
        "net_a_payer": total_amount - retenue_amount,
    }


def make_item(product: Product, quantity: int, unit_price: Decimal) -> InvoiceItem:
    """Ligne de facture avec noms dénormalisés et coût d'achat figé."""
    return InvoiceItem(
        product_id=product.id,
        product_name=product.name,
        reference=product.reference,
        quantity=quantity,
        unit_price=unit_price,
        total=unit_price * quantity,
        purchase_price=product.purchase_price,
    )


# ---------- Service ---------- #

class InvoiceService:
    def __init__(self, store: LedgerStore, user: User, settings: Optional[SettingsService] = None) -> None:
        self.store = store
        self.user = user
        self.settings = settings or SettingsService(store.data_dir)
        self.stock = StockAdjuster(store)

    # ----------- lecture -----------
    @action
    def get_invoice(self, invoice_id: str) -> ActionResult:
        authorize(self.user, "invoice.read")
        return ActionResult.ok(self._load(invoice_id))

    @action
    def list_invoices(self) -> ActionResult:
        authorize(self.user, "invoice.read")
        return ActionResult.ok(sorted(self.store.get_invoices(), key=lambda i: i.date, reverse=True))

    def _load(self, invoice_id: str) -> Invoice:
        inv = self.store.get_invoice(invoice_id)
        if inv is None:
            raise NotFound("Invoice not found.")
        return inv

    def _client(self, client_id: str) -> Client:
        client = self.store.get_client(client_id)
        if client is None:
            raise NotFound("Client not found.")
        return client

    # ----------- numérotation -----------
    def next_invoice_number(self, invoices: Optional[List[Invoice]] = None) -> str:
        invoices = self.store.get_invoices() if invoices is None else invoices
        return numbering.next_invoice_number(
            (inv.invoice_number for inv in invoices), self.settings.get(), now().year
        )

    @staticmethod
    def _ensure_unique(number: str, invoices: Iterable[Invoice], exclude_id: Optional[str] = None) -> None:
        if any(inv.invoice_number == number and inv.id != exclude_id for inv in invoices):
            raise StateConflict(f"Invoice number {number} already exists.")

    # ----------- lignes -----------
    @staticmethod
    def _build_items(
        lines: Iterable[InvoiceLineInput],
        products: Mapping[str, Product],
        snapshots: Optional[Mapping[str, Optional[Decimal]]] = None,
    ) -> List[InvoiceItem]:
        """`snapshots`: coûts d'achat déjà figés sur la facture, conservés tels quels."""
        snapshots = snapshots or {}
        items: List[InvoiceItem] = []
        for ln in lines:
            product = products.get(ln.product_id)
            if product is None:
                raise NotFound(f"Product not found: {ln.product_id}")
            if ln.unit_price < product.purchase_price:
                raise InvalidInput(f"Selling price for {product.name} cannot be below its purchase price.")
            item = make_item(product, ln.quantity, ln.unit_price)
            if ln.product_id in snapshots:
                item.purchase_price = snapshots[ln.product_id]
            items.append(item)
        return items

    def _void(self, invoice_id: str) -> None:
        self.store.update_invoice(invoice_id, {"status": "Cancelled"})

    def issue(
        self,
        client: Client,
        items: List[InvoiceItem],
        products: Mapping[str, Product],
        saga: Compensation,
        *,
        number: Optional[str] = None,
        date: Optional[datetime] = None,
        due_date: Optional[datetime] = None,
        vat: Decimal = ZERO,
        discount: Decimal = ZERO,
        retenue: Decimal = ZERO,
    ) -> Invoice:
        """
        Crée la facture (Unpaid) puis décrémente le stock ligne par ligne.
        Lignes déjà validées par l'appelant (saisie, commande ou devis); le stock est revérifié ici.
        """
        self.stock.ensure_available(
            requirements(items), {pid: p.quantity_in_stock for pid, p in products.items()}, products
        )
        invoices = self.store.get_invoices()
        if number is None:
            number = self.next_invoice_number(invoices)
        self._ensure_unique(number, invoices)

        issued_at = date or now()
        terms = self.settings.get().payment_terms_days
        inv = Invoice(
            invoice_number=number,
            client_id=client.id,
            client_name=client.name,
            date=issued_at,
            due_date=due_date or issued_at + timedelta(days=terms),
            items=items,
            status="Unpaid",
            amount_paid=ZERO,
            payments=[],
            **compute_totals(items, vat, discount, retenue),
        )
        self.store.add_invoice(inv)
        saga.record(f"invoice {number}", partial(self._void, inv.id))
        self.stock.apply({pid: -qty for pid, qty in requirements(items).items()}, products, saga)
        logger.info("Invoice %s issued to %s for %s", number, client.name, inv.total_amount)
        return inv

    # ----------- création -----------
    @action
    def create_invoice(self, payload: InvoiceDraft | Mapping) -> ActionResult:
        authorize(self.user, "invoice.create")
        draft = InvoiceDraft.model_validate(payload)
        client = self._client(draft.client_id)
        products = self.stock.product_map(ln.product_id for ln in draft.items)
        items = self._build_items(draft.items, products)

        number = None
        if draft.invoice_number_suffix:
            number = numbering.format_invoice_number(self.settings.get(), now().year, draft.invoice_number_suffix)

        with Compensation("create invoice") as saga:
            inv = self.issue(
                client, items, products, saga,
                number=number, date=draft.date, due_date=draft.due_date,
                vat=draft.vat, discount=draft.discount, retenue=draft.retenue,
            )
        return ActionResult.ok(inv)

    # ----------- modification -----------
    @action
    def edit_invoice(self, invoice_id: str, payload: InvoiceEdit | Mapping) -> ActionResult:
        authorize(self.user, "invoice.edit")
        draft = InvoiceEdit.model_validate(payload)
        original = self._load(invoice_id)
        if original.is_locked():
            raise StateConflict(
                f"Invoice {original.invoice_number} is {original.status.lower()} and cannot be modified."
            )
        client = self._client(draft.client_id)
        date = draft.date or original.date
        due_date = draft.due_date or original.due_date
        if due_date is not None and due_date < date:
            raise InvalidInput("Due date cannot be before the invoice date.")

        # instantané unique des produits; ceux supprimés depuis ne sont plus suivis
        products = {p.id: p for p in self.store.get_products()}
        snapshots: Dict[str, Optional[Decimal]] = {}
        for it in original.items:
            snapshots.setdefault(it.product_id, it.purchase_price)
        items = self._build_items(draft.items, products, snapshots)

        old_req = requirements(original.items)
        new_req = requirements(items)
        available = {pid: p.quantity_in_stock for pid, p in products.items()}
        for pid, qty in old_req.items():
            if pid in available:
                available[pid] += qty
        self.stock.ensure_available(new_req, available, products)

        totals = compute_totals(items, draft.vat, draft.discount, draft.retenue)
        if totals["total_amount"] < original.amount_paid - EPSILON:
            raise StateConflict(
                f"New total {totals['total_amount']} is below the amount already paid ({original.amount_paid})."
            )

        number = original.invoice_number
        if draft.invoice_number and draft.invoice_number.strip() != original.invoice_number:
            number = draft.invoice_number.strip()
            self._ensure_unique(number, self.store.get_invoices(), exclude_id=original.id)

        deltas: Dict[str, int] = {}
        for pid in list(old_req) + [p for p in new_req if p not in old_req]:
            if pid in products:
                deltas[pid] = old_req.get(pid, 0) - new_req.get(pid, 0)

        fields = {
            "invoice_number": number,
            "client_id": client.id,
            "client_name": client.name,
            "date": date,
            "due_date": due_date,
            "items": items,
            "status": derive_status(original.amount_paid, totals["total_amount"]),
            **totals,
        }
        restore = original.model_dump(include=set(fields))

        with Compensation(f"edit invoice {original.invoice_number}") as saga:
            updated = self.store.update_invoice(invoice_id, fields, expected_version=original.version)
            saga.record(f"invoice {original.invoice_number}", partial(self.store.update_invoice, invoice_id, restore))
            self.stock.apply(deltas, products, saga)

        logger.info("Invoice %s edited, total %s -> %s", number, original.total_amount, updated.total_amount)
        return ActionResult.ok(updated)

    # ----------- annulation -----------
    @action
    def cancel_invoice(self, invoice_id: str) -> ActionResult:
        authorize(self.user, "invoice.cancel")
        inv = self._load(invoice_id)
        if inv.status == "Cancelled":
            raise StateConflict(f"Invoice {inv.invoice_number} is already cancelled.")

        products = {p.id: p for p in self.store.get_products()}
        restock = {}
        for pid, qty in requirements(inv.items).items():
            if pid in products:
                restock[pid] = qty
            else:
                logger.warning("Product %s of invoice %s no longer exists, stock not restored", pid, inv.invoice_number)

        with Compensation(f"cancel invoice {inv.invoice_number}") as saga:
            self.stock.apply(restock, products, saga)
            # les paiements déjà encaissés restent visibles (piste d'audit)
            self.store.update_invoice(invoice_id, {"status": "Cancelled"}, expected_version=inv.version)

        logger.info("Invoice %s cancelled, stock restored for %d product(s)", inv.invoice_number, len(restock))
        return ActionResult.ok()
