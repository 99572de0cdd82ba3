from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from functools import partial
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field

from bizbook.errors import NotFound, StateConflict
from bizbook.models.common import ZERO, ActionResult, now
from bizbook.models.product import Product
from bizbook.models.quote import CONVERTIBLE_STATUSES, Quote, QuoteItem, QuoteStatus
from bizbook.models.user import User
from bizbook.services import numbering
from bizbook.services.authz import authorize
from bizbook.services.boundary import action
from bizbook.services.invoice_service import InvoiceService, Percent, compute_totals, make_item
from bizbook.services.saga import Compensation
from bizbook.services.settings_service import SettingsService
from bizbook.storage.ledger import LedgerStore

logger = logging.getLogger(__name__)

QUOTE_TOTAL_FIELDS = ("sub_total", "vat", "vat_amount", "discount", "discount_amount", "total_amount")


# ---------- Saisie ---------- #

class QuoteLineInput(BaseModel):
    product_id: str = Field(min_length=1)
    quantity: int = Field(ge=1)
    # vide -> prix de vente du catalogue
    unit_price: Optional[Decimal] = Field(default=None, ge=0)


class QuoteDraft(BaseModel):
    client_id: str = Field(min_length=1)
    items: List[QuoteLineInput] = Field(min_length=1)
    date: datetime = Field(default_factory=now)
    expiry_date: Optional[datetime] = None
    vat: Percent = ZERO
    discount: Percent = ZERO


class QuoteUpdate(BaseModel):
    status: Optional[QuoteStatus] = None
    items: Optional[List[QuoteLineInput]] = Field(default=None, min_length=1)
    vat: Optional[Percent] = None
    discount: Optional[Percent] = None
    expiry_date: Optional[datetime] = None


def _quote_totals(items: List[QuoteItem], vat: Decimal, discount: Decimal) -> Dict[str, Decimal]:
    totals = compute_totals(items, vat, discount)
    return {k: totals[k] for k in QUOTE_TOTAL_FIELDS}


# ---------- Service ---------- #

class QuoteService:
    def __init__(self, store: LedgerStore, user: User, settings: Optional[SettingsService] = None) -> None:
        self.store = store
        self.user = user
        self.invoices = InvoiceService(store, user, settings)

    def _load(self, quote_id: str) -> Quote:
        q = self.store.get_quote(quote_id)
        if q is None:
            raise NotFound("Quote not found.")
        return q

    def _build_items(self, lines: List[QuoteLineInput]) -> List[QuoteItem]:
        products = self.invoices.stock.product_map(ln.product_id for ln in lines)
        items: List[QuoteItem] = []
        for ln in lines:
            p: Product = products[ln.product_id]
            price = p.unit_price if ln.unit_price is None else ln.unit_price
            items.append(QuoteItem(
                product_id=p.id,
                product_name=p.name,
                reference=p.reference,
                quantity=ln.quantity,
                unit_price=price,
                total=price * ln.quantity,
            ))
        return items

    @action
    def create_quote(self, payload: QuoteDraft | Mapping) -> ActionResult:
        authorize(self.user, "quote.create")
        draft = QuoteDraft.model_validate(payload)
        client = self.store.get_client(draft.client_id)
        if client is None:
            raise NotFound("Client not found.")
        items = self._build_items(draft.items)

        number = numbering.next_quote_number((q.quote_number for q in self.store.get_quotes()), now().year)
        quote = Quote(
            quote_number=number,
            client_id=client.id,
            client_name=client.name,
            date=draft.date,
            expiry_date=draft.expiry_date,
            items=items,
            status="Draft",
            **_quote_totals(items, draft.vat, draft.discount),
        )
        self.store.add_quote(quote)
        logger.info("Quote %s created for %s (%s)", number, client.name, quote.total_amount)
        return ActionResult.ok(quote)

    @action
    def update_quote(self, quote_id: str, payload: QuoteUpdate | Mapping) -> ActionResult:
        """
        Modifie un devis ouvert (Draft/Sent). Le passage à Accepted génère la facture
        une seule fois: un devis accepté ou refusé n'est plus modifiable.
        """
        authorize(self.user, "quote.update")
        upd = QuoteUpdate.model_validate(payload)
        previous = self._load(quote_id)
        if previous.status not in CONVERTIBLE_STATUSES:
            raise StateConflict(f"Quote {previous.quote_number} is {previous.status.lower()} and can no longer change.")

        fields: Dict[str, Any] = {}
        items = previous.items
        if upd.items is not None:
            items = self._build_items(upd.items)
            fields["items"] = items
        if upd.items is not None or upd.vat is not None or upd.discount is not None:
            vat = previous.vat if upd.vat is None else upd.vat
            discount = previous.discount if upd.discount is None else upd.discount
            fields.update(_quote_totals(items, vat, discount))
        if upd.expiry_date is not None:
            fields["expiry_date"] = upd.expiry_date
        if upd.status is not None:
            fields["status"] = upd.status

        if upd.status != "Accepted":
            updated = self.store.update_quote(quote_id, fields, expected_version=previous.version)
            return ActionResult.ok(updated)

        authorize(self.user, "invoice.create")
        return ActionResult.ok(self._accept(previous, fields))

    def _accept(self, previous: Quote, fields: Dict[str, Any]) -> Quote:
        client = self.store.get_client(previous.client_id)
        if client is None:
            raise NotFound("Client not found.")
        quote = previous.model_copy(update=fields)

        # produit manquant -> échec avant toute écriture
        products = self.invoices.stock.product_map(it.product_id for it in quote.items)
        items = [make_item(products[it.product_id], it.quantity, it.unit_price) for it in quote.items]

        restore = previous.model_dump(include=set(fields) | {"invoice_id"})
        with Compensation(f"accept quote {previous.quote_number}") as saga:
            # passage à Accepted d'abord, avec contrôle de version
            self.store.update_quote(previous.id, fields, expected_version=previous.version)
            saga.record(f"quote {previous.quote_number}", partial(self.store.update_quote, previous.id, restore))
            inv = self.invoices.issue(client, items, products, saga, vat=quote.vat, discount=quote.discount)
            updated = self.store.update_quote(previous.id, {"invoice_id": inv.id})

        logger.info("Quote %s accepted, invoice %s issued", previous.quote_number, inv.invoice_number)
        return updated
