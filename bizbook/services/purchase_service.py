from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from functools import partial
from typing import Annotated, List, Mapping

from pydantic import BaseModel, Field

from bizbook.errors import NotFound, StateConflict
from bizbook.models.client import Supplier
from bizbook.models.common import ZERO, ActionResult, now
from bizbook.models.purchase import Purchase, PurchaseItem
from bizbook.models.user import User
from bizbook.services import numbering
from bizbook.services.authz import authorize
from bizbook.services.boundary import action
from bizbook.services.saga import Compensation
from bizbook.services.stock_service import StockAdjuster, requirements
from bizbook.storage.ledger import LedgerStore

logger = logging.getLogger(__name__)

Amount = Annotated[Decimal, Field(ge=0)]


class PurchaseLineInput(BaseModel):
    product_id: str = Field(min_length=1)
    quantity: int = Field(ge=1)


class PurchaseDraft(BaseModel):
    supplier_id: str = Field(min_length=1)
    date: datetime = Field(default_factory=now)
    items: List[PurchaseLineInput] = Field(min_length=1)
    premier_versement: Amount = ZERO
    deuxieme_versement: Amount = ZERO
    transport_cost: Amount = ZERO
    other_fees: Amount = ZERO

    def cost_fields(self) -> dict:
        fields = {
            "premier_versement": self.premier_versement,
            "deuxieme_versement": self.deuxieme_versement,
            "transport_cost": self.transport_cost,
            "other_fees": self.other_fees,
        }
        fields["total_amount"] = sum(fields.values(), ZERO)
        return fields


class PurchaseService:
    """
    Commandes fournisseurs: le stock et le coût moyen ne bougent qu'une fois,
    au passage Pending -> Received. L'annulation n'inverse jamais ces effets.
    """

    def __init__(self, store: LedgerStore, user: User) -> None:
        self.store = store
        self.user = user
        self.stock = StockAdjuster(store)

    def _load(self, purchase_id: str) -> Purchase:
        p = self.store.get_purchase(purchase_id)
        if p is None:
            raise NotFound("Purchase not found.")
        return p

    def _supplier(self, supplier_id: str) -> Supplier:
        s = self.store.get_supplier(supplier_id)
        if s is None:
            raise NotFound("Supplier not found.")
        return s

    def _build_items(self, lines: List[PurchaseLineInput]) -> List[PurchaseItem]:
        products = self.stock.product_map(ln.product_id for ln in lines)
        return [
            PurchaseItem(
                product_id=ln.product_id,
                product_name=products[ln.product_id].name,
                reference=products[ln.product_id].reference,
                quantity=ln.quantity,
            )
            for ln in lines
        ]

    @action
    def create_purchase(self, payload: PurchaseDraft | Mapping) -> ActionResult:
        authorize(self.user, "purchase.create")
        draft = PurchaseDraft.model_validate(payload)
        supplier = self._supplier(draft.supplier_id)
        items = self._build_items(draft.items)

        number = numbering.next_purchase_number(
            (p.purchase_number for p in self.store.get_purchases()), now().year
        )
        purchase = Purchase(
            purchase_number=number,
            supplier_id=supplier.id,
            supplier_name=supplier.name,
            date=draft.date,
            items=items,
            status="Pending",
            **draft.cost_fields(),
        )
        self.store.add_purchase(purchase)
        logger.info("Purchase %s created for %s (%s)", number, supplier.name, purchase.total_amount)
        return ActionResult.ok(purchase)

    @action
    def edit_purchase(self, purchase_id: str, payload: PurchaseDraft | Mapping) -> ActionResult:
        authorize(self.user, "purchase.edit")
        draft = PurchaseDraft.model_validate(payload)
        original = self._load(purchase_id)
        if original.status == "Cancelled":
            raise StateConflict(f"Purchase {original.purchase_number} is cancelled and cannot be modified.")
        supplier = self._supplier(draft.supplier_id)

        fields = {
            "supplier_id": supplier.id,
            "supplier_name": supplier.name,
            "date": draft.date,
            **draft.cost_fields(),
        }
        items = self._build_items(draft.items)
        if original.status == "Pending":
            fields["items"] = items
        elif requirements(items) != requirements(original.items):
            # le stock a déjà été reçu pour ces lignes
            raise StateConflict(
                f"Purchase {original.purchase_number} has been received; its items can no longer change."
            )

        updated = self.store.update_purchase(purchase_id, fields, expected_version=original.version)
        return ActionResult.ok(updated)

    @action
    def receive_purchase(self, purchase_id: str) -> ActionResult:
        authorize(self.user, "purchase.receive")
        purchase = self._load(purchase_id)
        if purchase.status == "Received":
            raise StateConflict(f"Purchase {purchase.purchase_number} has already been received.")
        if purchase.status == "Cancelled":
            raise StateConflict(f"Purchase {purchase.purchase_number} is cancelled and cannot be received.")

        received = requirements(purchase.items)
        units = sum(received.values())
        if units <= 0:
            raise StateConflict(f"Purchase {purchase.purchase_number} has no units to receive.")
        products = self.stock.product_map(received)

        # répartition uniforme du coût total sur toutes les unités, quel que soit le produit
        landed_unit_cost = purchase.total_amount / Decimal(units)

        with Compensation(f"receive purchase {purchase.purchase_number}") as saga:
            for pid, qty in received.items():
                self.stock.receive(products[pid], qty, landed_unit_cost, saga)
            updated = self.store.update_purchase(
                purchase_id, {"status": "Received", "received_at": now()}, expected_version=purchase.version
            )
            saga.record(
                f"purchase {purchase.purchase_number}",
                partial(self.store.update_purchase, purchase_id, {"status": "Pending", "received_at": None}),
            )

        logger.info(
            "Purchase %s received: %d unit(s), landed cost %s per unit",
            purchase.purchase_number, units, landed_unit_cost,
        )
        return ActionResult.ok(updated)

    @action
    def cancel_purchase(self, purchase_id: str) -> ActionResult:
        purchase = self._load(purchase_id)
        authorize(self.user, "purchase.cancel", purchase)
        if purchase.status == "Cancelled":
            raise StateConflict(f"Purchase {purchase.purchase_number} is already cancelled.")

        # annotation comptable seulement: stock et coût moyen restent tels quels
        updated = self.store.update_purchase(purchase_id, {"status": "Cancelled"}, expected_version=purchase.version)
        logger.info("Purchase %s cancelled (was %s)", purchase.purchase_number, purchase.status)
        return ActionResult.ok(updated)

