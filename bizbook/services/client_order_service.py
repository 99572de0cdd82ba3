from __future__ import annotations

import logging
from functools import partial
from typing import List, Mapping, Optional

from pydantic import BaseModel, Field

from bizbook.errors import NotFound, StateConflict
from bizbook.models.client_order import ClientOrder, ClientOrderItem
from bizbook.models.common import ZERO, ActionResult, now
from bizbook.models.user import User
from bizbook.services import numbering
from bizbook.services.authz import authorize
from bizbook.services.boundary import action
from bizbook.services.invoice_service import InvoiceService, make_item
from bizbook.services.saga import Compensation
from bizbook.services.settings_service import SettingsService
from bizbook.storage.ledger import LedgerStore

logger = logging.getLogger(__name__)


class OrderLineInput(BaseModel):
    product_id: str = Field(min_length=1)
    quantity: int = Field(ge=1)


class OrderRequest(BaseModel):
    client_id: str = Field(min_length=1)
    items: List[OrderLineInput] = Field(min_length=1)
    notes: str = ""


class ClientOrderService:
    """Commandes passées par les clients, transformées en facture par un administrateur."""

    def __init__(self, store: LedgerStore, user: User, settings: Optional[SettingsService] = None) -> None:
        self.store = store
        self.user = user
        self.invoices = InvoiceService(store, user, settings)

    def _load(self, order_id: str) -> ClientOrder:
        order = self.store.get_client_order(order_id)
        if order is None:
            raise NotFound("Order not found.")
        return order

    @action
    def submit_client_order(self, payload: OrderRequest | Mapping) -> ActionResult:
        authorize(self.user, "order.submit")
        req = OrderRequest.model_validate(payload)
        client = self.store.get_client(req.client_id)
        if client is None:
            raise NotFound("Client not found.")
        products = self.invoices.stock.product_map(ln.product_id for ln in req.items)

        # prix du catalogue au moment de la commande
        items = [
            ClientOrderItem(
                product_id=ln.product_id,
                product_name=products[ln.product_id].name,
                reference=products[ln.product_id].reference,
                quantity=ln.quantity,
                unit_price=products[ln.product_id].unit_price,
                total=products[ln.product_id].unit_price * ln.quantity,
            )
            for ln in req.items
        ]
        number = numbering.next_order_number(
            (o.order_number for o in self.store.get_client_orders()), now().year
        )
        order = ClientOrder(
            order_number=number,
            client_id=client.id,
            client_name=client.name,
            items=items,
            total_amount=sum((it.total for it in items), ZERO),
            status="Pending",
        )
        self.store.add_client_order(order)
        logger.info("Order %s submitted by %s (%d line(s))", number, client.name, len(items))
        return ActionResult.ok(order)

    @action
    def convert_order_to_invoice(self, order_id: str) -> ActionResult:
        authorize(self.user, "order.convert")
        order = self._load(order_id)
        if order.status != "Pending":
            raise StateConflict(f"Order {order.order_number} is already {order.status.lower()}.")
        client = self.store.get_client(order.client_id)
        if client is None:
            raise NotFound("Client not found.")

        # produit manquant -> échec avant toute écriture
        products = self.invoices.stock.product_map(it.product_id for it in order.items)
        items = [make_item(products[it.product_id], it.quantity, it.unit_price) for it in order.items]

        with Compensation(f"convert order {order.order_number}") as saga:
            # réservation de la commande (contrôle de version) avant la facture
            self.store.update_client_order(order_id, {"status": "Processed"}, expected_version=order.version)
            saga.record(
                f"order {order.order_number}",
                partial(self.store.update_client_order, order_id, {"status": "Pending", "invoice_id": None}),
            )
            inv = self.invoices.issue(client, items, products, saga)
            self.store.update_client_order(order_id, {"invoice_id": inv.id})

        logger.info("Order %s converted into invoice %s", order.order_number, inv.invoice_number)
        return ActionResult.ok(inv)

    @action
    def cancel_client_order(self, order_id: str) -> ActionResult:
        authorize(self.user, "order.cancel")
        order = self._load(order_id)
        if order.status != "Pending":
            raise StateConflict(
                f"Order {order.order_number} cannot be cancelled because its status is {order.status}."
            )
        self.store.update_client_order(order_id, {"status": "Cancelled"}, expected_version=order.version)
        logger.info("Order %s cancelled", order.order_number)
        return ActionResult.ok()
