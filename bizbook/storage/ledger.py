from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError
from pydantic_core import to_jsonable_python

from bizbook.config import data_dir as default_data_dir
from bizbook.errors import ConcurrencyConflict, NotFound, StoreError
from bizbook.models.client import Client, Supplier
from bizbook.models.client_order import ClientOrder
from bizbook.models.expense import Expense
from bizbook.models.invoice import Invoice
from bizbook.models.product import Product
from bizbook.models.purchase import Purchase
from bizbook.models.quote import Quote
from bizbook.storage.json_repo import JsonRepository, RecordNotFound, VersionConflict

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

# entité -> (modèle, fichier)
ENTITIES: Dict[str, tuple] = {
    "client": (Client, "clients.json"),
    "supplier": (Supplier, "suppliers.json"),
    "product": (Product, "products.json"),
    "invoice": (Invoice, "invoices.json"),
    "purchase": (Purchase, "purchases.json"),
    "quote": (Quote, "quotes.json"),
    "client_order": (ClientOrder, "client_orders.json"),
    "expense": (Expense, "expenses.json"),
}


class LedgerStore:
    """
    Magasin des documents d'un tenant (un fichier JSON par entité).
    Écriture atomique par document uniquement: aucune transaction multi-documents.
    Toutes les lectures renvoient des modèles pydantic, les écritures partielles passent par `update_*`.
    """

    def __init__(self, data_dir: Optional[Union[str, Path]] = None, *, backup_enabled: bool = True) -> None:
        base = Path(data_dir) if data_dir else default_data_dir()
        base.mkdir(parents=True, exist_ok=True)
        self.data_dir = base
        self._repos: Dict[str, JsonRepository] = {
            name: JsonRepository(base / filename, entity_name=name, key="id", backup_enabled=backup_enabled)
            for name, (_model, filename) in ENTITIES.items()
        }

    @classmethod
    def for_tenant(cls, root: Union[str, Path], tenant_id: str, **kwargs: Any) -> "LedgerStore":
        return cls(Path(root) / tenant_id, **kwargs)

    # ---------- Générique ---------- #

    def _model(self, entity: str) -> Type[BaseModel]:
        return ENTITIES[entity][0]

    def _hydrate(self, entity: str, row: Dict[str, Any]) -> Optional[BaseModel]:
        try:
            return self._model(entity).model_validate(row)
        except ValidationError as e:
            # entrée invalide ignorée pour ne pas casser les listes
            logger.warning("Skipping invalid %s record %s: %s", entity, row.get("id"), e)
            return None

    def _list(self, entity: str) -> List[Any]:
        try:
            rows = self._repos[entity].list_all()
        except OSError as e:
            raise StoreError(f"Could not read {entity} records: {e}") from e
        out = []
        for row in rows:
            obj = self._hydrate(entity, row)
            if obj is not None:
                out.append(obj)
        return out

    def _get(self, entity: str, obj_id: str) -> Optional[Any]:
        try:
            row = self._repos[entity].get_by_id(obj_id)
        except OSError as e:
            raise StoreError(f"Could not read {entity} {obj_id}: {e}") from e
        return self._hydrate(entity, row) if row else None

    def _add(self, entity: str, obj: M) -> M:
        try:
            self._repos[entity].add(obj)
        except OSError as e:
            raise StoreError(f"Could not save {entity}: {e}") from e
        return obj

    def _update(
        self,
        entity: str,
        obj_id: str,
        partial: Mapping[str, Any],
        expected_version: Optional[int] = None,
    ) -> Any:
        payload = to_jsonable_python(dict(partial))
        try:
            merged = self._repos[entity].patch(obj_id, payload, expected_version=expected_version)
        except VersionConflict as e:
            raise ConcurrencyConflict(f"{e}; please retry") from e
        except RecordNotFound as e:
            raise NotFound(str(e)) from e
        except OSError as e:
            raise StoreError(f"Could not save {entity} {obj_id}: {e}") from e
        return self._model(entity).model_validate(merged)

    # ---------- Clients / fournisseurs ---------- #

    def get_clients(self) -> List[Client]:
        return self._list("client")

    def get_client(self, client_id: str) -> Optional[Client]:
        return self._get("client", client_id)

    def add_client(self, client: Client) -> Client:
        return self._add("client", client)

    def update_client(self, client_id: str, partial: Mapping[str, Any]) -> Client:
        return self._update("client", client_id, partial)

    def get_suppliers(self) -> List[Supplier]:
        return self._list("supplier")

    def get_supplier(self, supplier_id: str) -> Optional[Supplier]:
        return self._get("supplier", supplier_id)

    def add_supplier(self, supplier: Supplier) -> Supplier:
        return self._add("supplier", supplier)

    # ---------- Produits ---------- #

    def get_products(self) -> List[Product]:
        return self._list("product")

    def get_product(self, product_id: str) -> Optional[Product]:
        return self._get("product", product_id)

    def add_product(self, product: Product) -> Product:
        return self._add("product", product)

    def update_product(
        self, product_id: str, partial: Mapping[str, Any], expected_version: Optional[int] = None
    ) -> Product:
        return self._update("product", product_id, partial, expected_version)

    # ---------- Factures ---------- #

    def get_invoices(self) -> List[Invoice]:
        return self._list("invoice")

    def get_invoice(self, invoice_id: str) -> Optional[Invoice]:
        return self._get("invoice", invoice_id)

    def add_invoice(self, invoice: Invoice) -> Invoice:
        return self._add("invoice", invoice)

    def update_invoice(
        self, invoice_id: str, partial: Mapping[str, Any], expected_version: Optional[int] = None
    ) -> Invoice:
        return self._update("invoice", invoice_id, partial, expected_version)

    # ---------- Achats ---------- #

    def get_purchases(self) -> List[Purchase]:
        return self._list("purchase")

    def get_purchase(self, purchase_id: str) -> Optional[Purchase]:
        return self._get("purchase", purchase_id)

    def add_purchase(self, purchase: Purchase) -> Purchase:
        return self._add("purchase", purchase)

    def update_purchase(
        self, purchase_id: str, partial: Mapping[str, Any], expected_version: Optional[int] = None
    ) -> Purchase:
        return self._update("purchase", purchase_id, partial, expected_version)

    # ---------- Devis / commandes ---------- #

    def get_quotes(self) -> List[Quote]:
        return self._list("quote")

    def get_quote(self, quote_id: str) -> Optional[Quote]:
        return self._get("quote", quote_id)

    def add_quote(self, quote: Quote) -> Quote:
        return self._add("quote", quote)

    def update_quote(
        self, quote_id: str, partial: Mapping[str, Any], expected_version: Optional[int] = None
    ) -> Quote:
        return self._update("quote", quote_id, partial, expected_version)

    def get_client_orders(self) -> List[ClientOrder]:
        return self._list("client_order")

    def get_client_order(self, order_id: str) -> Optional[ClientOrder]:
        return self._get("client_order", order_id)

    def add_client_order(self, order: ClientOrder) -> ClientOrder:
        return self._add("client_order", order)

    def update_client_order(
        self, order_id: str, partial: Mapping[str, Any], expected_version: Optional[int] = None
    ) -> ClientOrder:
        return self._update("client_order", order_id, partial, expected_version)

    # ---------- Dépenses ---------- #

    def get_expenses(self) -> List[Expense]:
        return self._list("expense")

    def add_expense(self, expense: Expense) -> Expense:
        return self._add("expense", expense)
