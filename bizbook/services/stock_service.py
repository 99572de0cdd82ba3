from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from functools import partial
from typing import Dict, Iterable, Mapping

from bizbook.errors import InsufficientStock, NotFound
from bizbook.models.common import ZERO
from bizbook.models.product import Product
from bizbook.services.saga import Compensation
from bizbook.storage.ledger import LedgerStore

logger = logging.getLogger(__name__)

COST_QUANT = Decimal("0.0001")


def requirements(lines: Iterable) -> Dict[str, int]:
    """Quantités cumulées par produit (une même référence sur deux lignes compte deux fois)."""
    out: Dict[str, int] = {}
    for ln in lines:
        out[ln.product_id] = out.get(ln.product_id, 0) + int(ln.quantity)
    return out


def weighted_average(old_stock: int, old_price: Decimal, received_qty: int, unit_cost: Decimal) -> Decimal:
    """Coût moyen pondéré après réception; garde l'ancien prix si le résultat est absurde."""
    total_units = old_stock + received_qty
    if total_units <= 0:
        return old_price
    value = Decimal(old_stock) * old_price + unit_cost * Decimal(received_qty)
    new_price = value / Decimal(total_units)
    if not new_price.is_finite() or new_price <= ZERO:
        return old_price
    return new_price.quantize(COST_QUANT, rounding=ROUND_HALF_UP)


class StockAdjuster:
    def __init__(self, store: LedgerStore) -> None:
        self.store = store

    def product_map(self, product_ids: Iterable[str]) -> Dict[str, Product]:
        """Instantané des produits concernés, lu une seule fois en début d'opération."""
        wanted = set(product_ids)
        found = {p.id: p for p in self.store.get_products() if p.id in wanted}
        missing = [pid for pid in wanted if pid not in found]
        if missing:
            raise NotFound(f"Product not found: {', '.join(sorted(missing))}")
        return found

    @staticmethod
    def ensure_available(
        required: Mapping[str, int],
        available: Mapping[str, int],
        products: Mapping[str, Product],
    ) -> None:
        for pid, qty in required.items():
            have = available.get(pid, 0)
            if qty > have:
                raise InsufficientStock(products[pid].name, have, qty)

    def _restore(self, product_id: str, fields: Dict[str, object]) -> None:
        self.store.update_product(product_id, fields)

    def apply(
        self,
        deltas: Mapping[str, int],
        products: Mapping[str, Product],
        saga: Compensation,
    ) -> Dict[str, Product]:
        """Applique des variations signées de stock, dans l'ordre des lignes."""
        updated: Dict[str, Product] = {}
        for pid, delta in deltas.items():
            if delta == 0:
                continue
            p = products[pid]
            new_qty = p.quantity_in_stock + delta
            if new_qty < 0:
                raise InsufficientStock(p.name, p.quantity_in_stock, -delta)
            updated[pid] = self.store.update_product(
                pid, {"quantity_in_stock": new_qty}, expected_version=p.version
            )
            saga.record(
                f"stock of {p.name}",
                partial(self._restore, pid, {"quantity_in_stock": p.quantity_in_stock}),
            )
            logger.debug("Stock %s: %d -> %d", p.name, p.quantity_in_stock, new_qty)
        return updated

    def receive(self, product: Product, qty: int, unit_cost: Decimal, saga: Compensation) -> Product:
        new_price = weighted_average(product.quantity_in_stock, product.purchase_price, qty, unit_cost)
        updated = self.store.update_product(
            product.id,
            {"quantity_in_stock": product.quantity_in_stock + qty, "purchase_price": new_price},
            expected_version=product.version,
        )
        saga.record(
            f"receipt of {product.name}",
            partial(
                self._restore,
                product.id,
                {"quantity_in_stock": product.quantity_in_stock, "purchase_price": product.purchase_price},
            ),
        )
        logger.info(
            "Received %d x %s: stock %d -> %d, cost %s -> %s",
            qty, product.name, product.quantity_in_stock, updated.quantity_in_stock,
            product.purchase_price, new_price,
        )
        return updated
