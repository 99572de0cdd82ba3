from __future__ import annotations
from pydantic import Field
from decimal import Decimal
from .common import Versioned, gen_id


class Product(Versioned):
  id: str = Field(default_factory=gen_id)
  name: str
  reference: str = ""
  category: str = ""
  # coût moyen pondéré, recalculé à chaque réception d'achat
  purchase_price: Decimal = Decimal("0")
  unit_price: Decimal = Decimal("0")
  quantity_in_stock: int = Field(default=0, ge=0)
  reorder_point: int = 0
  safety_stock: int = 0
