from __future__ import annotations
from pydantic import BaseModel
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
import uuid

# tolérance d'arrondi monétaire
EPSILON = Decimal("0.001")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


def gen_id() -> str:
    return str(uuid.uuid4())


def now() -> datetime:
    return datetime.now()


def pct_of(base: Decimal, pct: Decimal) -> Decimal:
    return base * pct / HUNDRED


class Versioned(BaseModel):
    """Documents partagés: chaque écriture incrémente `version` (compare-and-swap côté repo)."""
    version: int = 0


class ActionResult(BaseModel):
    success: bool = True
    message: Optional[str] = None
    data: Any = None

    @classmethod
    def ok(cls, data: Any = None) -> "ActionResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, message: str) -> "ActionResult":
        return cls(success=False, message=message)