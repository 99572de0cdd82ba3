"""Exceptions levées par le noyau; converties en ActionResult à la frontière des actions."""
from __future__ import annotations


class LedgerError(Exception):
    """Base de toutes les erreurs métier; le message est montré tel quel à l'utilisateur."""


class InvalidInput(LedgerError):
    pass


class NotFound(LedgerError):
    pass


class StateConflict(LedgerError):
    pass


class InsufficientStock(StateConflict):
    def __init__(self, product_name: str, available: int, requested: int) -> None:
        super().__init__(
            f"Insufficient stock for {product_name}: have {available}, need {requested}"
        )
        self.product_name = product_name
        self.available = available
        self.requested = requested


class ConcurrencyConflict(StateConflict):
    pass


class StoreError(LedgerError):
    pass


class AuthorizationError(LedgerError):
    pass
