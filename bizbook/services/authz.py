"""Contrôle des droits, consulté par chaque point d'entrée du noyau."""
from __future__ import annotations

from typing import Any, Callable, Dict, FrozenSet, Optional, Tuple

from bizbook.errors import AuthorizationError
from bizbook.models.user import User

ADMINS: FrozenSet[str] = frozenset({"Admin", "SuperAdmin"})
EVERYONE: FrozenSet[str] = frozenset({"Admin", "SuperAdmin", "User"})
SUPER_ADMIN: FrozenSet[str] = frozenset({"SuperAdmin"})

Rule = Callable[[Any], FrozenSet[str]]


def _purchase_cancel(purchase: Any) -> FrozenSet[str]:
    # annuler un achat déjà reçu reste réservé au SuperAdmin
    if getattr(purchase, "status", None) == "Received":
        return SUPER_ADMIN
    return ADMINS


CAPABILITIES: Dict[str, Tuple[FrozenSet[str], Optional[Rule]]] = {
    "invoice.read": (ADMINS, None),
    "invoice.create": (ADMINS, None),
    "invoice.edit": (ADMINS, None),
    "invoice.cancel": (ADMINS, None),
    "settlement.read": (ADMINS, None),
    "settlement.allocate": (ADMINS, None),
    "purchase.create": (ADMINS, None),
    "purchase.edit": (ADMINS, None),
    "purchase.receive": (ADMINS, None),
    "purchase.cancel": (ADMINS, _purchase_cancel),
    "order.submit": (EVERYONE, None),
    "order.convert": (ADMINS, None),
    "order.cancel": (ADMINS, None),
    "quote.create": (EVERYONE, None),
    "quote.update": (EVERYONE, None),
    "report.read": (ADMINS, None),
}


def can(user: Optional[User], action: str, resource: Any = None) -> bool:
    if user is None or action not in CAPABILITIES:
        return False
    roles, rule = CAPABILITIES[action]
    if rule is not None and resource is not None:
        roles = rule(resource)
    return user.role in roles


def authorize(user: Optional[User], action: str, resource: Any = None) -> None:
    if not can(user, action, resource):
        raise AuthorizationError("Action not allowed.")
