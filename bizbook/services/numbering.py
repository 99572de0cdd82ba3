from __future__ import annotations

from typing import Iterable, Optional

from bizbook.models.settings import Settings


def invoice_number_head(settings: Settings, year: int) -> str:
    fmt = settings.invoice_number_format
    if fmt == "YEAR-NUM":
        return f"{year}-"
    if fmt == "PREFIX-NUM":
        return f"{settings.invoice_prefix}-"
    return f"{settings.invoice_prefix}-{year}-"


def format_invoice_number(settings: Settings, year: int, suffix: str) -> str:
    return f"{invoice_number_head(settings, year)}{suffix.strip()}"


def _max_tail(numbers: Iterable[Optional[str]], head: str) -> int:
    max_n = 0
    for num in numbers:
        if not isinstance(num, str) or not num.startswith(head):
            continue
        tail = num[len(head):]
        if tail.isdigit():
            max_n = max(max_n, int(tail))
    return max_n


def next_number(numbers: Iterable[Optional[str]], head: str, width: int) -> str:
    """Numéro suivant = plus grand suffixe numérique existant pour ce préfixe + 1."""
    return f"{head}{_max_tail(numbers, head) + 1:0{width}d}"


def next_invoice_number(numbers: Iterable[Optional[str]], settings: Settings, year: int) -> str:
    return next_number(numbers, invoice_number_head(settings, year), 4)


def next_quote_number(numbers: Iterable[Optional[str]], year: int) -> str:
    return next_number(numbers, f"PRO{year}-", 3)


def next_purchase_number(numbers: Iterable[Optional[str]], year: int) -> str:
    return next_number(numbers, f"ACH{year}-", 3)


def next_order_number(numbers: Iterable[Optional[str]], year: int) -> str:
    return next_number(numbers, f"CMD{year}-", 3)
