from __future__ import annotations

from bizbook.models.settings import Settings
from bizbook.services import numbering


def test_invoice_heads_per_format():
    assert numbering.invoice_number_head(Settings(), 2025) == "FACT-2025-"
    assert numbering.invoice_number_head(Settings(invoice_number_format="YEAR-NUM"), 2025) == "2025-"
    assert numbering.invoice_number_head(Settings(invoice_number_format="PREFIX-NUM", invoice_prefix="FV"), 2025) == "FV-"


def test_next_invoice_number_skips_foreign_and_malformed_numbers():
    existing = ["FACT-2025-0007", "FACT-2024-0099", "FACT-2025-ABC", None, "2025-0500", "FACT-2025-0002"]
    assert numbering.next_invoice_number(existing, Settings(), 2025) == "FACT-2025-0008"


def test_first_number_of_the_year():
    assert numbering.next_invoice_number([], Settings(), 2026) == "FACT-2026-0001"
    assert numbering.next_quote_number(["PRO2025-014"], 2026) == "PRO2026-001"


def test_three_digit_sequences():
    assert numbering.next_quote_number(["PRO2025-009", "PRO2025-010"], 2025) == "PRO2025-011"
    assert numbering.next_purchase_number(["ACH2025-001"], 2025) == "ACH2025-002"
    assert numbering.next_order_number([], 2025) == "CMD2025-001"


def test_manual_suffix_is_trimmed():
    assert numbering.format_invoice_number(Settings(), 2025, " 0042 ") == "FACT-2025-0042"
