from __future__ import annotations

from decimal import Decimal

import pytest

from bizbook.errors import ConcurrencyConflict, InsufficientStock, NotFound
from bizbook.models.invoice import InvoiceItem
from bizbook.services.saga import Compensation
from bizbook.services.stock_service import StockAdjuster, requirements, weighted_average


def test_requirements_sum_repeated_products():
    lines = [
        InvoiceItem(product_id="a", quantity=2, unit_price=Decimal("1")),
        InvoiceItem(product_id="b", quantity=1, unit_price=Decimal("1")),
        InvoiceItem(product_id="a", quantity=3, unit_price=Decimal("1")),
    ]
    assert requirements(lines) == {"a": 5, "b": 1}


@pytest.mark.parametrize(
    "old_stock, old_price, qty, cost, expected",
    [
        (0, Decimal("0"), 10, Decimal("100"), Decimal("100.0000")),
        (10, Decimal("4000"), 10, Decimal("5000"), Decimal("4500.0000")),
        (3, Decimal("10"), 0, Decimal("99"), Decimal("10.0000")),
        (0, Decimal("250"), 0, Decimal("99"), Decimal("250")),
        (5, Decimal("120"), 5, Decimal("0"), Decimal("60.0000")),
        (0, Decimal("80"), 4, Decimal("0"), Decimal("80")),
    ],
)
def test_weighted_average(old_stock, old_price, qty, cost, expected):
    assert weighted_average(old_stock, old_price, qty, cost) == expected


def test_weighted_average_rounds_half_up():
    assert weighted_average(0, Decimal("1"), 1, Decimal("1.00005")) == Decimal("1.0001")


def test_product_map_reports_missing_ids(store, cement):
    adjuster = StockAdjuster(store)
    assert set(adjuster.product_map([cement.id])) == {cement.id}
    with pytest.raises(NotFound, match="Product not found: p-1, p-2"):
        adjuster.product_map([cement.id, "p-2", "p-1"])


def test_apply_refuses_negative_stock(store, cement):
    adjuster = StockAdjuster(store)
    with pytest.raises(InsufficientStock) as exc:
        with Compensation("test") as saga:
            adjuster.apply({cement.id: -11}, {cement.id: cement}, saga)
    assert exc.value.available == 10
    assert exc.value.requested == 11


def test_apply_is_undone_when_a_later_write_fails(store, cement, paint):
    adjuster = StockAdjuster(store)
    products = {cement.id: cement, paint.id: paint}
    store.update_product(paint.id, {"reference": "PEI-20B"}, expected_version=paint.version)

    with pytest.raises(ConcurrencyConflict):
        with Compensation("sale") as saga:
            adjuster.apply({cement.id: -2, paint.id: -1}, products, saga)

    assert store.get_product(cement.id).quantity_in_stock == 10
    assert store.get_product(paint.id).quantity_in_stock == 5


def test_receive_updates_stock_and_cost(store, cement):
    with Compensation("receipt") as saga:
        updated = StockAdjuster(store).receive(cement, 10, Decimal("5000"), saga)
    assert updated.quantity_in_stock == 20
    assert updated.purchase_price == Decimal("4500")
    assert saga.steps == 1
