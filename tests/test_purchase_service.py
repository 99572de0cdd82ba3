from __future__ import annotations

from decimal import Decimal

import pytest

from bizbook.models.common import now
from bizbook.models.product import Product
from bizbook.services.purchase_service import PurchaseService


@pytest.fixture
def empty_product(store):
    return store.add_product(Product(name="Tôle ondulée", reference="TOL-1", quantity_in_stock=0))


def _order(supplier, *lines, **costs):
    return {
        "supplier_id": supplier.id,
        "items": [{"product_id": p.id, "quantity": q} for p, q in lines],
        **costs,
    }


def test_create_sums_cost_components(store, admin, supplier, cement):
    res = PurchaseService(store, admin).create_purchase(_order(
        supplier, (cement, 5),
        premier_versement=10000, deuxieme_versement=5000, transport_cost=2500, other_fees=500,
    ))

    assert res.success, res.message
    p = res.data
    assert p.purchase_number == f"ACH{now().year}-001"
    assert p.status == "Pending"
    assert p.total_amount == Decimal("18000")
    assert store.get_product(cement.id).quantity_in_stock == 10


def test_negative_cost_is_invalid(store, admin, supplier, cement):
    res = PurchaseService(store, admin).create_purchase(_order(supplier, (cement, 1), transport_cost=-1))
    assert not res.success
    assert "transport_cost" in res.message


def test_receive_sets_stock_and_landed_cost(store, admin, supplier, empty_product):
    svc = PurchaseService(store, admin)
    purchase = svc.create_purchase(_order(supplier, (empty_product, 10), premier_versement=1000)).data

    res = svc.receive_purchase(purchase.id)

    assert res.success, res.message
    assert res.data.status == "Received"
    assert res.data.received_at is not None
    product = store.get_product(empty_product.id)
    assert product.quantity_in_stock == 10
    assert product.purchase_price == Decimal("100")


def test_receive_twice_is_rejected(store, admin, supplier, empty_product):
    svc = PurchaseService(store, admin)
    purchase = svc.create_purchase(_order(supplier, (empty_product, 10), premier_versement=1000)).data
    svc.receive_purchase(purchase.id)

    again = svc.receive_purchase(purchase.id)

    assert not again.success
    assert "already been received" in again.message
    assert store.get_product(empty_product.id).quantity_in_stock == 10


def test_receive_blends_with_existing_stock(store, admin, supplier, cement):
    # 10 en stock à 4000, 10 reçus pour 50000 -> (40000 + 50000) / 20
    svc = PurchaseService(store, admin)
    purchase = svc.create_purchase(_order(supplier, (cement, 10), premier_versement=45000, transport_cost=5000)).data

    svc.receive_purchase(purchase.id)

    product = store.get_product(cement.id)
    assert product.quantity_in_stock == 20
    assert product.purchase_price == Decimal("4500.0000")


def test_landed_cost_is_uniform_across_products(store, admin, supplier, cement, empty_product):
    svc = PurchaseService(store, admin)
    purchase = svc.create_purchase(_order(
        supplier, (cement, 2), (empty_product, 3), (cement, 5), premier_versement=30000,
    )).data

    assert svc.receive_purchase(purchase.id).success

    # 10 unités reçues -> 3000 l'unité
    assert store.get_product(empty_product.id).purchase_price == Decimal("3000")
    cement_after = store.get_product(cement.id)
    assert cement_after.quantity_in_stock == 17
    assert cement_after.purchase_price == Decimal("3588.2353")


def test_edit_pending_items_and_costs(store, admin, supplier, cement, paint):
    svc = PurchaseService(store, admin)
    purchase = svc.create_purchase(_order(supplier, (cement, 1), premier_versement=100)).data

    res = svc.edit_purchase(purchase.id, _order(supplier, (paint, 4), premier_versement=100, other_fees=50))

    assert res.success, res.message
    assert [it.product_id for it in res.data.items] == [paint.id]
    assert res.data.total_amount == Decimal("150")
    assert store.get_product(paint.id).quantity_in_stock == 5


def test_received_purchase_keeps_its_lines(store, admin, supplier, cement, paint):
    svc = PurchaseService(store, admin)
    purchase = svc.create_purchase(_order(supplier, (cement, 1), premier_versement=100)).data
    svc.receive_purchase(purchase.id)

    fees_only = svc.edit_purchase(purchase.id, _order(supplier, (cement, 1), premier_versement=100, other_fees=20))
    new_lines = svc.edit_purchase(purchase.id, _order(supplier, (paint, 1), premier_versement=100))

    assert fees_only.success, fees_only.message
    assert fees_only.data.total_amount == Decimal("120")
    assert not new_lines.success
    assert "can no longer change" in new_lines.message


def test_cancel_pending_purchase(store, admin, supplier, cement):
    svc = PurchaseService(store, admin)
    purchase = svc.create_purchase(_order(supplier, (cement, 3), premier_versement=300)).data

    assert svc.cancel_purchase(purchase.id).success
    assert store.get_purchase(purchase.id).status == "Cancelled"
    assert not svc.receive_purchase(purchase.id).success
    assert not svc.edit_purchase(purchase.id, _order(supplier, (cement, 3))).success
    assert store.get_product(cement.id).quantity_in_stock == 10


def test_cancel_received_purchase_needs_super_admin(store, admin, super_admin, supplier, empty_product):
    purchase = PurchaseService(store, admin).create_purchase(
        _order(supplier, (empty_product, 4), premier_versement=400)
    ).data
    PurchaseService(store, admin).receive_purchase(purchase.id)

    denied = PurchaseService(store, admin).cancel_purchase(purchase.id)
    allowed = PurchaseService(store, super_admin).cancel_purchase(purchase.id)

    assert denied.message == "Action not allowed."
    assert allowed.success
    # annulation sans effet sur le stock ni le coût
    product = store.get_product(empty_product.id)
    assert product.quantity_in_stock == 4
    assert product.purchase_price == Decimal("100")


def test_unknown_supplier(store, admin, cement):
    res = PurchaseService(store, admin).create_purchase(
        {"supplier_id": "ghost", "items": [{"product_id": cement.id, "quantity": 1}]}
    )
    assert res.message == "Supplier not found."
