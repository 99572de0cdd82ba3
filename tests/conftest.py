from __future__ import annotations

from decimal import Decimal

import pytest

from bizbook.models.client import Client, Supplier
from bizbook.models.invoice import Invoice, InvoiceItem, Payment
from bizbook.models.product import Product
from bizbook.models.user import User
from bizbook.storage.ledger import LedgerStore


@pytest.fixture
def store(tmp_path):
    return LedgerStore(tmp_path / "tenant", backup_enabled=False)


@pytest.fixture
def admin():
    return User(name="Awa", role="Admin")


@pytest.fixture
def super_admin():
    return User(name="Koffi", role="SuperAdmin")


@pytest.fixture
def clerk():
    return User(name="Yao", role="User")


@pytest.fixture
def client(store):
    return store.add_client(Client(name="Boutique Akwaba", email="contact@akwaba.ci"))


@pytest.fixture
def other_client(store):
    return store.add_client(Client(name="Quincaillerie du Port"))


@pytest.fixture
def supplier(store):
    return store.add_supplier(Supplier(name="Import Sahel"))


@pytest.fixture
def cement(store):
    return store.add_product(Product(
        name="Ciment 50kg", reference="CIM-50",
        purchase_price=Decimal("4000"), unit_price=Decimal("5000"), quantity_in_stock=10,
    ))


@pytest.fixture
def paint(store):
    return store.add_product(Product(
        name="Peinture 20L", reference="PEI-20",
        purchase_price=Decimal("15000"), unit_price=Decimal("20000"), quantity_in_stock=5,
    ))


@pytest.fixture
def seed_invoice(store):
    """Facture écrite directement dans le magasin, sans effet de stock."""

    def _seed(client, number, total, date, amount_paid=Decimal("0"), status="Unpaid"):
        inv = Invoice(
            invoice_number=number,
            client_id=client.id,
            client_name=client.name,
            date=date,
            due_date=date,
            items=[InvoiceItem(product_id="p-legacy", product_name="Divers", quantity=1,
                               unit_price=Decimal(total), total=Decimal(total))],
            sub_total=Decimal(total),
            total_amount=Decimal(total),
            net_a_payer=Decimal(total),
            amount_paid=Decimal(amount_paid),
            payments=[Payment(amount=Decimal(amount_paid), date=date)] if Decimal(amount_paid) > 0 else [],
            status=status,
        )
        return store.add_invoice(inv)

    return _seed
