"""
Concurrency tests against a file-backed SQLite database.

Verifies:
- Concurrent sales of the last units never oversell (stock check and
  debit happen in one serialized unit of work)
- Concurrent sales never share an invoice number
"""

import threading
from decimal import Decimal

import pytest

from storecore import create_app
from storecore.config import TestConfig
from storecore.errors import InsufficientStockError
from storecore.extensions import db
from storecore.models import Product, Sale, StockLedgerEntry, User
from storecore.models.auth import ROLE_CASHIER
from storecore.services import catalog_service, sales_service, stock_ledger
from storecore.services.auth_service import hash_password


@pytest.fixture
def file_app(tmp_path):
    class FileConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'concurrency.sqlite3'}"
        WRITE_RETRY_ATTEMPTS = 5

    app = create_app(FileConfig)
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.engine.dispose()


@pytest.fixture
def seeded(file_app):
    with file_app.app_context():
        cashier = User(username="cashier", name="Cashier", password_hash=hash_password("Password123"), role=ROLE_CASHIER)
        db.session.add(cashier)
        db.session.commit()
        category = catalog_service.create_category("Dairy", actor_user_id=cashier.id)
        product = catalog_service.create_product(
            {"sku": "MILK-1L", "name": "Milk 1L", "category_id": category.id, "selling_price_cents": 6000,
             "min_stock_alert": Decimal("2")},
            actor_user_id=cashier.id,
            opening_stock=5,
        )
        return cashier.id, product.id


def _run_threads(count, target):
    barrier = threading.Barrier(count)
    threads = [threading.Thread(target=target, args=(barrier,)) for _ in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)


def test_last_units_never_oversold(file_app, seeded):
    cashier_id, product_id = seeded
    results = {"ok": [], "insufficient": 0, "other": []}
    lock = threading.Lock()

    def buy_one(barrier):
        with file_app.app_context():
            barrier.wait()
            try:
                sale = sales_service.create_sale(
                    lines=[{"product_id": product_id, "quantity": 1}],
                    payment_method="CASH",
                    actor_user_id=cashier_id,
                )
                with lock:
                    results["ok"].append(sale.invoice_no)
            except InsufficientStockError:
                with lock:
                    results["insufficient"] += 1
            except Exception as exc:  # collected for the assertion message
                with lock:
                    results["other"].append(repr(exc))

    _run_threads(10, buy_one)

    assert results["other"] == []
    assert len(results["ok"]) == 5
    assert results["insufficient"] == 5
    assert len(set(results["ok"])) == 5

    with file_app.app_context():
        assert db.session.get(Product, product_id).current_stock == Decimal("0")
        assert db.session.query(Sale).count() == 5
        sale_entries = db.session.query(StockLedgerEntry).filter_by(product_id=product_id, movement_type="SALE").count()
        assert sale_entries == 5
        assert stock_ledger.verify_ledger() == []
        assert len(stock_ledger.list_stock_alerts(product_id=product_id)) == 1


def test_invoice_numbers_unique_under_load(file_app, seeded):
    cashier_id, product_id = seeded
    with file_app.app_context():
        from storecore.services.inventory_service import adjust_stock
        adjust_stock(product_id, quantity=100, mode="ADD", actor_user_id=cashier_id)

    invoices = []
    lock = threading.Lock()

    def buy(barrier):
        with file_app.app_context():
            barrier.wait()
            for _ in range(3):
                sale = sales_service.create_sale(
                    lines=[{"product_id": product_id, "quantity": 1}],
                    payment_method="UPI",
                    actor_user_id=cashier_id,
                )
                with lock:
                    invoices.append(sale.invoice_no)

    _run_threads(6, buy)

    assert len(invoices) == 18
    assert len(set(invoices)) == 18
    sequence = sorted(int(no[-4:]) for no in invoices)
    assert sequence == list(range(sequence[0], sequence[0] + 18))
