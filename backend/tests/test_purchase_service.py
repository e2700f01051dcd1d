"""
Purchase receiving and supplier payment tests.
"""

from decimal import Decimal

import pytest

from storecore.errors import ConflictError, NotFoundError, ValidationError
from storecore.extensions import db
from storecore.models import Product, StockLedgerEntry, Supplier, SupplierPayment
from storecore.services import purchase_service, stock_ledger
from storecore.time_utils import period_key, utcnow


def _receive(actor, supplier, product, qty=20, price=30, **kwargs):
    return purchase_service.create_purchase(
        supplier_id=supplier.id,
        lines=[{"product_id": product.id, "quantity": qty, "purchase_price_cents": price}],
        actor_user_id=actor.id,
        **kwargs,
    )


class TestCreatePurchase:
    def test_partial_purchase_then_settle(self, make_product, supplier, manager):
        product = make_product(stock=0, min_stock=0)

        purchase = _receive(manager, supplier, product, payment_status="PARTIAL")

        assert purchase.total_cents == 600
        assert purchase.net_cents == 600
        db.session.refresh(supplier)
        assert supplier.current_balance_cents == 600
        db.session.refresh(product)
        assert product.current_stock == Decimal("20")

        purchase_service.add_supplier_payment(
            purchase.id, amount_cents=600, payment_method="UPI", actor_user_id=manager.id
        )

        db.session.refresh(purchase)
        db.session.refresh(supplier)
        assert purchase.payment_status == "PAID"
        assert supplier.current_balance_cents == 0

        with pytest.raises(ConflictError) as exc_info:
            purchase_service.add_supplier_payment(
                purchase.id, amount_cents=1, payment_method="CASH", actor_user_id=manager.id
            )
        assert exc_info.value.details["remaining_cents"] == 0

    def test_credits_stock_through_ledger(self, make_product, supplier, manager):
        product = make_product(stock=5, min_stock=0)

        purchase = _receive(manager, supplier, product, qty=7)

        line = purchase.lines[0]
        entry = db.session.get(StockLedgerEntry, line.ledger_entry_id)
        assert entry.movement_type == "PURCHASE"
        assert entry.before_stock == Decimal("5")
        assert entry.after_stock == Decimal("12")
        assert entry.reference == str(purchase.id)

    def test_paid_on_receipt_records_payment(self, make_product, supplier, manager):
        product = make_product(stock=0, min_stock=0)

        purchase = _receive(manager, supplier, product, payment_status="PAID", payment_method="CASH")

        payments = db.session.query(SupplierPayment).filter_by(purchase_id=purchase.id).all()
        assert [p.amount_cents for p in payments] == [600]
        db.session.refresh(supplier)
        assert supplier.current_balance_cents == 0

    def test_paid_requires_method(self, make_product, supplier, manager):
        product = make_product(stock=0)
        with pytest.raises(ValidationError):
            _receive(manager, supplier, product, payment_status="PAID")

    def test_updates_prices(self, make_product, supplier, manager):
        product = make_product(stock=0, price_cents=5000)

        _receive(manager, supplier, product, price=2800)

        db.session.refresh(product)
        assert product.purchase_price_cents == 2800
        assert product.selling_price_cents == 5000

    def test_line_selling_price_override(self, make_product, supplier, manager):
        product = make_product(stock=0, price_cents=5000)

        purchase_service.create_purchase(
            supplier_id=supplier.id,
            lines=[{
                "product_id": product.id,
                "quantity": 10,
                "purchase_price_cents": 2800,
                "selling_price_cents": 5500,
                "expiry_date": "2027-01-31",
            }],
            actor_user_id=manager.id,
        )

        db.session.refresh(product)
        assert product.selling_price_cents == 5500
        assert product.purchase_price_cents == 2800

    def test_discount_and_tax(self, make_product, supplier, manager):
        product = make_product(stock=0)

        purchase = _receive(manager, supplier, product, qty=10, price=1000, discount_cents=500, tax_cents=900)

        assert purchase.total_cents == 10000
        assert purchase.net_cents == 10400

    def test_duplicate_invoice_number(self, make_product, supplier, manager):
        product = make_product(stock=0)
        _receive(manager, supplier, product, invoice_no="FF-1001")

        with pytest.raises(ConflictError):
            _receive(manager, supplier, product, invoice_no="FF-1001")

        db.session.expire_all()
        assert db.session.get(Product, product.id).current_stock == Decimal("20")

    def test_generated_number(self, make_product, supplier, manager):
        product = make_product(stock=0)
        purchase = _receive(manager, supplier, product)
        assert purchase.invoice_no.startswith("PO-")

    def test_generated_number_skips_manual_entry(self, make_product, supplier, manager):
        product = make_product(stock=0)
        key = period_key(utcnow())
        _receive(manager, supplier, product, invoice_no=f"PO-{key}-0002")

        numbers = [_receive(manager, supplier, product, qty=1).invoice_no for _ in range(3)]

        assert numbers == [f"PO-{key}-0001", f"PO-{key}-0003", f"PO-{key}-0004"]

    def test_lines_in_descending_product_order(self, make_product, supplier, manager):
        first = make_product(stock=0, min_stock=0, sku="SKU-A")
        second = make_product(stock=0, min_stock=0, sku="SKU-B")

        purchase = purchase_service.create_purchase(
            supplier_id=supplier.id,
            lines=[
                {"product_id": second.id, "quantity": 3, "purchase_price_cents": 100},
                {"product_id": first.id, "quantity": 4, "purchase_price_cents": 100},
            ],
            actor_user_id=manager.id,
        )

        assert [line.product_id for line in purchase.lines] == [second.id, first.id]
        db.session.expire_all()
        assert db.session.get(Product, first.id).current_stock == Decimal("4")
        assert db.session.get(Product, second.id).current_stock == Decimal("3")

    def test_unknown_product_changes_nothing(self, make_product, supplier, manager):
        product = make_product(stock=0)

        with pytest.raises(NotFoundError):
            purchase_service.create_purchase(
                supplier_id=supplier.id,
                lines=[
                    {"product_id": product.id, "quantity": 5, "purchase_price_cents": 100},
                    {"product_id": 987654, "quantity": 5, "purchase_price_cents": 100},
                ],
                actor_user_id=manager.id,
            )

        db.session.expire_all()
        assert db.session.get(Product, product.id).current_stock == Decimal("0")
        assert db.session.get(Supplier, supplier.id).current_balance_cents == 0

    def test_replenishment_resolves_alert(self, make_product, supplier, manager):
        product = make_product(stock=2, min_stock=5)
        assert len(stock_ledger.list_stock_alerts(product_id=product.id)) == 1

        _receive(manager, supplier, product, qty=10)

        assert stock_ledger.list_stock_alerts(product_id=product.id) == []


class TestSupplierPayments:
    def test_partial_payment(self, make_product, supplier, manager):
        product = make_product(stock=0)
        purchase = _receive(manager, supplier, product)

        purchase_service.add_supplier_payment(
            purchase.id, amount_cents=200, payment_method="CASH", actor_user_id=manager.id
        )

        db.session.refresh(purchase)
        db.session.refresh(supplier)
        assert purchase.payment_status == "PARTIAL"
        assert supplier.current_balance_cents == 400

    def test_overpayment_reports_remaining(self, make_product, supplier, manager):
        product = make_product(stock=0)
        purchase = _receive(manager, supplier, product)

        with pytest.raises(ConflictError) as exc_info:
            purchase_service.add_supplier_payment(
                purchase.id, amount_cents=601, payment_method="CASH", actor_user_id=manager.id
            )

        assert exc_info.value.details["remaining_cents"] == 600
        assert db.session.query(SupplierPayment).count() == 0

    def test_zero_amount_rejected(self, make_product, supplier, manager):
        product = make_product(stock=0)
        purchase = _receive(manager, supplier, product)

        with pytest.raises(ValidationError):
            purchase_service.add_supplier_payment(
                purchase.id, amount_cents=0, payment_method="CASH", actor_user_id=manager.id
            )
