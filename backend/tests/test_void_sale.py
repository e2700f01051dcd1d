"""
Void (compensation) tests.

Verifies:
- Voiding restores every line's stock through RETURN ledger entries
- Customer order count, spend and loyalty points are reversed exactly
- Payments are marked VOIDED; nothing is deleted
- A second void is a conflict
"""

from decimal import Decimal

import pytest

from storecore.errors import ConflictError, NotFoundError, ValidationError
from storecore.extensions import db
from storecore.models import AuditLog, Payment, Product, Sale, SaleLine, StockLedgerEntry
from storecore.models.ledger import ALERT_ACTIVE
from storecore.services import sales_service, stock_ledger
from storecore.services.compensation_service import void_sale


@pytest.fixture
def paid_sale(make_product, cashier, customer):
    product = make_product(stock=10, price_cents=5000, tax_rate_bps=500, min_stock=0)
    sale = sales_service.create_sale(
        lines=[{"product_id": product.id, "quantity": 2}],
        payment_method="CASH",
        actor_user_id=cashier.id,
        customer_id=customer.id,
    )
    return sale, product


class TestVoidSale:
    def test_restores_stock_and_customer(self, paid_sale, manager, customer):
        sale, product = paid_sale

        voided = void_sale(sale.id, reason="Customer returned goods", actor_user_id=manager.id)

        assert voided.status == "CANCELLED"
        assert voided.voided_by_user_id == manager.id
        assert voided.void_reason == "Customer returned goods"
        assert voided.voided_at is not None

        db.session.refresh(product)
        assert product.current_stock == Decimal("10")

        db.session.refresh(customer)
        assert customer.total_orders == 0
        assert customer.total_spent_cents == 0
        assert customer.loyalty_points == 0

    def test_return_entries_reference_the_sale(self, paid_sale, manager):
        sale, product = paid_sale

        void_sale(sale.id, reason="Wrong item", actor_user_id=manager.id)

        entries = (
            db.session.query(StockLedgerEntry)
            .filter_by(reference_type="sale", reference=str(sale.id))
            .order_by(StockLedgerEntry.id)
            .all()
        )
        assert [(e.movement_type, e.quantity) for e in entries] == [
            ("SALE", Decimal("-2")),
            ("RETURN", Decimal("2")),
        ]
        assert stock_ledger.reconcile_product(product.id)["consistent"] is True

    def test_nothing_is_deleted(self, paid_sale, manager):
        sale, _ = paid_sale

        void_sale(sale.id, reason="Wrong item", actor_user_id=manager.id)

        assert db.session.query(Sale).count() == 1
        assert db.session.query(SaleLine).filter_by(sale_id=sale.id).count() == 1
        payments = db.session.query(Payment).filter_by(sale_id=sale.id).all()
        assert len(payments) == 1
        assert payments[0].status == "VOIDED"
        assert payments[0].voided_by_user_id == manager.id

    def test_second_void_conflicts(self, paid_sale, manager):
        sale, product = paid_sale
        void_sale(sale.id, reason="First", actor_user_id=manager.id)

        with pytest.raises(ConflictError):
            void_sale(sale.id, reason="Second", actor_user_id=manager.id)

        db.session.refresh(product)
        assert product.current_stock == Decimal("10")

    def test_reason_required(self, paid_sale, manager):
        sale, _ = paid_sale

        with pytest.raises(ValidationError):
            void_sale(sale.id, reason="   ", actor_user_id=manager.id)

        db.session.refresh(sale)
        assert sale.status == "PAID"

    def test_unknown_sale(self, db_session, manager):
        with pytest.raises(NotFoundError):
            void_sale(999999, reason="x", actor_user_id=manager.id)

    def test_void_resolves_low_stock_alert(self, make_product, cashier, manager):
        product = make_product(stock=6, min_stock=5)
        sale = sales_service.create_sale(
            lines=[{"product_id": product.id, "quantity": 2}],
            payment_method="CASH",
            actor_user_id=cashier.id,
        )
        assert len(stock_ledger.list_stock_alerts(status=ALERT_ACTIVE, product_id=product.id)) == 1

        void_sale(sale.id, reason="Mistake", actor_user_id=manager.id)

        assert stock_ledger.list_stock_alerts(status=ALERT_ACTIVE, product_id=product.id) == []

    def test_restores_every_line(self, make_product, cashier, manager):
        first = make_product(stock=8, min_stock=0)
        second = make_product(stock=9, min_stock=0)
        sale = sales_service.create_sale(
            lines=[
                {"product_id": second.id, "quantity": 4},
                {"product_id": first.id, "quantity": 3},
            ],
            payment_method="CASH",
            actor_user_id=cashier.id,
        )

        void_sale(sale.id, reason="Wrong basket", actor_user_id=manager.id)

        db.session.expire_all()
        assert db.session.get(Product, first.id).current_stock == Decimal("8")
        assert db.session.get(Product, second.id).current_stock == Decimal("9")
        assert stock_ledger.verify_ledger() == []

    def test_audited(self, paid_sale, manager):
        sale, _ = paid_sale

        void_sale(sale.id, reason="Audit me", actor_user_id=manager.id)

        audit = db.session.query(AuditLog).filter_by(action="VOID_SALE", entity_id=sale.id).one()
        assert audit.details["reason"] == "Audit me"
