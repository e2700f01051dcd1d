"""
Sale transaction engine tests.

Verifies:
- Totals, tax and loyalty are computed in integer cents
- A sale debits stock through the ledger and links each line to its entry
- Any failure leaves no sale, payment, ledger entry or customer change behind
- Invoice numbers come from the day sequence
- Weighed lines take their quantity from the scale reading
"""

import re
from decimal import Decimal

import pytest

from storecore.errors import InsufficientStockError, NotFoundError, ValidationError
from storecore.extensions import db
from storecore.models import AuditLog, Customer, Payment, Product, Sale, StockLedgerEntry
from storecore.models.catalog import UNIT_GRAM, UNIT_KG
from storecore.models.ledger import ALERT_ACTIVE
from storecore.services import catalog_service, sales_service, stock_ledger
from storecore.services.settings_service import StoreSettings


def _sell(actor, product, qty, **kwargs):
    kwargs.setdefault("payment_method", "CASH")
    return sales_service.create_sale(
        lines=[{"product_id": product.id, "quantity": str(qty)}],
        actor_user_id=actor.id,
        **kwargs,
    )


class TestSaleTotals:
    def test_two_units_with_tax(self, make_product, cashier, customer):
        product = make_product(stock=10, price_cents=5000, tax_rate_bps=500)

        sale = _sell(cashier, product, 2, customer_id=customer.id)

        assert sale.subtotal_cents == 10000
        assert sale.tax_cents == 500
        assert sale.discount_cents == 0
        assert sale.total_cents == 10500
        assert sale.status == "PAID"
        assert sale.customer_name == "Asha Rao"

        db.session.refresh(customer)
        assert customer.total_orders == 1
        assert customer.total_spent_cents == 10500
        assert customer.loyalty_points == 1
        assert sale.loyalty_points_earned == 1

    def test_store_tax_rate_applies_when_product_has_none(self, make_product, cashier):
        product = make_product(stock=10, price_cents=1000, tax_rate_bps=None)

        sale = sales_service.create_sale(
            lines=[{"product_id": product.id, "quantity": 3}],
            payment_method="UPI",
            actor_user_id=cashier.id,
            settings=StoreSettings(tax_rate_bps=1800),
        )

        assert sale.subtotal_cents == 3000
        assert sale.tax_cents == 540
        assert sale.total_cents == 3540

    def test_discount_reduces_total(self, make_product, cashier):
        product = make_product(stock=10, price_cents=5000)

        sale = _sell(cashier, product, 1, discount_cents=700)

        assert sale.total_cents == 4300
        assert sale.payments[0].amount_cents == 4300

    def test_discount_cannot_exceed_total(self, make_product, cashier):
        product = make_product(stock=10, price_cents=5000)

        with pytest.raises(ValidationError) as exc_info:
            _sell(cashier, product, 1, discount_cents=5001)

        assert exc_info.value.field == "discount_cents"
        assert db.session.query(Sale).count() == 0

    def test_unit_price_override(self, make_product, cashier):
        product = make_product(stock=10, price_cents=5000)

        sale = sales_service.create_sale(
            lines=[{"product_id": product.id, "quantity": 2, "unit_price_cents": 4500}],
            payment_method="CARD",
            actor_user_id=cashier.id,
        )

        assert sale.subtotal_cents == 9000
        assert sale.lines[0].unit_price_cents == 4500

    def test_walk_in_sale_earns_no_points(self, make_product, cashier):
        product = make_product(stock=10, price_cents=50000)

        sale = _sell(cashier, product, 1)

        assert sale.customer_id is None
        assert sale.loyalty_points_earned == 0


class TestSaleEffects:
    def test_stock_debited_through_ledger(self, make_product, cashier):
        product = make_product(stock=10, min_stock=0)

        sale = _sell(cashier, product, 3)

        db.session.refresh(product)
        assert product.current_stock == Decimal("7")
        entry = db.session.get(StockLedgerEntry, sale.lines[0].ledger_entry_id)
        assert entry.movement_type == "SALE"
        assert entry.quantity == Decimal("-3")
        assert entry.reference_type == "sale"
        assert entry.reference == str(sale.id)

    def test_one_completed_payment(self, make_product, cashier):
        product = make_product(stock=10)

        sale = _sell(cashier, product, 1, payment_method="upi", payment_reference="UTR123")

        payments = db.session.query(Payment).filter_by(sale_id=sale.id).all()
        assert len(payments) == 1
        assert payments[0].payment_method == "UPI"
        assert payments[0].status == "COMPLETED"
        assert payments[0].reference_no == "UTR123"

    def test_audit_entry_written(self, make_product, cashier):
        product = make_product(stock=10)

        sale = _sell(cashier, product, 1)

        audit = db.session.query(AuditLog).filter_by(action="CREATE_SALE", entity_id=sale.id).one()
        assert audit.actor_user_id == cashier.id
        assert audit.details["invoice_no"] == sale.invoice_no

    def test_low_stock_alert_raised(self, make_product, cashier):
        product = make_product(stock=10, min_stock=5)

        _sell(cashier, product, 6)

        alerts = stock_ledger.list_stock_alerts(status=ALERT_ACTIVE, product_id=product.id)
        assert len(alerts) == 1
        assert alerts[0].current_stock == Decimal("4")

    def test_selling_out_raises_zero_stock_alert(self, make_product, cashier):
        product = make_product(stock=10, min_stock=5)
        _sell(cashier, product, 6)

        _sell(cashier, product, 4)

        alerts = stock_ledger.list_stock_alerts(status=ALERT_ACTIVE, product_id=product.id)
        assert len(alerts) == 1
        assert alerts[0].current_stock == Decimal("0")


class TestSaleRejections:
    def test_insufficient_stock_changes_nothing(self, make_product, cashier, customer):
        product = make_product(stock=10)
        entries_before = db.session.query(StockLedgerEntry).count()

        with pytest.raises(InsufficientStockError) as exc_info:
            _sell(cashier, product, 15, customer_id=customer.id)

        assert exc_info.value.available == Decimal("10")
        assert exc_info.value.requested == Decimal("15")
        db.session.expire_all()
        assert db.session.get(Product, product.id).current_stock == Decimal("10")
        assert db.session.query(Sale).count() == 0
        assert db.session.query(Payment).count() == 0
        assert db.session.query(StockLedgerEntry).count() == entries_before
        assert db.session.get(Customer, customer.id).total_orders == 0

    def test_repeated_product_lines_are_checked_together(self, make_product, cashier):
        product = make_product(stock=5)

        with pytest.raises(InsufficientStockError) as exc_info:
            sales_service.create_sale(
                lines=[
                    {"product_id": product.id, "quantity": 3},
                    {"product_id": product.id, "quantity": 3},
                ],
                payment_method="CASH",
                actor_user_id=cashier.id,
            )

        assert exc_info.value.requested == Decimal("6")
        db.session.expire_all()
        assert db.session.get(Product, product.id).current_stock == Decimal("5")

    def test_one_bad_line_rejects_whole_sale(self, make_product, cashier):
        plenty = make_product(stock=10)
        scarce = make_product(stock=1)

        with pytest.raises(InsufficientStockError):
            sales_service.create_sale(
                lines=[
                    {"product_id": plenty.id, "quantity": 2},
                    {"product_id": scarce.id, "quantity": 2},
                ],
                payment_method="CASH",
                actor_user_id=cashier.id,
            )

        db.session.expire_all()
        assert db.session.get(Product, plenty.id).current_stock == Decimal("10")
        assert db.session.query(Sale).count() == 0

    def test_empty_lines(self, db_session, cashier):
        with pytest.raises(ValidationError):
            sales_service.create_sale(lines=[], payment_method="CASH", actor_user_id=cashier.id)

    def test_unknown_payment_method(self, make_product, cashier):
        product = make_product(stock=10)
        with pytest.raises(ValidationError) as exc_info:
            _sell(cashier, product, 1, payment_method="BARTER")
        assert exc_info.value.field == "payment_method"

    @pytest.mark.parametrize("qty", ["0", "-1", "abc", "1.2345"])
    def test_bad_quantity(self, make_product, cashier, qty):
        product = make_product(stock=10)
        with pytest.raises(ValidationError):
            _sell(cashier, product, qty)

    def test_unknown_product(self, db_session, cashier):
        with pytest.raises(NotFoundError):
            sales_service.create_sale(
                lines=[{"product_id": 424242, "quantity": 1}],
                payment_method="CASH",
                actor_user_id=cashier.id,
            )

    def test_unknown_customer(self, make_product, cashier):
        product = make_product(stock=10)
        with pytest.raises(NotFoundError):
            _sell(cashier, product, 1, customer_id=424242)
        assert db.session.query(Sale).count() == 0

    def test_inactive_product(self, make_product, cashier, owner):
        product = make_product(stock=10)
        catalog_service.update_product(product.id, {"is_active": False}, actor_user_id=owner.id)

        with pytest.raises(ValidationError):
            _sell(cashier, product, 1)


class TestInvoiceNumbers:
    def test_format_and_sequence(self, make_product, cashier):
        product = make_product(stock=10)

        first = _sell(cashier, product, 1)
        second = _sell(cashier, product, 1)

        assert re.match(r"^INV-\d{6}-\d{4}$", first.invoice_no)
        assert first.invoice_no[:11] == second.invoice_no[:11]
        assert int(second.invoice_no[-4:]) == int(first.invoice_no[-4:]) + 1

    def test_failed_sale_does_not_consume_number(self, make_product, cashier):
        product = make_product(stock=2)
        first = _sell(cashier, product, 1)

        with pytest.raises(InsufficientStockError):
            _sell(cashier, product, 5)
        second = _sell(cashier, product, 1)

        assert int(second.invoice_no[-4:]) == int(first.invoice_no[-4:]) + 1

    def test_lookup_by_invoice(self, make_product, cashier):
        product = make_product(stock=10)
        sale = _sell(cashier, product, 1)

        assert sales_service.get_sale_by_invoice(sale.invoice_no).id == sale.id
        with pytest.raises(NotFoundError):
            sales_service.get_sale_by_invoice("INV-000000-0000")


class TestWeighedLines:
    def test_kg_product_uses_net_weight(self, make_product, cashier):
        product = make_product(stock=5, min_stock=0, unit=UNIT_KG, price_cents=20000)

        sale = sales_service.create_sale(
            lines=[{"product_id": product.id, "weight": {"gross": "1.250", "tare": "0.050", "unit": "KG"}}],
            payment_method="CASH",
            actor_user_id=cashier.id,
        )

        line = sale.lines[0]
        assert line.quantity == Decimal("1.2")
        assert line.weight_net == Decimal("1.2")
        assert line.weight_unit == UNIT_KG
        assert line.line_total_cents == 24000
        db.session.refresh(product)
        assert product.current_stock == Decimal("3.8")

    def test_grams_reading_on_kg_product(self, make_product, cashier):
        product = make_product(stock=5, min_stock=0, unit=UNIT_KG, price_cents=10000)

        sale = sales_service.create_sale(
            lines=[{"product_id": product.id, "weight": {"gross": "750", "tare": "0", "unit": "g"}}],
            payment_method="CASH",
            actor_user_id=cashier.id,
        )

        assert sale.lines[0].quantity == Decimal("0.75")
        assert sale.subtotal_cents == 7500

    def test_kg_reading_on_gram_product(self, make_product, cashier):
        product = make_product(stock=5000, min_stock=0, unit=UNIT_GRAM, price_cents=2)

        sale = sales_service.create_sale(
            lines=[{"product_id": product.id, "weight": {"gross": "0.5", "unit": "KG"}}],
            payment_method="CASH",
            actor_user_id=cashier.id,
        )

        assert sale.lines[0].quantity == Decimal("500")
        assert sale.subtotal_cents == 1000

    def test_weight_on_counted_product_rejected(self, make_product, cashier):
        product = make_product(stock=5)

        with pytest.raises(ValidationError):
            sales_service.create_sale(
                lines=[{"product_id": product.id, "weight": {"gross": "1", "unit": "KG"}}],
                payment_method="CASH",
                actor_user_id=cashier.id,
            )

    def test_weight_and_quantity_together_rejected(self, make_product, cashier):
        product = make_product(stock=5, unit=UNIT_KG)

        with pytest.raises(ValidationError):
            sales_service.create_sale(
                lines=[{"product_id": product.id, "quantity": 1, "weight": {"gross": "1", "unit": "KG"}}],
                payment_method="CASH",
                actor_user_id=cashier.id,
            )

    def test_tare_heavier_than_gross_rejected(self, make_product, cashier):
        product = make_product(stock=5, unit=UNIT_KG)

        with pytest.raises(ValidationError):
            sales_service.create_sale(
                lines=[{"product_id": product.id, "weight": {"gross": "0.1", "tare": "0.2", "unit": "KG"}}],
                payment_method="CASH",
                actor_user_id=cashier.id,
            )


class TestListSales:
    def test_newest_first_with_total(self, make_product, cashier):
        product = make_product(stock=10)
        first = _sell(cashier, product, 1)
        second = _sell(cashier, product, 1, payment_method="CARD")

        items, total = sales_service.list_sales()
        assert total == 2
        assert [s.id for s in items] == [second.id, first.id]

        items, total = sales_service.list_sales(payment_method="CARD")
        assert [s.id for s in items] == [second.id]

    def test_search_by_invoice(self, make_product, cashier):
        product = make_product(stock=10)
        sale = _sell(cashier, product, 1)

        items, _ = sales_service.list_sales(search=sale.invoice_no[-4:])
        assert sale.id in [s.id for s in items]
