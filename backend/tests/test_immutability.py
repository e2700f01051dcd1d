"""
Append-only records reject ORM updates and deletes, and a failing audit
insert never aborts the business operation.
"""

from decimal import Decimal

import pytest

from storecore.errors import ImmutableRecordError
from storecore.extensions import db
from storecore.models import AuditLog, Product, Sale, SaleLine, StockLedgerEntry
from storecore.services import audit_service, sales_service


def test_ledger_entry_cannot_be_updated(make_product):
    product = make_product(stock=5)
    entry = db.session.query(StockLedgerEntry).filter_by(product_id=product.id).one()

    entry.quantity = Decimal("50")
    with pytest.raises(ImmutableRecordError):
        db.session.flush()
    db.session.rollback()


def test_ledger_entry_cannot_be_deleted(make_product):
    product = make_product(stock=5)
    entry = db.session.query(StockLedgerEntry).filter_by(product_id=product.id).one()

    db.session.delete(entry)
    with pytest.raises(ImmutableRecordError):
        db.session.flush()
    db.session.rollback()


def test_sale_line_cannot_be_updated(make_product, cashier):
    product = make_product(stock=5)
    sale = sales_service.create_sale(
        lines=[{"product_id": product.id, "quantity": 1}],
        payment_method="CASH",
        actor_user_id=cashier.id,
    )
    line = db.session.query(SaleLine).filter_by(sale_id=sale.id).one()

    line.unit_price_cents = 1
    with pytest.raises(ImmutableRecordError):
        db.session.flush()
    db.session.rollback()


def test_audit_failure_does_not_abort_sale(make_product, cashier, monkeypatch):
    product = make_product(stock=5)
    audits_before = db.session.query(AuditLog).count()

    def broken_audit_log(**kwargs):
        kwargs["action"] = None
        return AuditLog(**kwargs)

    monkeypatch.setattr(audit_service, "AuditLog", broken_audit_log)

    sale = sales_service.create_sale(
        lines=[{"product_id": product.id, "quantity": 2}],
        payment_method="CASH",
        actor_user_id=cashier.id,
    )

    db.session.expire_all()
    assert db.session.get(Sale, sale.id).status == "PAID"
    assert db.session.get(Product, product.id).current_stock == Decimal("3")
    assert db.session.query(AuditLog).count() == audits_before
