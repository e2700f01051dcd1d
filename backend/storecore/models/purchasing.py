from __future__ import annotations

from ..extensions import db
from ..errors import format_quantity
from ..time_utils import to_utc_z
from .catalog import Quantity

PURCHASE_PENDING = "PENDING"
PURCHASE_PARTIAL = "PARTIAL"
PURCHASE_PAID = "PAID"

PURCHASE_PAYMENT_STATUSES = [PURCHASE_PENDING, PURCHASE_PARTIAL, PURCHASE_PAID]


class Supplier(db.Model):
    """
    Supplier master data.

    current_balance_cents is the amount owed to the supplier. It grows when an
    unpaid purchase is received and shrinks with each SupplierPayment.
    """
    __tablename__ = "suppliers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.Text, nullable=True)
    tax_number = db.Column(db.String(64), nullable=True)
    payment_terms = db.Column(db.String(128), nullable=True)

    opening_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    current_balance_cents = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "tax_number": self.tax_number,
            "payment_terms": self.payment_terms,
            "opening_balance_cents": self.opening_balance_cents,
            "current_balance_cents": self.current_balance_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Purchase(db.Model):
    """Goods receipt from a supplier. Created once with all stock effects."""
    __tablename__ = "purchases"
    __table_args__ = (
        db.Index("ix_purchases_supplier_status", "supplier_id", "payment_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_no = db.Column(db.String(64), nullable=False, unique=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)

    purchase_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    # net = total - discount + tax
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    net_cents = db.Column(db.Integer, nullable=False, default=0)

    payment_status = db.Column(db.String(16), nullable=False, default=PURCHASE_PENDING, index=True)
    payment_method = db.Column(db.String(16), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    supplier = db.relationship("Supplier", backref=db.backref("purchases", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def paid_cents(self) -> int:
        return sum(p.amount_cents for p in self.payments)

    def to_dict(self, include_lines: bool = False) -> dict:
        data = {
            "id": self.id,
            "invoice_no": self.invoice_no,
            "supplier_id": self.supplier_id,
            "purchase_date": to_utc_z(self.purchase_date),
            "total_cents": self.total_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "net_cents": self.net_cents,
            "paid_cents": self.paid_cents,
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
            data["payments"] = [payment.to_dict() for payment in self.payments]
        return data


class PurchaseLine(db.Model):
    """Line item on a purchase. IMMUTABLE once the purchase commits."""
    __tablename__ = "purchase_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(Quantity, nullable=False)
    purchase_price_cents = db.Column(db.Integer, nullable=False)
    selling_price_cents = db.Column(db.Integer, nullable=True)
    line_total_cents = db.Column(db.Integer, nullable=False)
    expiry_date = db.Column(db.Date, nullable=True)

    ledger_entry_id = db.Column(db.Integer, db.ForeignKey("stock_ledger_entries.id"), nullable=True)

    purchase = db.relationship(
        "Purchase",
        backref=db.backref("lines", lazy=True, order_by="PurchaseLine.id"),
    )
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_id": self.purchase_id,
            "product_id": self.product_id,
            "quantity": format_quantity(self.quantity),
            "purchase_price_cents": self.purchase_price_cents,
            "selling_price_cents": self.selling_price_cents,
            "line_total_cents": self.line_total_cents,
            "expiry_date": self.expiry_date.isoformat() if self.expiry_date else None,
            "ledger_entry_id": self.ledger_entry_id,
        }


class SupplierPayment(db.Model):
    __tablename__ = "supplier_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=True, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(16), nullable=False)
    reference_no = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    supplier = db.relationship("Supplier", backref=db.backref("payments", lazy=True))
    purchase = db.relationship(
        "Purchase",
        backref=db.backref("payments", lazy=True, order_by="SupplierPayment.id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "purchase_id": self.purchase_id,
            "amount_cents": self.amount_cents,
            "payment_method": self.payment_method,
            "reference_no": self.reference_no,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
