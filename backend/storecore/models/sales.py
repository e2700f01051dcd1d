from __future__ import annotations

from ..extensions import db
from ..errors import format_quantity
from ..time_utils import to_utc_z
from .catalog import Quantity

SALE_STATUS_PAID = "PAID"
SALE_STATUS_CANCELLED = "CANCELLED"

PAYMENT_STATUS_COMPLETED = "COMPLETED"
PAYMENT_STATUS_VOIDED = "VOIDED"


class Sale(db.Model):
    """
    Committed POS sale.

    WHY no DRAFT state: a sale is created with its lines, payment, stock
    movements and customer effects in one unit of work. The only transition
    is PAID -> CANCELLED, performed once by compensation_service.void_sale().
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable, unique (e.g., "INV-261018-0007")
    invoice_no = db.Column(db.String(64), nullable=False, unique=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    customer_name = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=True)

    # All amounts in cents
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    loyalty_points_earned = db.Column(db.Integer, nullable=False, default=0)

    payment_method = db.Column(db.String(16), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=SALE_STATUS_PAID, index=True)
    notes = db.Column(db.Text, nullable=True)

    cashier_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    # Void audit trail
    voided_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    void_reason = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_lines: bool = False) -> dict:
        data = {
            "id": self.id,
            "invoice_no": self.invoice_no,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "loyalty_points_earned": self.loyalty_points_earned,
            "payment_method": self.payment_method,
            "status": self.status,
            "notes": self.notes,
            "cashier_user_id": self.cashier_user_id,
            "created_at": to_utc_z(self.created_at),
            "voided_by_user_id": self.voided_by_user_id,
            "voided_at": to_utc_z(self.voided_at) if self.voided_at else None,
            "void_reason": self.void_reason,
            "version_id": self.version_id,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
            data["payments"] = [payment.to_dict() for payment in self.payments]
        return data


class SaleLine(db.Model):
    """
    Line item on a sale. IMMUTABLE once the sale commits.

    Weighed lines keep the scale reading they were captured with; the
    captured net weight is the line quantity.
    """
    __tablename__ = "sale_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(Quantity, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)

    # Scale reading (all NULL for counted goods)
    weight_gross = db.Column(Quantity, nullable=True)
    weight_tare = db.Column(Quantity, nullable=True)
    weight_net = db.Column(Quantity, nullable=True)
    weight_unit = db.Column(db.String(16), nullable=True)
    weighed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    scale_ref = db.Column(db.String(64), nullable=True)

    ledger_entry_id = db.Column(db.Integer, db.ForeignKey("stock_ledger_entries.id"), nullable=True)

    sale = db.relationship(
        "Sale",
        backref=db.backref("lines", lazy=True, order_by="SaleLine.id"),
    )
    product = db.relationship("Product")

    @property
    def is_weighed(self) -> bool:
        return self.weight_net is not None

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "quantity": format_quantity(self.quantity),
            "unit_price_cents": self.unit_price_cents,
            "tax_rate_bps": self.tax_rate_bps,
            "line_total_cents": self.line_total_cents,
            "tax_cents": self.tax_cents,
            "ledger_entry_id": self.ledger_entry_id,
            "weight": None,
        }
        if self.is_weighed:
            data["weight"] = {
                "gross": format_quantity(self.weight_gross),
                "tare": format_quantity(self.weight_tare),
                "net": format_quantity(self.weight_net),
                "unit": self.weight_unit,
                "measured_at": to_utc_z(self.weighed_at) if self.weighed_at else None,
                "scale_ref": self.scale_ref,
            }
        return data


class Payment(db.Model):
    """
    Payment recorded against a sale.

    A sale is created with one COMPLETED payment for its total. Voiding the
    sale marks the payment VOIDED; payments are never deleted.
    """
    __tablename__ = "payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)

    payment_method = db.Column(db.String(16), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default=PAYMENT_STATUS_COMPLETED, index=True)

    # Card auth code, UPI transaction id, etc.
    reference_no = db.Column(db.String(128), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    voided_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)

    sale = db.relationship(
        "Sale",
        backref=db.backref("payments", lazy=True, order_by="Payment.id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "payment_method": self.payment_method,
            "amount_cents": self.amount_cents,
            "status": self.status,
            "reference_no": self.reference_no,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "voided_by_user_id": self.voided_by_user_id,
            "voided_at": to_utc_z(self.voided_at) if self.voided_at else None,
        }
