from __future__ import annotations

from ..extensions import db
from ..errors import format_quantity
from ..time_utils import to_utc_z
from .catalog import Quantity

MOVEMENT_PURCHASE = "PURCHASE"
MOVEMENT_SALE = "SALE"
MOVEMENT_RETURN = "RETURN"
MOVEMENT_ADJUSTMENT = "ADJUSTMENT"
MOVEMENT_WASTAGE = "WASTAGE"

MOVEMENT_TYPES = [
    MOVEMENT_PURCHASE,
    MOVEMENT_SALE,
    MOVEMENT_RETURN,
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_WASTAGE,
]

ALERT_ACTIVE = "ACTIVE"
ALERT_RESOLVED = "RESOLVED"


class StockLedgerEntry(db.Model):
    """
    One stock movement with before/after snapshots.

    IMMUTABLE: rows are appended by stock_ledger.apply_movement() and never
    updated or deleted (enforced in storecore.immutability).

    Invariant: after_stock = before_stock + quantity, after_stock >= 0.
    """
    __tablename__ = "stock_ledger_entries"
    __table_args__ = (
        db.Index("ix_ledger_product_id", "product_id", "id"),
        db.Index("ix_ledger_reference", "reference_type", "reference"),
        db.CheckConstraint("after_stock >= 0", name="ck_ledger_after_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    movement_type = db.Column(db.String(16), nullable=False, index=True)

    # Signed
    quantity = db.Column(Quantity, nullable=False)
    before_stock = db.Column(Quantity, nullable=False)
    after_stock = db.Column(Quantity, nullable=False)

    # Originating document, e.g. ("sale", "42")
    reference_type = db.Column(db.String(32), nullable=True)
    reference = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.String(255), nullable=True)

    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "movement_type": self.movement_type,
            "quantity": format_quantity(self.quantity),
            "before_stock": format_quantity(self.before_stock),
            "after_stock": format_quantity(self.after_stock),
            "reference_type": self.reference_type,
            "reference": self.reference,
            "notes": self.notes,
            "actor_user_id": self.actor_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class StockAlert(db.Model):
    """
    Low/zero stock flag for a product.

    Invariant: at most one ACTIVE alert per product. Lifecycle is owned by
    stock_ledger; a zero-stock occurrence supersedes any ACTIVE alert.
    """
    __tablename__ = "stock_alerts"
    __table_args__ = (
        db.Index("ix_stock_alerts_product_status", "product_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # Snapshots at raise time
    current_stock = db.Column(Quantity, nullable=False)
    min_stock_level = db.Column(Quantity, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=ALERT_ACTIVE, index=True)

    # Ledger entry that raised the alert
    ledger_entry_id = db.Column(db.Integer, db.ForeignKey("stock_ledger_entries.id"), nullable=True)

    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    resolved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    resolution_note = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("stock_alerts", lazy=True))

    @property
    def is_zero_stock(self) -> bool:
        return self.current_stock == 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "current_stock": format_quantity(self.current_stock),
            "min_stock_level": format_quantity(self.min_stock_level),
            "status": self.status,
            "zero_stock": self.is_zero_stock,
            "ledger_entry_id": self.ledger_entry_id,
            "resolved_at": to_utc_z(self.resolved_at) if self.resolved_at else None,
            "resolved_by_user_id": self.resolved_by_user_id,
            "resolution_note": self.resolution_note,
            "created_at": to_utc_z(self.created_at),
        }
