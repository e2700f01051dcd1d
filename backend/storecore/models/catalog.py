from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..errors import format_quantity
from ..time_utils import to_utc_z

# Quantities are exact decimals so weighed goods (KG/GRAM) never drift.
Quantity = db.Numeric(14, 3, asdecimal=True)

UNIT_KG = "KG"
UNIT_GRAM = "GRAM"
UNIT_PIECE = "PIECE"
UNIT_DOZEN = "DOZEN"
UNIT_BUNDLE = "BUNDLE"
UNIT_PACKET = "PACKET"

VALID_UNITS = [UNIT_KG, UNIT_GRAM, UNIT_PIECE, UNIT_DOZEN, UNIT_BUNDLE, UNIT_PACKET]


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True)
    description = db.Column(db.String(255), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Product master data.

    STOCK DESIGN:
    current_stock is a running total owned by the stock ledger. It is written
    only by stock_ledger.apply_movement(), which appends the matching
    StockLedgerEntry in the same transaction. Administrative edits never touch it.

    SKU and barcode are globally unique; duplicates are rejected on write.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_name", "name"),
        db.Index("ix_products_active", "is_active"),
        db.CheckConstraint("current_stock >= 0", name="ck_products_stock_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=False, unique=True)
    barcode = db.Column(db.String(64), nullable=True, unique=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False, index=True)

    # Authoritative storage in cents
    purchase_price_cents = db.Column(db.Integer, nullable=False, default=0)
    selling_price_cents = db.Column(db.Integer, nullable=False, default=0)

    # Basis points (500 = 5%); NULL falls back to the store tax rate
    tax_rate_bps = db.Column(db.Integer, nullable=True)

    unit = db.Column(db.String(16), nullable=False, default=UNIT_PIECE)

    current_stock = db.Column(Quantity, nullable=False, default=Decimal("0"))
    min_stock_alert = db.Column(Quantity, nullable=False, default=Decimal("10"))

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} stock={self.current_stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "barcode": self.barcode,
            "name": self.name,
            "description": self.description,
            "category_id": self.category_id,
            "purchase_price_cents": self.purchase_price_cents,
            "selling_price_cents": self.selling_price_cents,
            "tax_rate_bps": self.tax_rate_bps,
            "unit": self.unit,
            "current_stock": format_quantity(self.current_stock),
            "min_stock_alert": format_quantity(self.min_stock_alert),
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
