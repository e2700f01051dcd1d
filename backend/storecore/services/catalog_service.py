# Overview: Catalog store; product and category master data with uniqueness checks.

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import or_

from ..errors import ConflictError, InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Category, Product
from ..models.ledger import MOVEMENT_PURCHASE
from ..validation import enforce_rules_product, optional_text, parse_bool, parse_quantity
from .audit_service import record_audit
from .concurrency import lock_for_update, run_with_retry, unit_of_work
from .notification_service import dispatch_alerts
from .stock_ledger import apply_movement

"""
Catalog Invariants (authoritative)

- SKU is required and unique; barcode is optional and unique. Duplicates are
  rejected with ConflictError, never merged.
- current_stock is not an administrative field. Opening stock is booked as a
  PURCHASE movement so the ledger explains every unit.
- Changing min_stock_alert does not touch alerts; the next movement
  re-evaluates them.
"""

PRODUCT_FIELDS = {
    "sku", "barcode", "name", "description", "category_id",
    "purchase_price_cents", "selling_price_cents", "tax_rate_bps",
    "unit", "min_stock_alert", "is_active",
}
PRODUCT_REQUIRED = {"sku", "name", "category_id", "selling_price_cents"}


def _check_unique(*, sku: str | None = None, barcode: str | None = None, exclude_id: int | None = None) -> None:
    for column, value in (("sku", sku), ("barcode", barcode)):
        if not value:
            continue
        q = db.session.query(Product.id).filter(getattr(Product, column) == value)
        if exclude_id is not None:
            q = q.filter(Product.id != exclude_id)
        if q.first():
            raise ConflictError(f"Product with {column} {value!r} already exists", {"field": column, "value": value})


def _require_category(category_id) -> Category:
    category = db.session.get(Category, category_id)
    if not category:
        raise NotFoundError("Category", category_id)
    return category


def create_product(data: dict, *, actor_user_id: int | None, opening_stock=None) -> Product:
    """
    data holds validated product fields (see validation.validate_payload).
    Opening stock, if any, goes through the stock ledger in the same unit.
    """
    unknown = set(data) - PRODUCT_FIELDS
    if unknown:
        raise ValidationError(f"Field not allowed: {sorted(unknown)[0]}", field=sorted(unknown)[0])
    missing = sorted(PRODUCT_REQUIRED - {k for k, v in data.items() if v is not None})
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}", details={"missing": missing})
    fields = dict(data)
    enforce_rules_product(fields)
    opening = parse_quantity(opening_stock, "opening_stock", allow_zero=True) if opening_stock is not None else Decimal("0")

    def _op():
        raised = []
        with unit_of_work():
            _require_category(fields["category_id"])
            _check_unique(sku=fields["sku"], barcode=fields.get("barcode"))

            product = Product(current_stock=Decimal("0"), **fields)
            db.session.add(product)
            db.session.flush()

            if opening > 0:
                movement = apply_movement(
                    product_id=product.id,
                    movement_type=MOVEMENT_PURCHASE,
                    quantity=opening,
                    actor_user_id=actor_user_id,
                    reference_type="product",
                    reference=str(product.id),
                    notes="Opening stock",
                )
                raised.extend(movement.raised)

            record_audit(
                actor_user_id=actor_user_id,
                action="CREATE_PRODUCT",
                entity="Product",
                entity_id=product.id,
                details={"sku": product.sku, "opening_stock": str(opening)},
            )
        return product, raised

    product, raised = run_with_retry(_op)
    dispatch_alerts(raised)
    return product


def update_product(product_id: int, patch: dict, *, actor_user_id: int | None) -> Product:
    if "current_stock" in patch:
        raise ValidationError("current_stock changes only through stock movements", field="current_stock")
    unknown = set(patch) - PRODUCT_FIELDS
    if unknown:
        raise ValidationError(f"Field not allowed: {sorted(unknown)[0]}", field=sorted(unknown)[0])
    for key in PRODUCT_REQUIRED | {"unit", "min_stock_alert", "is_active"}:
        if key in patch and patch[key] is None:
            raise ValidationError(f"{key} cannot be null", field=key)
    fields = dict(patch)
    enforce_rules_product(fields)

    def _op():
        with unit_of_work():
            product = lock_for_update(db.session.query(Product).filter(Product.id == product_id)).first()
            if not product:
                raise NotFoundError("Product", product_id)
            if "category_id" in fields:
                _require_category(fields["category_id"])
            _check_unique(sku=fields.get("sku"), barcode=fields.get("barcode"), exclude_id=product.id)

            changed = {}
            for key, value in fields.items():
                if getattr(product, key) != value:
                    changed[key] = value
                    setattr(product, key, value)

            if changed:
                record_audit(
                    actor_user_id=actor_user_id,
                    action="UPDATE_PRODUCT",
                    entity="Product",
                    entity_id=product.id,
                    details={k: str(v) if isinstance(v, Decimal) else v for k, v in changed.items()},
                )
        return product

    return run_with_retry(_op)


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError("Product", product_id)
    return product


def get_product_by_sku(sku: str) -> Product:
    product = db.session.query(Product).filter(Product.sku == sku).first()
    if not product:
        raise NotFoundError("Product", sku)
    return product


def get_product_by_barcode(barcode: str) -> Product:
    product = db.session.query(Product).filter(Product.barcode == barcode).first()
    if not product:
        raise NotFoundError("Product", barcode)
    return product


def reserve_check(product_id: int, quantity) -> Product:
    """
    Advisory availability check; does not lock or mutate.
    Returns the product, or raises InsufficientStockError.
    """
    qty = parse_quantity(quantity)
    product = get_product(product_id)
    if product.current_stock < qty:
        raise InsufficientStockError(
            product_id=product.id,
            product_name=product.name,
            available=product.current_stock,
            requested=qty,
        )
    return product


def list_products(
    *,
    active: bool | None = None,
    search: str | None = None,
    category_id: int | None = None,
    low_stock: bool = False,
    page: int = 1,
    per_page: int = 50,
) -> tuple[list[Product], int]:
    q = db.session.query(Product)
    if active is not None:
        q = q.filter(Product.is_active.is_(active))
    if category_id is not None:
        q = q.filter(Product.category_id == category_id)
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(or_(Product.name.ilike(like), Product.sku.ilike(like), Product.barcode.ilike(like)))
    if low_stock:
        q = q.filter(Product.current_stock < Product.min_stock_alert)
    page = max(1, page)
    per_page = max(1, min(per_page, 200))
    total = q.count()
    items = q.order_by(Product.name.asc(), Product.id.asc()).offset((page - 1) * per_page).limit(per_page).all()
    return items, total


def create_category(name: str, description: str | None = None, *, actor_user_id: int | None = None) -> Category:
    name = optional_text(name, "name", 128)
    if not name:
        raise ValidationError("name is required", field="name")
    description = optional_text(description, "description")

    def _op():
        with unit_of_work():
            if db.session.query(Category.id).filter(Category.name == name).first():
                raise ConflictError(f"Category {name!r} already exists", {"field": "name", "value": name})
            category = Category(name=name, description=description)
            db.session.add(category)
            db.session.flush()
            record_audit(
                actor_user_id=actor_user_id,
                action="CREATE_CATEGORY",
                entity="Category",
                entity_id=category.id,
                details={"name": name},
            )
        return category

    return run_with_retry(_op)


def list_categories(*, active_only: bool = True) -> list[Category]:
    q = db.session.query(Category)
    if active_only:
        q = q.filter(Category.is_active.is_(True))
    return q.order_by(Category.name.asc()).all()


def get_category(category_id: int) -> Category:
    category = db.session.get(Category, category_id)
    if not category:
        raise NotFoundError("Category", category_id)
    return category


def update_category(category_id: int, patch: dict, *, actor_user_id: int | None = None) -> Category:
    unknown = set(patch) - {"name", "description", "is_active"}
    if unknown:
        field = sorted(unknown)[0]
        raise ValidationError(f"Field not allowed: {field}", field=field)
    fields = {}
    if "name" in patch:
        fields["name"] = optional_text(patch["name"], "name", 128)
        if not fields["name"]:
            raise ValidationError("name is required", field="name")
    if "description" in patch:
        fields["description"] = optional_text(patch["description"], "description")
    if "is_active" in patch:
        fields["is_active"] = parse_bool(patch["is_active"], "is_active")

    def _op():
        with unit_of_work():
            category = lock_for_update(db.session.query(Category).filter(Category.id == category_id)).first()
            if not category:
                raise NotFoundError("Category", category_id)
            if "name" in fields and (
                db.session.query(Category.id)
                .filter(Category.name == fields["name"], Category.id != category.id)
                .first()
            ):
                raise ConflictError(f"Category {fields['name']!r} already exists", {"field": "name", "value": fields["name"]})

            changed = {}
            for key, value in fields.items():
                if getattr(category, key) != value:
                    changed[key] = value
                    setattr(category, key, value)

            if changed:
                record_audit(
                    actor_user_id=actor_user_id,
                    action="UPDATE_CATEGORY",
                    entity="Category",
                    entity_id=category.id,
                    details=changed,
                )
        return category

    return run_with_retry(_op)
