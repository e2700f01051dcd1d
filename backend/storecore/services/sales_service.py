# Overview: Sale transaction engine; one unit of work per committed sale.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import or_

from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Customer, Payment, Product, Sale, SaleLine
from ..models.ledger import MOVEMENT_SALE
from ..models.sales import PAYMENT_STATUS_COMPLETED, SALE_STATUS_CANCELLED, SALE_STATUS_PAID
from ..money import line_total_cents, loyalty_points, tax_cents
from ..time_utils import utcnow
from ..validation import optional_text, parse_cents, parse_int, parse_quantity, require_choice
from .audit_service import record_audit
from .concurrency import lock_for_update, run_with_retry, unit_of_work
from .device_service import WeightReading
from .document_service import DOC_SALE, next_document_number
from .notification_service import dispatch_alerts
from .settings_service import StoreSettings, resolve_store_settings
from .stock_ledger import apply_movement

PAYMENT_METHODS = ["CASH", "UPI", "CARD", "ONLINE", "WALLET", "CREDIT"]
SALE_STATUSES = [SALE_STATUS_PAID, SALE_STATUS_CANCELLED]


@dataclass(frozen=True)
class SaleLineRequest:
    product_id: int
    quantity: Decimal | None
    unit_price_cents: int | None = None
    weight: WeightReading | None = None


@dataclass
class _PricedLine:
    product: Product
    quantity: Decimal
    unit_price_cents: int
    tax_rate_bps: int
    line_total_cents: int
    tax_cents: int
    weight: WeightReading | None


def parse_sale_lines(raw_lines) -> list[SaleLineRequest]:
    """Shape checks only; no lookups."""
    if not isinstance(raw_lines, list) or not raw_lines:
        raise ValidationError("Sale must have at least one line", field="lines")

    parsed = []
    for index, raw in enumerate(raw_lines):
        prefix = f"lines[{index}]"
        if isinstance(raw, SaleLineRequest):
            parsed.append(raw)
            continue
        if not isinstance(raw, dict):
            raise ValidationError(f"{prefix} must be an object", field=prefix)
        if raw.get("product_id") is None:
            raise ValidationError(f"{prefix}.product_id is required", field=f"{prefix}.product_id")

        product_id = parse_int(raw["product_id"], f"{prefix}.product_id")
        weight = WeightReading.from_dict(raw["weight"]) if raw.get("weight") is not None else None
        quantity = None
        if weight is None:
            quantity = parse_quantity(raw.get("quantity"), f"{prefix}.quantity")
        elif raw.get("quantity") is not None:
            raise ValidationError(
                f"{prefix}: weighed lines take their quantity from the weight reading",
                field=f"{prefix}.quantity",
            )
        unit_price = None
        if raw.get("unit_price_cents") is not None:
            unit_price = parse_cents(raw["unit_price_cents"], f"{prefix}.unit_price_cents")
        parsed.append(SaleLineRequest(product_id=product_id, quantity=quantity, unit_price_cents=unit_price, weight=weight))
    return parsed


def _load_products(requests: list[SaleLineRequest]) -> dict[int, Product]:
    ids = sorted({r.product_id for r in requests})
    products = {
        p.id: p
        for p in lock_for_update(db.session.query(Product).filter(Product.id.in_(ids)).order_by(Product.id)).all()
    }
    for product_id in ids:
        product = products.get(product_id)
        if product is None:
            raise NotFoundError("Product", product_id)
        if not product.is_active:
            raise ValidationError(
                f"Product {product.sku} is inactive",
                field="product_id",
                details={"product_id": product.id},
            )
    return products


def _price_lines(requests, products, settings: StoreSettings) -> list[_PricedLine]:
    priced = []
    for req in requests:
        product = products[req.product_id]
        quantity = req.weight.net_in(product.unit) if req.weight else req.quantity
        if quantity <= 0:
            raise ValidationError("Weighed quantity rounds to zero", field="weight", details={"product_id": product.id})
        unit_price = req.unit_price_cents if req.unit_price_cents is not None else product.selling_price_cents
        rate = product.tax_rate_bps if product.tax_rate_bps is not None else settings.tax_rate_bps
        total = line_total_cents(unit_price, quantity)
        priced.append(_PricedLine(
            product=product,
            quantity=quantity,
            unit_price_cents=unit_price,
            tax_rate_bps=rate,
            line_total_cents=total,
            tax_cents=tax_cents(total, rate),
            weight=req.weight,
        ))
    return priced


def _validate_on_hand(priced: list[_PricedLine]) -> None:
    """Early, friendly check; apply_movement re-checks under lock."""
    totals: dict[int, Decimal] = {}
    for line in priced:
        totals[line.product.id] = totals.get(line.product.id, Decimal("0")) + line.quantity

    for line in priced:
        product = line.product
        requested = totals.pop(product.id, None)
        if requested is not None and product.current_stock < requested:
            raise InsufficientStockError(
                product_id=product.id,
                product_name=product.name,
                available=product.current_stock,
                requested=requested,
            )


def create_sale(
    *,
    lines,
    payment_method: str,
    actor_user_id: int,
    discount_cents=0,
    customer_id: int | None = None,
    customer_name: str | None = None,
    customer_phone: str | None = None,
    payment_reference: str | None = None,
    notes: str | None = None,
    settings: StoreSettings | None = None,
) -> Sale:
    """
    Create a committed sale: lines, one payment, stock debits, customer stats
    and audit entry, all in one unit of work.

    Raises ValidationError, NotFoundError, InsufficientStockError or
    ConflictError; on any error nothing is persisted.
    """
    requests = parse_sale_lines(lines)
    method = require_choice(payment_method, PAYMENT_METHODS, "payment_method")
    discount = parse_cents(discount_cents if discount_cents is not None else 0, "discount_cents")
    if customer_id is not None:
        customer_id = parse_int(customer_id, "customer_id")
    customer_name = optional_text(customer_name, "customer_name")
    customer_phone = optional_text(customer_phone, "customer_phone", 32)
    payment_reference = optional_text(payment_reference, "payment_reference", 128)
    notes = optional_text(notes, "notes", 2000)
    settings = settings or resolve_store_settings()

    def _op():
        raised = []
        with unit_of_work():
            products = _load_products(requests)

            customer = None
            if customer_id is not None:
                customer = lock_for_update(db.session.query(Customer).filter(Customer.id == customer_id)).first()
                if not customer:
                    raise NotFoundError("Customer", customer_id)

            priced = _price_lines(requests, products, settings)
            _validate_on_hand(priced)

            subtotal = sum(line.line_total_cents for line in priced)
            tax = sum(line.tax_cents for line in priced)
            if discount > subtotal + tax:
                raise ValidationError(
                    "discount_cents cannot exceed subtotal plus tax",
                    field="discount_cents",
                    details={"discount_cents": discount, "max_discount_cents": subtotal + tax},
                )
            total = subtotal - discount + tax
            points = loyalty_points(total, settings.loyalty_spend_per_point_cents) if customer else 0

            now = utcnow()
            sale = Sale(
                invoice_no=next_document_number(document_type=DOC_SALE, prefix="INV", when=now),
                customer_id=customer.id if customer else None,
                customer_name=customer_name or (customer.name if customer else None),
                customer_phone=customer_phone or (customer.phone if customer else None),
                subtotal_cents=subtotal,
                discount_cents=discount,
                tax_cents=tax,
                total_cents=total,
                loyalty_points_earned=points,
                payment_method=method,
                status=SALE_STATUS_PAID,
                notes=notes,
                cashier_user_id=actor_user_id,
                created_at=now,
            )
            db.session.add(sale)
            db.session.flush()

            db.session.add(Payment(
                sale_id=sale.id,
                payment_method=method,
                amount_cents=total,
                status=PAYMENT_STATUS_COMPLETED,
                reference_no=payment_reference,
                created_by_user_id=actor_user_id,
                created_at=now,
            ))

            # Lines are immutable once flushed, so each is written after its movement
            for line in priced:
                movement = apply_movement(
                    product_id=line.product.id,
                    movement_type=MOVEMENT_SALE,
                    quantity=-line.quantity,
                    actor_user_id=actor_user_id,
                    reference_type="sale",
                    reference=str(sale.id),
                    notes=f"Sale {sale.invoice_no}",
                )
                raised.extend(movement.raised)

                weight = line.weight
                db.session.add(SaleLine(
                    sale_id=sale.id,
                    product_id=line.product.id,
                    quantity=line.quantity,
                    unit_price_cents=line.unit_price_cents,
                    tax_rate_bps=line.tax_rate_bps,
                    line_total_cents=line.line_total_cents,
                    tax_cents=line.tax_cents,
                    weight_gross=weight.gross if weight else None,
                    weight_tare=weight.tare if weight else None,
                    weight_net=weight.net if weight else None,
                    weight_unit=weight.unit if weight else None,
                    weighed_at=weight.measured_at if weight else None,
                    scale_ref=weight.scale_ref if weight else None,
                    ledger_entry_id=movement.entry.id,
                ))

            if customer:
                customer.total_orders += 1
                customer.total_spent_cents += total
                customer.loyalty_points += points

            record_audit(
                actor_user_id=actor_user_id,
                action="CREATE_SALE",
                entity="Sale",
                entity_id=sale.id,
                details={
                    "invoice_no": sale.invoice_no,
                    "total_cents": total,
                    "lines": len(priced),
                    "payment_method": method,
                    "customer_id": sale.customer_id,
                },
            )
        return sale, raised

    sale, raised = run_with_retry(_op)
    dispatch_alerts(raised)
    return sale


# --- Queries -----------------------------------------------------------------


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if not sale:
        raise NotFoundError("Sale", sale_id)
    return sale


def get_sale_by_invoice(invoice_no: str) -> Sale:
    sale = db.session.query(Sale).filter(Sale.invoice_no == invoice_no).first()
    if not sale:
        raise NotFoundError("Sale", invoice_no)
    return sale


def list_sales(
    *,
    status: str | None = None,
    payment_method: str | None = None,
    customer_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    search: str | None = None,
    page: int = 1,
    per_page: int = 50,
) -> tuple[list[Sale], int]:
    """Newest first; returns (page_items, total_count)."""
    q = db.session.query(Sale)
    if status:
        q = q.filter(Sale.status == require_choice(status, SALE_STATUSES, "status"))
    if payment_method:
        q = q.filter(Sale.payment_method == require_choice(payment_method, PAYMENT_METHODS, "payment_method"))
    if customer_id is not None:
        q = q.filter(Sale.customer_id == customer_id)
    if start is not None:
        q = q.filter(Sale.created_at >= start)
    if end is not None:
        q = q.filter(Sale.created_at <= end)
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(or_(
            Sale.invoice_no.ilike(like),
            Sale.customer_name.ilike(like),
            Sale.customer_phone.ilike(like),
        ))

    page = max(1, page)
    per_page = max(1, min(per_page, 200))
    total = q.count()
    items = q.order_by(Sale.id.desc()).offset((page - 1) * per_page).limit(per_page).all()
    return items, total
