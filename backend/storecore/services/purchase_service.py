# Overview: Purchase receiving engine and supplier payments.

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Product, Purchase, PurchaseLine, Supplier, SupplierPayment
from ..models.ledger import MOVEMENT_PURCHASE
from ..models.purchasing import (
    PURCHASE_PAID,
    PURCHASE_PARTIAL,
    PURCHASE_PAYMENT_STATUSES,
    PURCHASE_PENDING,
)
from ..money import line_total_cents
from ..time_utils import utcnow
from ..validation import (
    optional_text,
    parse_cents,
    parse_date,
    parse_int,
    parse_quantity,
    require_choice,
)
from .audit_service import record_audit
from .concurrency import lock_for_update, run_with_retry, unit_of_work
from .document_service import DOC_PURCHASE, next_document_number
from .notification_service import dispatch_alerts
from .sales_service import PAYMENT_METHODS
from .stock_ledger import apply_movement

"""
Purchase Invariants (authoritative)

- A purchase is created once, with all lines, stock credits and balance
  effects, in one unit of work.
- PENDING/PARTIAL at creation: supplier balance += net.
- PAID at creation: one SupplierPayment for net; balance untouched.
- Cumulative payments never exceed net; an overpayment is a ConflictError.
"""


@dataclass(frozen=True)
class PurchaseLineRequest:
    product_id: int
    quantity: Decimal
    purchase_price_cents: int
    selling_price_cents: int | None = None
    expiry_date: date | None = None


def parse_purchase_lines(raw_lines) -> list[PurchaseLineRequest]:
    if not isinstance(raw_lines, list) or not raw_lines:
        raise ValidationError("Purchase must have at least one line", field="lines")

    parsed = []
    for index, raw in enumerate(raw_lines):
        prefix = f"lines[{index}]"
        if isinstance(raw, PurchaseLineRequest):
            parsed.append(raw)
            continue
        if not isinstance(raw, dict):
            raise ValidationError(f"{prefix} must be an object", field=prefix)
        for key in ("product_id", "quantity", "purchase_price_cents"):
            if raw.get(key) is None:
                raise ValidationError(f"{prefix}.{key} is required", field=f"{prefix}.{key}")

        selling = raw.get("selling_price_cents")
        parsed.append(PurchaseLineRequest(
            product_id=parse_int(raw["product_id"], f"{prefix}.product_id"),
            quantity=parse_quantity(raw["quantity"], f"{prefix}.quantity"),
            purchase_price_cents=parse_cents(raw["purchase_price_cents"], f"{prefix}.purchase_price_cents", allow_zero=False),
            selling_price_cents=parse_cents(selling, f"{prefix}.selling_price_cents") if selling is not None else None,
            expiry_date=parse_date(raw.get("expiry_date"), f"{prefix}.expiry_date"),
        ))
    return parsed


def _invoice_taken(number: str) -> bool:
    return db.session.query(Purchase.id).filter(Purchase.invoice_no == number).first() is not None


def create_purchase(
    *,
    supplier_id,
    lines,
    actor_user_id: int,
    discount_cents=0,
    tax_cents=0,
    payment_status: str = PURCHASE_PENDING,
    payment_method: str | None = None,
    invoice_no: str | None = None,
    purchase_date: datetime | None = None,
    notes: str | None = None,
) -> Purchase:
    supplier_id = parse_int(supplier_id, "supplier_id")
    requests = parse_purchase_lines(lines)
    discount = parse_cents(discount_cents if discount_cents is not None else 0, "discount_cents")
    tax = parse_cents(tax_cents if tax_cents is not None else 0, "tax_cents")
    status = require_choice(payment_status or PURCHASE_PENDING, PURCHASE_PAYMENT_STATUSES, "payment_status")
    method = require_choice(payment_method, PAYMENT_METHODS, "payment_method") if payment_method else None
    if status == PURCHASE_PAID and method is None:
        raise ValidationError("payment_method is required when payment_status is PAID", field="payment_method")
    invoice_no = optional_text(invoice_no, "invoice_no", 64)
    notes = optional_text(notes, "notes", 2000)

    total = sum(line_total_cents(r.purchase_price_cents, r.quantity) for r in requests)
    net = total - discount + tax
    if net < 0:
        raise ValidationError(
            "Net amount cannot be negative",
            field="discount_cents",
            details={"total_cents": total, "discount_cents": discount, "tax_cents": tax},
        )

    def _op():
        raised = []
        with unit_of_work():
            supplier = lock_for_update(db.session.query(Supplier).filter(Supplier.id == supplier_id)).first()
            if not supplier:
                raise NotFoundError("Supplier", supplier_id)
            if not supplier.is_active:
                raise ValidationError(f"Supplier {supplier.name} is inactive", field="supplier_id")

            # Lock every product up front in id order; apply_movement re-locks per line
            ids = sorted({r.product_id for r in requests})
            found = {
                p.id
                for p in lock_for_update(
                    db.session.query(Product).filter(Product.id.in_(ids)).order_by(Product.id)
                ).all()
            }
            for pid in ids:
                if pid not in found:
                    raise NotFoundError("Product", pid)

            if invoice_no:
                if _invoice_taken(invoice_no):
                    raise ConflictError("Purchase invoice number already exists", {"invoice_no": invoice_no})
                number = invoice_no
            else:
                number = next_document_number(document_type=DOC_PURCHASE, prefix="PO", is_taken=_invoice_taken)

            now = utcnow()
            purchase = Purchase(
                invoice_no=number,
                supplier_id=supplier.id,
                purchase_date=purchase_date or now,
                total_cents=total,
                discount_cents=discount,
                tax_cents=tax,
                net_cents=net,
                payment_status=status,
                payment_method=method,
                notes=notes,
                created_by_user_id=actor_user_id,
                created_at=now,
            )
            db.session.add(purchase)
            db.session.flush()

            for req in requests:
                movement = apply_movement(
                    product_id=req.product_id,
                    movement_type=MOVEMENT_PURCHASE,
                    quantity=req.quantity,
                    actor_user_id=actor_user_id,
                    reference_type="purchase",
                    reference=str(purchase.id),
                    notes=f"Purchase {purchase.invoice_no}",
                )
                raised.extend(movement.raised)

                product = movement.product
                product.purchase_price_cents = req.purchase_price_cents
                if req.selling_price_cents is not None:
                    product.selling_price_cents = req.selling_price_cents

                db.session.add(PurchaseLine(
                    purchase_id=purchase.id,
                    product_id=req.product_id,
                    quantity=req.quantity,
                    purchase_price_cents=req.purchase_price_cents,
                    selling_price_cents=req.selling_price_cents,
                    line_total_cents=line_total_cents(req.purchase_price_cents, req.quantity),
                    expiry_date=req.expiry_date,
                    ledger_entry_id=movement.entry.id,
                ))

            if status in (PURCHASE_PENDING, PURCHASE_PARTIAL):
                supplier.current_balance_cents += net
            elif net > 0:
                db.session.add(SupplierPayment(
                    supplier_id=supplier.id,
                    purchase_id=purchase.id,
                    amount_cents=net,
                    payment_method=method,
                    notes="Paid on receipt",
                    created_by_user_id=actor_user_id,
                    created_at=now,
                ))

            record_audit(
                actor_user_id=actor_user_id,
                action="CREATE_PURCHASE",
                entity="Purchase",
                entity_id=purchase.id,
                details={
                    "invoice_no": purchase.invoice_no,
                    "supplier_id": supplier.id,
                    "net_cents": net,
                    "payment_status": status,
                    "lines": len(requests),
                },
            )
        return purchase, raised

    purchase, raised = run_with_retry(_op)
    dispatch_alerts(raised)
    return purchase


def add_supplier_payment(
    purchase_id: int,
    *,
    amount_cents,
    payment_method: str,
    actor_user_id: int,
    reference_no: str | None = None,
    notes: str | None = None,
) -> SupplierPayment:
    amount = parse_cents(amount_cents, "amount_cents", allow_zero=False)
    method = require_choice(payment_method, PAYMENT_METHODS, "payment_method")
    reference_no = optional_text(reference_no, "reference_no", 128)
    notes = optional_text(notes, "notes", 2000)

    def _op():
        with unit_of_work():
            purchase = lock_for_update(db.session.query(Purchase).filter(Purchase.id == purchase_id)).first()
            if not purchase:
                raise NotFoundError("Purchase", purchase_id)
            supplier = lock_for_update(db.session.query(Supplier).filter(Supplier.id == purchase.supplier_id)).first()

            paid = (
                db.session.query(db.func.coalesce(db.func.sum(SupplierPayment.amount_cents), 0))
                .filter(SupplierPayment.purchase_id == purchase.id)
                .scalar()
            )
            remaining = purchase.net_cents - paid
            if amount > remaining:
                raise ConflictError(
                    "Payment exceeds remaining balance",
                    {
                        "purchase_id": purchase.id,
                        "remaining_cents": remaining,
                        "requested_cents": amount,
                    },
                )

            payment = SupplierPayment(
                supplier_id=supplier.id,
                purchase_id=purchase.id,
                amount_cents=amount,
                payment_method=method,
                reference_no=reference_no,
                notes=notes,
                created_by_user_id=actor_user_id,
                created_at=utcnow(),
            )
            db.session.add(payment)

            purchase.payment_status = PURCHASE_PAID if paid + amount >= purchase.net_cents else PURCHASE_PARTIAL
            if purchase.payment_method is None:
                purchase.payment_method = method
            supplier.current_balance_cents -= amount

            record_audit(
                actor_user_id=actor_user_id,
                action="ADD_SUPPLIER_PAYMENT",
                entity="Purchase",
                entity_id=purchase.id,
                details={
                    "amount_cents": amount,
                    "payment_method": method,
                    "paid_cents": paid + amount,
                    "payment_status": purchase.payment_status,
                },
            )
        return payment

    return run_with_retry(_op)


def get_purchase(purchase_id: int) -> Purchase:
    purchase = db.session.get(Purchase, purchase_id)
    if not purchase:
        raise NotFoundError("Purchase", purchase_id)
    return purchase


def list_purchases(
    *,
    supplier_id: int | None = None,
    payment_status: str | None = None,
    page: int = 1,
    per_page: int = 50,
) -> tuple[list[Purchase], int]:
    q = db.session.query(Purchase)
    if supplier_id is not None:
        q = q.filter(Purchase.supplier_id == supplier_id)
    if payment_status:
        q = q.filter(Purchase.payment_status == require_choice(payment_status, PURCHASE_PAYMENT_STATUSES, "payment_status"))
    page = max(1, page)
    per_page = max(1, min(per_page, 200))
    total = q.count()
    items = q.order_by(Purchase.id.desc()).offset((page - 1) * per_page).limit(per_page).all()
    return items, total
