# Overview: Supplier store; balance changes through purchases and supplier payments.

from __future__ import annotations

from sqlalchemy import or_

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Supplier
from ..validation import optional_text, parse_bool, parse_cents
from .audit_service import record_audit
from .concurrency import lock_for_update, run_with_retry, unit_of_work

# max length per editable text field
SUPPLIER_TEXT_FIELDS = {
    "name": 255,
    "phone": 32,
    "email": 255,
    "address": 2000,
    "tax_number": 64,
    "payment_terms": 128,
}
SUPPLIER_BALANCE_FIELDS = {"opening_balance_cents", "current_balance_cents"}


def create_supplier(
    *,
    name: str,
    phone: str,
    email: str | None = None,
    address: str | None = None,
    tax_number: str | None = None,
    payment_terms: str | None = None,
    opening_balance_cents=0,
    actor_user_id: int | None = None,
) -> Supplier:
    """The opening balance (amount owed) becomes the current balance."""
    name = optional_text(name, "name")
    phone = optional_text(phone, "phone", 32)
    if not name:
        raise ValidationError("name is required", field="name")
    if not phone:
        raise ValidationError("phone is required", field="phone")
    opening = parse_cents(opening_balance_cents or 0, "opening_balance_cents")
    fields = {
        "email": optional_text(email, "email"),
        "address": optional_text(address, "address", 2000),
        "tax_number": optional_text(tax_number, "tax_number", 64),
        "payment_terms": optional_text(payment_terms, "payment_terms", 128),
    }

    def _op():
        with unit_of_work():
            supplier = Supplier(
                name=name,
                phone=phone,
                opening_balance_cents=opening,
                current_balance_cents=opening,
                **fields,
            )
            db.session.add(supplier)
            db.session.flush()
            record_audit(
                actor_user_id=actor_user_id,
                action="CREATE_SUPPLIER",
                entity="Supplier",
                entity_id=supplier.id,
                details={"name": name, "opening_balance_cents": opening},
            )
        return supplier

    return run_with_retry(_op)


def get_supplier(supplier_id: int) -> Supplier:
    supplier = db.session.get(Supplier, supplier_id)
    if not supplier:
        raise NotFoundError("Supplier", supplier_id)
    return supplier


def list_suppliers(*, search: str | None = None, active: bool | None = True) -> list[Supplier]:
    q = db.session.query(Supplier)
    if active is not None:
        q = q.filter(Supplier.is_active.is_(active))
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(or_(Supplier.name.ilike(like), Supplier.phone.ilike(like)))
    return q.order_by(Supplier.name.asc()).all()


def update_supplier(supplier_id: int, patch: dict, *, actor_user_id: int | None = None) -> Supplier:
    balance = SUPPLIER_BALANCE_FIELDS & set(patch)
    if balance:
        field = sorted(balance)[0]
        raise ValidationError(f"{field} changes only through purchases and payments", field=field)
    unknown = set(patch) - set(SUPPLIER_TEXT_FIELDS) - {"is_active"}
    if unknown:
        field = sorted(unknown)[0]
        raise ValidationError(f"Field not allowed: {field}", field=field)

    fields = {}
    for key, max_length in SUPPLIER_TEXT_FIELDS.items():
        if key in patch:
            fields[key] = optional_text(patch[key], key, max_length)
    for key in ("name", "phone"):
        if key in fields and not fields[key]:
            raise ValidationError(f"{key} is required", field=key)
    if "is_active" in patch:
        fields["is_active"] = parse_bool(patch["is_active"], "is_active")

    def _op():
        with unit_of_work():
            supplier = lock_for_update(db.session.query(Supplier).filter(Supplier.id == supplier_id)).first()
            if not supplier:
                raise NotFoundError("Supplier", supplier_id)
            if fields.get("is_active") is False and supplier.current_balance_cents > 0:
                raise ConflictError(
                    "Supplier has an outstanding balance",
                    {"supplier_id": supplier.id, "current_balance_cents": supplier.current_balance_cents},
                )

            changed = {}
            for key, value in fields.items():
                if getattr(supplier, key) != value:
                    changed[key] = value
                    setattr(supplier, key, value)

            if changed:
                record_audit(
                    actor_user_id=actor_user_id,
                    action="UPDATE_SUPPLIER",
                    entity="Supplier",
                    entity_id=supplier.id,
                    details=changed,
                )
        return supplier

    return run_with_retry(_op)
