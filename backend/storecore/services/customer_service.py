# Overview: Customer store; master data only, stats change through sales and voids.

from __future__ import annotations

from sqlalchemy import or_

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Customer, Sale
from ..validation import optional_text, parse_bool
from .audit_service import record_audit
from .concurrency import lock_for_update, run_with_retry, unit_of_work

CUSTOMER_FIELDS = {"name", "phone", "email", "is_active"}
TRANSACTIONS_LIMIT = 50


def create_customer(*, name: str, phone: str, email: str | None = None, actor_user_id: int | None = None) -> Customer:
    name = optional_text(name, "name")
    phone = optional_text(phone, "phone", 32)
    email = optional_text(email, "email")
    if not name:
        raise ValidationError("name is required", field="name")
    if not phone:
        raise ValidationError("phone is required", field="phone")

    def _op():
        with unit_of_work():
            if db.session.query(Customer.id).filter(Customer.phone == phone).first():
                raise ConflictError("Customer with this phone already exists", {"field": "phone", "value": phone})
            customer = Customer(name=name, phone=phone, email=email)
            db.session.add(customer)
            db.session.flush()
            record_audit(
                actor_user_id=actor_user_id,
                action="CREATE_CUSTOMER",
                entity="Customer",
                entity_id=customer.id,
                details={"phone": phone},
            )
        return customer

    return run_with_retry(_op)


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if not customer:
        raise NotFoundError("Customer", customer_id)
    return customer


def list_customers(*, search: str | None = None, page: int = 1, per_page: int = 50) -> tuple[list[Customer], int]:
    q = db.session.query(Customer)
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(or_(Customer.name.ilike(like), Customer.phone.ilike(like), Customer.email.ilike(like)))
    page = max(1, page)
    per_page = max(1, min(per_page, 200))
    total = q.count()
    items = q.order_by(Customer.name.asc(), Customer.id.asc()).offset((page - 1) * per_page).limit(per_page).all()
    return items, total


def update_customer(customer_id: int, patch: dict, *, actor_user_id: int | None = None) -> Customer:
    """Master data only; order count, spend and points are owned by sales and voids."""
    unknown = set(patch) - CUSTOMER_FIELDS
    if unknown:
        field = sorted(unknown)[0]
        raise ValidationError(f"Field not allowed: {field}", field=field)
    fields = {}
    for key in ("name", "phone"):
        if key in patch:
            value = optional_text(patch[key], key, 32 if key == "phone" else 255)
            if not value:
                raise ValidationError(f"{key} is required", field=key)
            fields[key] = value
    if "email" in patch:
        fields["email"] = optional_text(patch["email"], "email")
    if "is_active" in patch:
        fields["is_active"] = parse_bool(patch["is_active"], "is_active")

    def _op():
        with unit_of_work():
            customer = lock_for_update(db.session.query(Customer).filter(Customer.id == customer_id)).first()
            if not customer:
                raise NotFoundError("Customer", customer_id)
            if "phone" in fields and (
                db.session.query(Customer.id)
                .filter(Customer.phone == fields["phone"], Customer.id != customer.id)
                .first()
            ):
                raise ConflictError(
                    "Customer with this phone already exists", {"field": "phone", "value": fields["phone"]}
                )

            changed = {}
            for key, value in fields.items():
                if getattr(customer, key) != value:
                    changed[key] = value
                    setattr(customer, key, value)

            if changed:
                record_audit(
                    actor_user_id=actor_user_id,
                    action="UPDATE_CUSTOMER",
                    entity="Customer",
                    entity_id=customer.id,
                    details=changed,
                )
        return customer

    return run_with_retry(_op)


def list_customer_sales(customer_id: int, *, limit: int = TRANSACTIONS_LIMIT) -> list[Sale]:
    """Most recent sales first, voided ones included."""
    get_customer(customer_id)
    return (
        db.session.query(Sale)
        .filter(Sale.customer_id == customer_id)
        .order_by(Sale.id.desc())
        .limit(limit)
        .all()
    )
