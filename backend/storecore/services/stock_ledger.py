# Overview: Service-layer operations for the stock ledger; the only writer of Product.current_stock.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from ..errors import ConflictError, InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Product, StockAlert, StockLedgerEntry
from ..models.ledger import ALERT_ACTIVE, ALERT_RESOLVED, MOVEMENT_TYPES
from ..time_utils import utcnow
from .audit_service import record_audit
from .concurrency import lock_for_update, run_with_retry, unit_of_work

"""
Stock Ledger Invariants (authoritative)

- Product.current_stock changes only here, and every change appends exactly
  one StockLedgerEntry in the same transaction.
- after_stock = before_stock + quantity, and after_stock >= 0.
- The availability check is made against the row re-read under lock, so two
  concurrent movements cannot both pass against the same snapshot.
- Alerts: at most one ACTIVE alert per product. Stock reaching zero always
  raises a fresh alert and supersedes the ACTIVE one; dropping below the
  minimum raises one only if none is ACTIVE; reaching the minimum resolves.

apply_movement() must be called inside the caller's unit_of_work().
"""


@dataclass
class MovementResult:
    entry: StockLedgerEntry
    product: Product
    raised: list[StockAlert] = field(default_factory=list)
    resolved: list[StockAlert] = field(default_factory=list)


def _lock_product(product_id: int) -> Product:
    product = lock_for_update(db.session.query(Product).filter(Product.id == product_id)).first()
    if not product:
        raise NotFoundError("Product", product_id)
    return product


def apply_movement(
    *,
    product_id: int,
    movement_type: str,
    quantity: Decimal,
    actor_user_id: int | None,
    reference_type: str | None = None,
    reference: str | None = None,
    notes: str | None = None,
) -> MovementResult:
    """
    Apply a signed stock movement and append its ledger entry.

    Raises InsufficientStockError (available = stock before the movement,
    requested = units taken) if the result would be negative.
    """
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError(f"Unknown movement type: {movement_type}", field="movement_type")
    if quantity == 0:
        raise ValidationError("Movement quantity must be non-zero", field="quantity")

    # Pending edits would be overwritten by the locked re-read
    db.session.flush()
    product = _lock_product(product_id)

    before = product.current_stock
    after = before + quantity
    if after < 0:
        raise InsufficientStockError(
            product_id=product.id,
            product_name=product.name,
            available=before,
            requested=-quantity,
        )

    product.current_stock = after

    entry = StockLedgerEntry(
        product_id=product.id,
        movement_type=movement_type,
        quantity=quantity,
        before_stock=before,
        after_stock=after,
        reference_type=reference_type,
        reference=reference,
        notes=notes,
        actor_user_id=actor_user_id,
        created_at=utcnow(),
    )
    db.session.add(entry)
    db.session.flush()

    result = MovementResult(entry=entry, product=product)
    _evaluate_alerts(product, after, entry, actor_user_id, result)
    return result


def _evaluate_alerts(product: Product, after: Decimal, entry: StockLedgerEntry, actor_user_id, result: MovementResult) -> None:
    threshold = product.min_stock_alert
    active = lock_for_update(
        db.session.query(StockAlert).filter(
            StockAlert.product_id == product.id,
            StockAlert.status == ALERT_ACTIVE,
        )
    ).all()

    if after == 0:
        for alert in active:
            _resolve(alert, actor_user_id, "Superseded by zero-stock alert")
            result.resolved.append(alert)
        result.raised.append(_raise(product, after, entry))
    elif after < threshold:
        if not active:
            result.raised.append(_raise(product, after, entry))
    else:
        for alert in active:
            _resolve(alert, actor_user_id, "Stock replenished")
            result.resolved.append(alert)

    db.session.flush()


def _raise(product: Product, after: Decimal, entry: StockLedgerEntry) -> StockAlert:
    alert = StockAlert(
        product_id=product.id,
        current_stock=after,
        min_stock_level=product.min_stock_alert,
        status=ALERT_ACTIVE,
        ledger_entry_id=entry.id,
        created_at=utcnow(),
    )
    db.session.add(alert)
    return alert


def _resolve(alert: StockAlert, actor_user_id, note: str | None) -> None:
    alert.status = ALERT_RESOLVED
    alert.resolved_at = utcnow()
    alert.resolved_by_user_id = actor_user_id
    alert.resolution_note = note


# --- Queries -----------------------------------------------------------------


def list_ledger_entries(
    *,
    product_id: int | None = None,
    movement_type: str | None = None,
    reference_type: str | None = None,
    reference: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 100,
    cursor: int | None = None,
) -> tuple[list[StockLedgerEntry], int | None]:
    """
    Newest first. The cursor is the last id of the previous page; the
    returned next cursor is None when there are no more rows.
    """
    limit = max(1, min(int(limit), 500))
    q = db.session.query(StockLedgerEntry)
    if product_id is not None:
        q = q.filter(StockLedgerEntry.product_id == product_id)
    if movement_type:
        q = q.filter(StockLedgerEntry.movement_type == movement_type)
    if reference_type:
        q = q.filter(StockLedgerEntry.reference_type == reference_type)
    if reference:
        q = q.filter(StockLedgerEntry.reference == reference)
    if start is not None:
        q = q.filter(StockLedgerEntry.created_at >= start)
    if end is not None:
        q = q.filter(StockLedgerEntry.created_at <= end)
    if cursor is not None:
        q = q.filter(StockLedgerEntry.id < cursor)

    rows = q.order_by(StockLedgerEntry.id.desc()).limit(limit + 1).all()
    next_cursor = None
    if len(rows) > limit:
        rows = rows[:limit]
        next_cursor = rows[-1].id
    return rows, next_cursor


def list_stock_alerts(*, status: str | None = ALERT_ACTIVE, product_id: int | None = None) -> list[StockAlert]:
    q = db.session.query(StockAlert)
    if status:
        q = q.filter(StockAlert.status == status)
    if product_id is not None:
        q = q.filter(StockAlert.product_id == product_id)
    return q.order_by(StockAlert.created_at.desc(), StockAlert.id.desc()).all()


def resolve_alert(alert_id: int, *, actor_user_id: int, note: str | None = None) -> StockAlert:
    """Manual acknowledgement. Resolving twice is a conflict."""

    def _op():
        with unit_of_work():
            alert = lock_for_update(db.session.query(StockAlert).filter(StockAlert.id == alert_id)).first()
            if not alert:
                raise NotFoundError("StockAlert", alert_id)
            if alert.status != ALERT_ACTIVE:
                raise ConflictError(
                    "Alert already resolved",
                    {"alert_id": alert.id, "resolved_at": alert.resolved_at.isoformat() if alert.resolved_at else None},
                )
            _resolve(alert, actor_user_id, note or "Acknowledged")
            record_audit(
                actor_user_id=actor_user_id,
                action="RESOLVE_STOCK_ALERT",
                entity="StockAlert",
                entity_id=alert.id,
                details={"product_id": alert.product_id, "note": note},
            )
        return alert

    return run_with_retry(_op)


# --- Reconciliation ------------------------------------------------------------


def reconcile_product(product_id: int) -> dict:
    """
    Replay the ledger for one product and report any break in the chain.

    Products start at zero stock (opening stock is itself a movement), so the
    sum of all ledger quantities must equal current_stock.
    """
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError("Product", product_id)

    entries = (
        db.session.query(StockLedgerEntry)
        .filter(StockLedgerEntry.product_id == product_id)
        .order_by(StockLedgerEntry.id.asc())
        .all()
    )

    violations: list[dict] = []
    running = Decimal("0")
    for entry in entries:
        if entry.before_stock != running:
            violations.append({"entry_id": entry.id, "problem": "before_stock does not follow previous entry",
                               "expected": running, "actual": entry.before_stock})
        if entry.after_stock != entry.before_stock + entry.quantity:
            violations.append({"entry_id": entry.id, "problem": "after_stock != before_stock + quantity"})
        if entry.after_stock < 0:
            violations.append({"entry_id": entry.id, "problem": "negative after_stock"})
        running = entry.after_stock

    ledger_sum = sum((e.quantity for e in entries), Decimal("0"))
    if ledger_sum != product.current_stock:
        violations.append({"problem": "current_stock does not equal ledger sum",
                           "expected": ledger_sum, "actual": product.current_stock})

    active_alerts = (
        db.session.query(StockAlert)
        .filter(StockAlert.product_id == product_id, StockAlert.status == ALERT_ACTIVE)
        .count()
    )
    if active_alerts > 1:
        violations.append({"problem": "more than one ACTIVE alert", "actual": active_alerts})

    return {
        "product_id": product.id,
        "sku": product.sku,
        "current_stock": product.current_stock,
        "ledger_sum": ledger_sum,
        "entries": len(entries),
        "active_alerts": active_alerts,
        "consistent": not violations,
        "violations": violations,
    }


def verify_ledger(product_id: int | None = None) -> list[dict]:
    """Reconcile one product or all of them; returns only inconsistent reports."""
    if product_id is not None:
        ids = [product_id]
    else:
        ids = [pid for (pid,) in db.session.query(Product.id).order_by(Product.id).all()]
    reports = [reconcile_product(pid) for pid in ids]
    return [r for r in reports if not r["consistent"]]


__all__ = [
    "MovementResult",
    "apply_movement",
    "list_ledger_entries",
    "list_stock_alerts",
    "resolve_alert",
    "reconcile_product",
    "verify_ledger",
]
