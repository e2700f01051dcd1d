# Overview: ORM-level append-only enforcement for ledger, line and audit rows.

"""
SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database. Listeners registered here reject any flush that would modify or
remove an append-only record:

    StockLedgerEntry  - every stock change is explained by exactly one entry
    SaleLine          - immutable once the sale commits
    PurchaseLine      - immutable once the purchase commits
    AuditLog          - audit trail

Bulk Core statements (table.delete()) bypass the ORM and are not covered;
they are only used by test fixtures and `flask system reset-db`.
"""

from __future__ import annotations

from sqlalchemy import event

from .errors import ImmutableRecordError
from .models import AuditLog, PurchaseLine, SaleLine, StockLedgerEntry

APPEND_ONLY_MODELS = (StockLedgerEntry, SaleLine, PurchaseLine, AuditLog)


def _reject_update(mapper, connection, target):
    raise ImmutableRecordError(
        f"{type(target).__name__} records are append-only",
        {"entity": type(target).__name__, "entity_id": target.id, "operation": "update"},
    )


def _reject_delete(mapper, connection, target):
    raise ImmutableRecordError(
        f"{type(target).__name__} records cannot be deleted",
        {"entity": type(target).__name__, "entity_id": target.id, "operation": "delete"},
    )


def register_immutability_listeners() -> None:
    """Idempotent; safe to call from every create_app()."""
    for model in APPEND_ONLY_MODELS:
        if not event.contains(model, "before_update", _reject_update):
            event.listen(model, "before_update", _reject_update)
        if not event.contains(model, "before_delete", _reject_delete):
            event.listen(model, "before_delete", _reject_delete)
