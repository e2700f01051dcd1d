# Overview: Fire-and-forget audit sink for business operations.

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import AuditLog

"""
Audit invariants:

- Append-only (see storecore.immutability).
- Written inside the caller's unit of work, in a SAVEPOINT. If the insert
  fails, only the savepoint is rolled back; the failure is logged and the
  business operation still commits.
- No domain logic here.
"""


def record_audit(
    *,
    actor_user_id: int | None,
    action: str,
    entity: str,
    entity_id: int | None,
    details: dict | None = None,
) -> AuditLog | None:
    # Flush business rows first so their failures are not mistaken for audit failures
    db.session.flush()

    entry = AuditLog(
        actor_user_id=actor_user_id,
        action=action,
        entity=entity,
        entity_id=entity_id,
        details=details or {},
    )
    try:
        with db.session.begin_nested():
            db.session.add(entry)
    except SQLAlchemyError:
        current_app.logger.warning(
            "Audit record dropped: %s %s:%s", action, entity, entity_id, exc_info=True
        )
        return None
    return entry
