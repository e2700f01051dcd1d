# Overview: Transaction boundary, row locking and retry helpers for units of work.

from __future__ import annotations

import time
from contextlib import contextmanager

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConflictError, CoreError, PersistenceError
from ..extensions import db

RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations and re-read the row.

    populate_existing() makes the session overwrite any copy it already holds,
    so the caller sees the committed value, not a stale snapshot.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; writers there are serialized
    by BEGIN IMMEDIATE in unit_of_work().
    """
    return query.with_for_update().populate_existing()


def _sqlite_in_transaction() -> bool:
    raw = db.session.connection().connection.driver_connection
    return bool(getattr(raw, "in_transaction", False))


@contextmanager
def unit_of_work():
    """
    One atomic, all-or-nothing write.

    Commits on success. Any exception rolls the whole unit back:
    - CoreError subclasses propagate unchanged
    - IntegrityError becomes ConflictError (unique keys, check constraints)
    - OperationalError / StaleDataError propagate for run_with_retry()
    - any other SQLAlchemyError becomes PersistenceError
    """
    if db.engine.dialect.name == "sqlite" and not _sqlite_in_transaction():
        db.session.execute(text("BEGIN IMMEDIATE"))
    try:
        yield db.session
        db.session.commit()
    except CoreError:
        db.session.rollback()
        raise
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError(
            "Write conflicts with existing data",
            {"constraint": str(exc.orig)},
        ) from exc
    except RETRYABLE_ERRORS:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise PersistenceError("Database error; no changes were saved", {"error": type(exc).__name__}) from exc
    except Exception:
        db.session.rollback()
        raise


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.05):
    """
    Execute a unit of work with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). The whole unit is re-run, so every read
    inside it is re-derived.
    """
    if attempts is None:
        attempts = current_app.config.get("WRITE_RETRY_ATTEMPTS", 3)
    attempts = max(1, attempts)

    for attempt in range(attempts):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise PersistenceError(
                    "Database is busy; no changes were saved",
                    {"error": type(exc).__name__, "attempts": attempts},
                ) from exc
            current_app.logger.warning(
                "Retrying unit of work after %s (attempt %d/%d)",
                type(exc).__name__, attempt + 1, attempts,
            )
            time.sleep(backoff_base * (2 ** attempt))
