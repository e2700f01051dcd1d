# Overview: Atomic document number allocation (sale and purchase invoices).

from __future__ import annotations

from datetime import datetime
from typing import Callable

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence
from ..time_utils import period_key, utcnow

DOC_SALE = "SALE"
DOC_PURCHASE = "PURCHASE"


def _allocate(document_type: str, key: str) -> int:
    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.document_type == document_type,
            DocumentSequence.period_key == key,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        try:
            # Savepoint so a lost insert race does not abort the caller's unit
            with db.session.begin_nested():
                db.session.add(DocumentSequence(document_type=document_type, period_key=key, next_number=2))
            return 1
        except IntegrityError:
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise

    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type, period_key=key)
        .scalar()
    )
    return current - 1


def next_document_number(
    *,
    document_type: str,
    prefix: str,
    when: datetime | None = None,
    pad: int = 4,
    is_taken: Callable[[str], bool] | None = None,
) -> str:
    """
    Allocate the next number for (document_type, day) inside the caller's transaction.

    MUST be called within unit_of_work(): the counter increment commits or
    rolls back together with the document that uses it, so two concurrent
    callers can never observe the same number.

    ``is_taken`` lets the caller skip numbers already present on a stored
    document (e.g. a supplier invoice entered by hand in the same format).
    Skipped numbers are consumed.
    """
    key = period_key(when or utcnow())
    while True:
        number = f"{prefix}-{key}-{_allocate(document_type, key):0{pad}d}"
        if is_taken is None or not is_taken(number):
            return number
