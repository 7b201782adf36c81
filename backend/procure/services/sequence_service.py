# Overview: Service-layer operations for document numbering.

from __future__ import annotations

from datetime import date

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence
from procure.time_utils import compact_day, utcnow


ORDER_DOCUMENT_TYPE = "ORDER"
ORDER_PREFIX = "ORD"


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def _allocate(document_type: str, scope_key: str) -> int:
    """
    Atomically allocate the next number for (document_type, scope_key).

    Runs inside the caller's transaction; the sequence row is created under a
    SAVEPOINT so a lost creation race does not discard the caller's work.
    """
    if not document_type:
        raise DocumentSequenceError("document_type is required")
    if not scope_key:
        raise DocumentSequenceError("scope_key is required")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.document_type == document_type,
            DocumentSequence.scope_key == scope_key,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    def _read_allocated() -> int:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(document_type=document_type, scope_key=scope_key)
            .scalar()
        )
        return current - 1

    if db.session.execute(stmt).rowcount:
        return _read_allocated()

    try:
        with db.session.begin_nested():
            db.session.add(DocumentSequence(document_type=document_type, scope_key=scope_key, next_number=2))
        return 1
    except IntegrityError:
        # Another writer created the row first
        if not db.session.execute(stmt).rowcount:
            raise
        return _read_allocated()


def next_order_number(*, day: date | None = None, pad: int = 4) -> str:
    """ORD-YYYYMMDD-NNNN, NNNN monotonic per day."""
    day = day or utcnow().date()
    number = _allocate(ORDER_DOCUMENT_TYPE, compact_day(day))
    return f"{ORDER_PREFIX}-{compact_day(day)}-{number:0{pad}d}"
