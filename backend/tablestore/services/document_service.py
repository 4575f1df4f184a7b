# Overview: Service-layer operations for document numbers; encapsulates business logic and database work.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..models import DocumentSequence
from ..time_utils import utcnow


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def next_document_number(
    session,
    *,
    document_type: str,
    prefix: str,
    year: int | None = None,
    pad: int = 3,
) -> str:
    """
    Atomically allocate the next number for a document type within a year.

    Numbers restart at 1 each year: SALE-2026-001, SALE-2026-002, ...
    The UPDATE ... SET next_number = next_number + 1 takes the row lock, so two
    concurrent callers never receive the same number.
    """
    if not document_type:
        raise DocumentSequenceError("document_type is required")
    if year is None:
        year = utcnow().year

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.document_type == document_type,
            DocumentSequence.year == year,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )

    def _current() -> int:
        session.flush()
        current = (
            session.query(DocumentSequence.next_number)
            .filter_by(document_type=document_type, year=year)
            .scalar()
        )
        return current - 1

    result = session.execute(stmt)
    if result.rowcount:
        next_num = _current()
    else:
        seq = DocumentSequence(document_type=document_type, year=year, next_number=2)
        nested = session.begin_nested()
        try:
            session.add(seq)
            session.flush()
            nested.commit()
            next_num = 1
        except IntegrityError:
            # Another transaction created the row first
            nested.rollback()
            result = session.execute(stmt)
            if not result.rowcount:
                raise
            next_num = _current()

    return f"{prefix}-{year}-{next_num:0{pad}d}"
