# Overview: Atomic allocation of human-readable quote codes.

from __future__ import annotations

from datetime import date

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence
from quotemaster.time_utils import period_key


QUOTE_DOCUMENT_TYPE = "QUOTE"
QUOTE_CODE_PREFIX = "QT"


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def _current_value(document_type: str, period: str) -> int:
    return (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type, period=period)
        .scalar()
    )


def allocate_number(*, document_type: str, period: str) -> int:
    """
    Reserve the next number for (document_type, period).

    Increments in place with a single UPDATE; the first allocation of a
    period inserts the row, falling back to the UPDATE if another request
    inserted it first. Call this before staging other changes: losing the
    insert race rolls back the session.
    """
    if not document_type:
        raise DocumentSequenceError("document_type is required")
    if not period:
        raise DocumentSequenceError("period is required")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.document_type == document_type,
            DocumentSequence.period == period,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        db.session.flush()
        return _current_value(document_type, period) - 1

    seq = DocumentSequence(document_type=document_type, period=period, next_number=2)
    db.session.add(seq)
    try:
        db.session.flush()
        return 1
    except IntegrityError:
        db.session.rollback()
        result = db.session.execute(stmt)
        if not result.rowcount:
            raise DocumentSequenceError(f"Could not allocate {document_type} number for {period}")
        db.session.flush()
        return _current_value(document_type, period) - 1


def next_quote_code(moment: date | None = None, pad: int = 3) -> str:
    """Next quote code for the current month, e.g. 'QT-202610-007'."""
    period = period_key(moment)
    number = allocate_number(document_type=QUOTE_DOCUMENT_TYPE, period=period)
    return f"{QUOTE_CODE_PREFIX}-{period}-{number:0{pad}d}"
