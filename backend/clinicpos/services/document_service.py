# Overview: Sequence generator for human-readable, date-scoped document numbers.

from __future__ import annotations

from datetime import date

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, OperationalError

from ..errors import StorageUnavailable
from ..extensions import db
from ..models import DocumentSequence
from ..time_utils import today


PREFIX_QUOTE = "QUOTE"
PREFIX_ORDER = "ORD"
PREFIX_SALE = "SALE"
PREFIX_LAB = "LAB"

PREFIXES = (PREFIX_QUOTE, PREFIX_ORDER, PREFIX_SALE, PREFIX_LAB)


def format_document_number(prefix: str, scope_date: date, number: int, pad: int = 4) -> str:
    return f"{prefix}-{scope_date:%Y%m%d}-{number:0{pad}d}"


def _bump(prefix: str, scope_date: date) -> int | None:
    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.prefix == prefix,
            DocumentSequence.scope_date == scope_date,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        return None
    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(prefix=prefix, scope_date=scope_date)
        .scalar()
    )
    return current - 1


def next_document_number(prefix: str, scope_date: date | None = None) -> str:
    """
    Atomically allocate the next document number for a prefix and day.

    Produces PREFIX-YYYYMMDD-NNNN starting at 0001. The counter row is bumped
    with a single UPDATE so concurrent callers serialize on it; the first
    caller of the day inserts the row inside a savepoint and a losing racer
    falls back to the UPDATE path.

    Runs inside the caller's transaction: a rolled back document also gives
    its number back, keeping the sequence dense. Never retried here (the
    caller owns the transaction); an unreachable store raises
    StorageUnavailable.
    """
    if prefix not in PREFIXES:
        raise ValueError(f"Unknown document prefix: {prefix}")
    scope_date = scope_date or today()

    try:
        number = _bump(prefix, scope_date)
        if number is None:
            try:
                with db.session.begin_nested():
                    db.session.add(DocumentSequence(prefix=prefix, scope_date=scope_date, next_number=2))
                number = 1
            except IntegrityError:
                number = _bump(prefix, scope_date)
                if number is None:
                    raise
    except OperationalError as exc:
        raise StorageUnavailable(
            "Document sequence store unavailable",
            {"prefix": prefix, "scope_date": scope_date.isoformat()},
        ) from exc
    return format_document_number(prefix, scope_date, number)


def peek_next_number(prefix: str, scope_date: date | None = None) -> str:
    """Read-only preview of the number the next allocation would return."""
    scope_date = scope_date or today()
    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(prefix=prefix, scope_date=scope_date)
        .scalar()
    )
    return format_document_number(prefix, scope_date, current or 1)
