# Overview: Sequential human-readable numbers for ledger documents.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def next_document_number(
    *,
    document_type: str,
    prefix: str,
    pad: int = 6,
) -> str:
    """
    Allocate the next number for a document type inside the caller's
    transaction (flush only).

    The increment is a single UPDATE ... SET next_number = next_number + 1,
    so two writers never read the same value. The first allocation for a
    type inserts the row; losing that insert race falls back to the UPDATE.
    """
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        next_num = _current(document_type) - 1
    else:
        seq = DocumentSequence(document_type=document_type, next_number=2)
        try:
            with db.session.begin_nested():
                db.session.add(seq)
            next_num = 1
        except IntegrityError:
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise
            next_num = _current(document_type) - 1

    return f"{prefix}-{next_num:0{pad}d}"


def _current(document_type: str) -> int:
    db.session.flush()
    return (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type)
        .scalar()
    )
