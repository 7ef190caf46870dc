# Overview: Service-layer operations for document numbers (INV-0001, PO-0001, EXP-0001).

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence


DOC_INVOICE = "INVOICE"
DOC_PURCHASE_ORDER = "PURCHASE_ORDER"
DOC_EXPENSE = "EXPENSE"

PREFIXES = {
    DOC_INVOICE: "INV",
    DOC_PURCHASE_ORDER: "PO",
    DOC_EXPENSE: "EXP",
}


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def _bump(store_id: int, document_type: str) -> int | None:
    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.store_id == store_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        return None
    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(store_id=store_id, document_type=document_type)
        .scalar()
    )
    return current - 1


def next_document_number(
    *,
    store_id: int,
    document_type: str,
    prefix: str | None = None,
    pad: int = 4,
) -> str:
    """
    Allocate the next document number for a store/type inside the caller's
    unit of work.

    The counter row is bumped with an UPDATE; the first number for a
    store/type inserts the row under a savepoint so a concurrent insert
    only rolls back the savepoint, not the caller's pending writes.
    """
    if not store_id:
        raise DocumentSequenceError("store_id is required")
    if not document_type:
        raise DocumentSequenceError("document_type is required")
    prefix = prefix or PREFIXES.get(document_type)
    if not prefix:
        raise DocumentSequenceError(f"No prefix for document type {document_type}")

    next_num = _bump(store_id, document_type)
    if next_num is None:
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(store_id=store_id, document_type=document_type, next_number=2))
            next_num = 1
        except IntegrityError:
            next_num = _bump(store_id, document_type)
            if next_num is None:
                raise

    return f"{prefix}-{next_num:0{pad}d}"
