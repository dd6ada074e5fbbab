# Overview: Service-layer operations for document numbering; allocates bill numbers per store.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence


DOCUMENT_TYPE_BILL = "BILL"


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
        .execution_options(synchronize_session=False)
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


def allocate_number(*, store_id: int, document_type: str) -> int:
    """
    Allocate the next number for a store/type inside the caller's transaction.

    Does not commit: if the caller rolls back, the number is released with it,
    so completed bills carry gap-free numbers.
    """
    if not store_id:
        raise DocumentSequenceError("store_id is required")
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    next_num = _bump(store_id, document_type)
    if next_num is not None:
        return next_num

    try:
        with db.session.begin_nested():
            db.session.add(
                DocumentSequence(store_id=store_id, document_type=document_type, next_number=2)
            )
        return 1
    except IntegrityError:
        # Another transaction created the row first
        next_num = _bump(store_id, document_type)
        if next_num is None:
            raise
        return next_num


def format_bill_number(prefix: str, store_id: int, number: int, pad: int = 6) -> str:
    return f"{prefix}-{store_id:03d}-{number:0{pad}d}"


def next_bill_number(*, store_id: int, prefix: str) -> str:
    number = allocate_number(store_id=store_id, document_type=DOCUMENT_TYPE_BILL)
    return format_bill_number(prefix, store_id, number)
