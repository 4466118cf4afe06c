# Overview: Service-layer operations for document numbering; per-store sequences.

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..errors import ValidationError
from ..models import DocumentSequence


DOCUMENT_TYPE_PURCHASE_ORDER = "PURCHASE_ORDER"


def _current_number(store_id: int, document_type: str) -> int:
    return (
        db.session.query(DocumentSequence.next_number)
        .filter_by(store_id=store_id, document_type=document_type)
        .scalar()
    )


def next_document_number(
    *,
    store_id: int,
    document_type: str,
    prefix: str,
    pad: int = 4,
) -> str:
    """
    Allocate the next document number for a store/type.

    Runs inside the caller's transaction; the counter row is bumped with a
    single UPDATE so concurrent allocators serialize on it.
    """
    if not store_id:
        raise ValidationError("store_id is required")
    if not document_type:
        raise ValidationError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.store_id == store_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        next_num = _current_number(store_id, document_type) - 1
    else:
        # First allocation; a concurrent first insert fails on the unique
        # constraint and surfaces as IntegrityError to the caller
        db.session.add(DocumentSequence(store_id=store_id, document_type=document_type, next_number=2))
        db.session.flush()
        next_num = 1

    return f"{prefix}-{store_id:03d}-{next_num:0{pad}d}"
