# Overview: Service-layer operations for document numbering; encapsulates business logic and database work.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence
from ..validation import ValidationError


def next_document_number(*, branch_id: int, document_type: str) -> int:
    """
    Atomically allocate the next document number for a branch/type.

    Runs inside the caller's transaction and does not commit: the number is
    only consumed if the document that uses it is committed too. The
    increment is a single UPDATE, so two callers never get the same number.
    """
    if not branch_id:
        raise ValidationError("branch_id is required")
    if not document_type:
        raise ValidationError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.branch_id == branch_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(branch_id=branch_id, document_type=document_type, next_number=2))
            return 1
        except IntegrityError:
            # Another caller created the row first
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise

    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(branch_id=branch_id, document_type=document_type)
        .scalar()
    )
    return current - 1
