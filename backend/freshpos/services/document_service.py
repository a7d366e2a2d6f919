# Overview: Service-layer operations for document numbering; allocates receipt numbers.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence
from .concurrency import run_with_retry


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
    Atomically allocate and commit the next document number for a type.

    The increment is an UPDATE ... SET next_number = next_number + 1, so two
    concurrent callers never read the same value. Numbers are committed
    immediately: a sale that later fails leaves a gap, never a duplicate.
    """
    def _op() -> str:
        if not document_type:
            raise DocumentSequenceError("document_type is required")

        stmt = (
            update(DocumentSequence)
            .where(DocumentSequence.document_type == document_type)
            .values(next_number=DocumentSequence.next_number + 1)
        )

        result = db.session.execute(stmt)
        if result.rowcount:
            db.session.flush()
            current = (
                db.session.query(DocumentSequence.next_number)
                .filter_by(document_type=document_type)
                .scalar()
            )
            next_num = current - 1
        else:
            seq = DocumentSequence(document_type=document_type, next_number=2)
            db.session.add(seq)
            try:
                db.session.flush()
                next_num = 1
            except IntegrityError:
                # Another worker created the row first
                db.session.rollback()
                result = db.session.execute(stmt)
                if not result.rowcount:
                    raise
                db.session.flush()
                current = (
                    db.session.query(DocumentSequence.next_number)
                    .filter_by(document_type=document_type)
                    .scalar()
                )
                next_num = current - 1

        db.session.commit()
        return f"{prefix}-{next_num:0{pad}d}"

    return run_with_retry(_op)


def next_receipt_number() -> str:
    return next_document_number(document_type="RECEIPT", prefix="RCP")
