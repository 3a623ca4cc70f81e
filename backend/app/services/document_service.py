# Overview: Service-layer operations for document numbering; encapsulates business logic and database work.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import ValidationError
from ..extensions import db
from ..models import DocumentSequence


SALE_DOCUMENT_TYPE = "SALE"
SALE_FOLIO_PREFIX = "V"


def next_document_number(*, org_id: int, document_type: str) -> int:
    """
    Allocate the next number of an organization's document sequence.

    Runs inside the caller's transaction: the counter row stays locked
    until that transaction ends, and a rolled-back sale gives its number
    back. The first allocation for a (org, type) inserts the row under a
    SAVEPOINT so losing the insert race does not abort the outer work.
    """
    if not org_id:
        raise ValidationError("org_id is required", details={"field": "org_id"})
    if not document_type:
        raise ValidationError("document_type is required", details={"field": "document_type"})

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.org_id == org_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    def _read_allocated() -> int:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(org_id=org_id, document_type=document_type)
            .scalar()
        )
        return current - 1

    result = db.session.execute(stmt)
    if result.rowcount:
        return _read_allocated()

    try:
        with db.session.begin_nested():
            db.session.add(DocumentSequence(org_id=org_id, document_type=document_type, next_number=2))
        return 1
    except IntegrityError:
        result = db.session.execute(stmt)
        if not result.rowcount:
            raise
        return _read_allocated()


def format_folio(occurred_at: datetime, number: int, *, prefix: str = SALE_FOLIO_PREFIX) -> str:
    """V-20260114-000123: sale date plus the tenant-wide counter."""
    return f"{prefix}-{occurred_at:%Y%m%d}-{number:06d}"


def next_folio(org_id: int, occurred_at: datetime) -> str:
    number = next_document_number(org_id=org_id, document_type=SALE_DOCUMENT_TYPE)
    return format_folio(occurred_at, number)
