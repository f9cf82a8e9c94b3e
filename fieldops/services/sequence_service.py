"""
Sequence allocation — per-tenant business numbers (J-00001, Q-00001, INV-00001).

Numbers come from a counter row per (tenant, document_type) in the
``sequences`` table. The counter is advanced with a single atomic

    UPDATE sequences SET current_value = current_value + 1
    WHERE tenant_id = :t AND document_type = :d

issued inside the caller's transaction, so:
  - concurrent allocators serialise on the row lock (PostgreSQL) or the
    database write lock (SQLite); no two callers ever read the same value
  - the increment becomes visible only when the caller commits; a rollback
    returns the number (a later failure after commit may leave a gap)

A missing counter row is created with ``INSERT ... ON CONFLICT DO NOTHING``
so two first-time allocators cannot both insert it.

The aggregate max-plus-one pattern is never used.

Rules: tenant_id explicit; this module never commits.
"""

import logging

from flask import current_app
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from fieldops.core.exceptions import ValidationError
from fieldops.models import db
from fieldops.models.sequence import Sequence

logger = logging.getLogger(__name__)

DEFAULT_PREFIXES = {
    "job": "J",
    "quote": "Q",
    "invoice": "INV",
}
DEFAULT_PAD_WIDTH = 5


def _prefix_for(document_type: str) -> str:
    prefixes = current_app.config.get("DOCUMENT_PREFIXES") or DEFAULT_PREFIXES
    prefix = prefixes.get(document_type)
    if prefix is None:
        raise ValidationError(
            f"Unknown document type: {document_type}",
            details={"document_type": f"must be one of {sorted(prefixes)}"},
        )
    return prefix


def format_number(prefix: str, value: int, width: int | None = None) -> str:
    """Render a counter value: ``format_number("J", 42) == "J-00042"``."""
    if width is None:
        width = current_app.config.get("SEQUENCE_PAD_WIDTH", DEFAULT_PAD_WIDTH)
    return f"{prefix}-{value:0{width}d}"


def _increment(tenant_id: int, document_type: str) -> int:
    result = db.session.execute(
        update(Sequence)
        .where(Sequence.tenant_id == tenant_id, Sequence.document_type == document_type)
        .values(current_value=Sequence.current_value + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def _create_counter(tenant_id: int, document_type: str, prefix: str) -> None:
    """Insert the counter row at 0 unless a concurrent writer already did."""
    values = {
        "tenant_id": tenant_id,
        "document_type": document_type,
        "prefix": prefix,
        "current_value": 0,
    }
    dialect = db.session.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        insert = None

    if insert is not None:
        db.session.execute(
            insert(Sequence).values(**values).on_conflict_do_nothing(
                index_elements=["tenant_id", "document_type"],
            )
        )
        return

    try:
        with db.session.begin_nested():
            db.session.execute(Sequence.__table__.insert().values(**values))
    except IntegrityError:
        logger.debug("Sequence %s/%s created concurrently", tenant_id, document_type)


def next_value(tenant_id: int, document_type: str) -> int:
    """Advance and return the counter for (tenant, document_type).

    Must run inside the transaction that persists the numbered entity.
    """
    prefix = _prefix_for(document_type)
    if _increment(tenant_id, document_type) == 0:
        _create_counter(tenant_id, document_type, prefix)
        if _increment(tenant_id, document_type) == 0:
            raise RuntimeError(f"Sequence {tenant_id}/{document_type} could not be created")

    value = db.session.execute(
        select(Sequence.current_value).where(
            Sequence.tenant_id == tenant_id,
            Sequence.document_type == document_type,
        )
    ).scalar_one()
    logger.debug("Allocated %s #%d for tenant %s", document_type, value, tenant_id)
    return value


def allocate_number(tenant_id: int, document_type: str) -> str:
    """Allocate the next formatted business number, e.g. ``"Q-00007"``."""
    prefix = _prefix_for(document_type)
    return format_number(prefix, next_value(tenant_id, document_type))


def current_value(tenant_id: int, document_type: str) -> int:
    """Last issued value (0 when nothing has been allocated yet)."""
    value = db.session.execute(
        select(Sequence.current_value).where(
            Sequence.tenant_id == tenant_id,
            Sequence.document_type == document_type,
        )
    ).scalar_one_or_none()
    return value or 0
