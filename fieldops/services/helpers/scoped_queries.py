"""
Tenant-scoped query helpers.

Every get-by-id in the services MUST use these helpers instead of
``db.session.get(Model, pk)``. Direct lookups bypass tenant isolation.

Usage:
    job = get_scoped(Job, job_id, tenant_id=tenant_id)
    job = get_scoped(Job, job_id, tenant_id=tenant_id, for_update=True)
    quote = get_scoped_or_none(Quote, quote_id, tenant_id=tenant_id)

Soft-deleted rows (``deleted_at`` set) are treated as missing.
"""

import logging

from sqlalchemy import select

from fieldops.core.exceptions import NotFoundError
from fieldops.models import db

logger = logging.getLogger(__name__)


def get_scoped(model, pk: int, *, tenant_id: int, for_update: bool = False):
    """Fetch a single entity by PK within *tenant_id*.

    Cross-tenant access is indistinguishable from a missing record: both
    raise NotFoundError → HTTP 404.

    Args:
        model: Model class with ``id`` and ``tenant_id`` columns.
        pk: Primary key value to look up.
        tenant_id: Owning tenant; required.
        for_update: Take a row lock (``SELECT ... FOR UPDATE``) for the
                    rest of the transaction. Ignored by SQLite.

    Raises:
        ValueError: If tenant_id is None or the model has no tenant_id column.
        NotFoundError: If the entity does not exist, is soft-deleted, or
                       belongs to another tenant.
    """
    if tenant_id is None:
        raise ValueError(
            f"{model.__name__} id={pk} requires tenant_id. "
            "Unscoped lookups are forbidden."
        )
    if not hasattr(model, "tenant_id"):
        raise ValueError(f"{model.__name__} has no tenant_id column")

    stmt = select(model).where(model.id == pk, model.tenant_id == tenant_id)
    if hasattr(model, "deleted_at"):
        stmt = stmt.where(model.deleted_at.is_(None))
    if for_update:
        stmt = stmt.with_for_update()

    result = db.session.execute(stmt).scalar_one_or_none()
    if result is None:
        logger.debug("get_scoped: %s id=%s not found in tenant %s", model.__name__, pk, tenant_id)
        raise NotFoundError(resource=model.__name__, resource_id=pk)
    return result


def get_scoped_or_none(model, pk: int, *, tenant_id: int, for_update: bool = False):
    """Same as get_scoped but returns None instead of raising NotFoundError."""
    try:
        return get_scoped(model, pk, tenant_id=tenant_id, for_update=for_update)
    except NotFoundError:
        return None
