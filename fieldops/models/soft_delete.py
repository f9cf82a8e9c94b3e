"""
Soft Delete Mixin

Adds a `deleted_at` timestamp column and the soft_delete() helper.
Jobs, quotes, clients and invoices are tombstoned rather than physically
removed so that issued business numbers are never reused or orphaned.

Usage:
    class Job(SoftDeleteMixin, TenantModel):
        ...

    job.soft_delete()
    db.session.commit()

Lookups through get_scoped() treat tombstoned rows as missing.
"""

from fieldops.core import clock
from fieldops.models import db


class SoftDeleteMixin:
    """Mixin that adds soft delete support to any SQLAlchemy model."""

    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, default=None, index=True)

    def soft_delete(self):
        """Mark this record as deleted."""
        self.deleted_at = clock.utcnow()

    @property
    def is_deleted(self):
        return self.deleted_at is not None
