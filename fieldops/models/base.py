"""
TenantModel — Abstract base class for tenant-scoped models.

Every business entity (clients, jobs, quotes, time entries, sequences,
invoices) inherits from TenantModel instead of db.Model directly. This adds:
  - tenant_id FK column with index
  - created_at / updated_at timestamps
"""

from datetime import datetime, timezone

from fieldops.models import db


def _utcnow():
    return datetime.now(timezone.utc)


class TenantModel(db.Model):
    """Abstract base for tenant-scoped tables."""
    __abstract__ = True

    tenant_id = db.Column(
        db.Integer,
        db.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


def iso(value):
    """Serialise a date/datetime column for to_dict()."""
    return value.isoformat() if value is not None else None


def money(value):
    """Serialise a Numeric column as a fixed-point string."""
    return str(value) if value is not None else None
