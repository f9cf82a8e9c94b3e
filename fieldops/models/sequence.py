"""
FieldOps Workflow Core
Per-tenant document number counters.

One row per (tenant, document_type). ``current_value`` is the last number
issued; the next allocation increments it in the same transaction as the
insert it numbers. See ``fieldops.services.sequence_service``.
"""

from fieldops.models import db
from fieldops.models.base import TenantModel


class Sequence(TenantModel):
    __tablename__ = "sequences"

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(
        db.String(30), nullable=False,
        comment="job | quote | invoice",
    )
    prefix = db.Column(db.String(10), nullable=False)
    current_value = db.Column(db.Integer, nullable=False, default=0)

    __table_args__ = (
        db.UniqueConstraint("tenant_id", "document_type", name="uq_sequence_tenant_type"),
        db.CheckConstraint("current_value >= 0", name="ck_sequence_non_negative"),
    )

    def to_dict(self):
        return {
            "tenant_id": self.tenant_id,
            "document_type": self.document_type,
            "prefix": self.prefix,
            "current_value": self.current_value,
        }

    def __repr__(self):
        return f"<Sequence {self.tenant_id}/{self.document_type}={self.current_value}>"
