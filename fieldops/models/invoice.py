"""
FieldOps Workflow Core
Invoice header.

Invoicing itself is a downstream collaborator; the workflow core reads
invoices to guard job deletion and the default invoicing trigger creates
draft headers numbered INV-00001.
"""

from fieldops.models import db
from fieldops.models.base import TenantModel, iso, money
from fieldops.models.soft_delete import SoftDeleteMixin


class Invoice(SoftDeleteMixin, TenantModel):
    __tablename__ = "invoices"

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(
        db.Integer, db.ForeignKey("clients.id", ondelete="RESTRICT"),
        nullable=False, index=True,
    )
    job_id = db.Column(
        db.Integer, db.ForeignKey("jobs.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    quote_id = db.Column(
        db.Integer, db.ForeignKey("quotes.id", ondelete="SET NULL"),
        nullable=True,
    )
    invoice_number = db.Column(db.String(30), nullable=False, comment="INV-00001")
    status = db.Column(db.String(20), nullable=False, default="draft")
    total = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    __table_args__ = (
        db.UniqueConstraint("tenant_id", "invoice_number", name="uq_invoice_tenant_number"),
        db.CheckConstraint(
            "status IN ('draft','sent','paid','void')",
            name="ck_invoice_status",
        ),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "client_id": self.client_id,
            "job_id": self.job_id,
            "quote_id": self.quote_id,
            "invoice_number": self.invoice_number,
            "status": self.status,
            "total": money(self.total),
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<Invoice {self.id}: {self.invoice_number}>"
