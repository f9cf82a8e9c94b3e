"""
FieldOps Workflow Core
Quote domain models.

Models:
    - Quote:          priced proposal sent to a client
    - QuoteLineItem:  one priced row; the set is replaced wholesale on edit

Lifecycle:
    draft    → sent
    sent     → sent (re-send) | approved | declined | expired
    approved → converted
    converted, declined, expired: terminal

``converted_to_job_id`` is set exactly once, by ``quote_lifecycle.convert_to_job``.
"""

from enum import Enum

from fieldops.models import db
from fieldops.models.base import TenantModel, iso, money
from fieldops.models.soft_delete import SoftDeleteMixin


class QuoteStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    APPROVED = "approved"
    DECLINED = "declined"
    EXPIRED = "expired"
    CONVERTED = "converted"


QUOTE_STATUSES = {s.value for s in QuoteStatus}
LINE_ITEM_TYPES = {"service", "material", "labor", "other"}

QUOTE_TRANSITIONS = {
    "draft":     ["sent"],
    "sent":      ["sent", "approved", "declined", "expired"],
    "approved":  ["converted"],
    "converted": [],
    "declined":  [],
    "expired":   [],
}


def validate_quote_transition(old_status, new_status):
    """Return True if Quote status transition is valid."""
    return new_status in QUOTE_TRANSITIONS.get(old_status, [])


class Quote(SoftDeleteMixin, TenantModel):
    """
    Priced proposal for a client.
    Number format: Q-00001 (tenant-scoped, allocated in the service layer).
    """

    __tablename__ = "quotes"

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(
        db.Integer, db.ForeignKey("clients.id", ondelete="RESTRICT"),
        nullable=False, index=True,
    )
    address_id = db.Column(
        db.Integer, db.ForeignKey("client_addresses.id", ondelete="SET NULL"),
        nullable=True,
    )

    quote_number = db.Column(db.String(30), nullable=False, comment="Q-00001")
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    status = db.Column(db.String(20), nullable=False, default=QuoteStatus.DRAFT.value)

    # Totals (always derived by fieldops.services.money)
    subtotal = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    tax_rate = db.Column(db.Numeric(6, 4), nullable=False, default=0, comment="0.0825 = 8.25%")
    tax_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    quote_date = db.Column(db.Date, nullable=False)
    expiry_date = db.Column(db.Date, nullable=True)
    terms = db.Column(db.Text, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    # Client response
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    declined_at = db.Column(db.DateTime(timezone=True), nullable=True)
    decline_reason = db.Column(db.Text, nullable=True)
    signature_data = db.Column(db.Text, nullable=True)
    signature_ip = db.Column(db.String(45), nullable=True)

    converted_to_job_id = db.Column(
        db.Integer,
        db.ForeignKey("jobs.id", ondelete="SET NULL", use_alter=True, name="fk_quotes_converted_job"),
        nullable=True,
    )
    created_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )

    __table_args__ = (
        db.UniqueConstraint("tenant_id", "quote_number", name="uq_quote_tenant_number"),
        db.CheckConstraint(
            "status IN ('draft','sent','approved','declined','expired','converted')",
            name="ck_quote_status",
        ),
        db.Index("ix_quotes_tenant_status", "tenant_id", "status"),
    )

    client = db.relationship("Client", foreign_keys=[client_id])
    line_items = db.relationship(
        "QuoteLineItem", backref="quote", lazy="selectin",
        cascade="all, delete-orphan", order_by="QuoteLineItem.sort_order",
    )

    def to_dict(self, include_items=True):
        result = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "client_id": self.client_id,
            "address_id": self.address_id,
            "quote_number": self.quote_number,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "subtotal": money(self.subtotal),
            "tax_rate": money(self.tax_rate),
            "tax_amount": money(self.tax_amount),
            "discount_amount": money(self.discount_amount),
            "total": money(self.total),
            "quote_date": iso(self.quote_date),
            "expiry_date": iso(self.expiry_date),
            "terms": self.terms,
            "notes": self.notes,
            "sent_at": iso(self.sent_at),
            "approved_at": iso(self.approved_at),
            "declined_at": iso(self.declined_at),
            "decline_reason": self.decline_reason,
            "has_signature": bool(self.signature_data),
            "converted_to_job_id": self.converted_to_job_id,
            "created_by": self.created_by,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
        if include_items:
            result["line_items"] = [li.to_dict() for li in self.line_items]
        return result

    def __repr__(self):
        return f"<Quote {self.id}: {self.quote_number} [{self.status}]>"


class QuoteLineItem(db.Model):
    __tablename__ = "quote_line_items"

    id = db.Column(db.Integer, primary_key=True)
    quote_id = db.Column(
        db.Integer, db.ForeignKey("quotes.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    item_type = db.Column(db.String(20), default="service", comment="service | material | labor | other")
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    quantity = db.Column(db.Numeric(10, 2), nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    total_price = db.Column(db.Numeric(14, 4), nullable=False, comment="quantity × unit_price, unrounded")
    is_taxable = db.Column(db.Boolean, nullable=False, default=True)
    is_optional = db.Column(db.Boolean, nullable=False, default=False)

    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_line_item_quantity_positive"),
        db.CheckConstraint("unit_price >= 0", name="ck_line_item_price_non_negative"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "quote_id": self.quote_id,
            "sort_order": self.sort_order,
            "item_type": self.item_type,
            "name": self.name,
            "description": self.description,
            "quantity": money(self.quantity),
            "unit_price": money(self.unit_price),
            "total_price": money(self.total_price),
            "is_taxable": self.is_taxable,
            "is_optional": self.is_optional,
        }
