"""
FieldOps Workflow Core
Tenant, user and client models.

Models:
    - Tenant:         the service business (account); root of all scoping
    - User:           staff member / field worker; assignee and approver
    - Client:         customer receiving quotes and jobs
    - ClientAddress:  service location of a client

Authentication and session issuance live outside this service; users are
stored here only so assignees and approvers can be validated per tenant.
"""

from fieldops.models import db
from fieldops.models.base import TenantModel, _utcnow, iso
from fieldops.models.soft_delete import SoftDeleteMixin


class Tenant(db.Model):
    __tablename__ = "tenants"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(100), unique=True, nullable=False)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    users = db.relationship("User", back_populates="tenant", lazy="dynamic")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "is_active": self.is_active,
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<Tenant {self.id}: {self.slug}>"


class User(TenantModel):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(200), nullable=False)
    full_name = db.Column(db.String(200))
    role = db.Column(db.String(20), default="worker", comment="owner | admin | manager | worker")
    status = db.Column(db.String(20), default="active")
    hourly_rate = db.Column(db.Numeric(10, 2), nullable=True)

    __table_args__ = (
        db.UniqueConstraint("tenant_id", "email", name="uq_user_tenant_email"),
    )

    tenant = db.relationship("Tenant", back_populates="users")

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role,
            "status": self.status,
        }

    def __repr__(self):
        return f"<User {self.id}: {self.email}>"


class Client(SoftDeleteMixin, TenantModel):
    __tablename__ = "clients"

    id = db.Column(db.Integer, primary_key=True)
    first_name = db.Column(db.String(100), default="")
    last_name = db.Column(db.String(100), default="")
    company_name = db.Column(db.String(200), nullable=True)
    email = db.Column(db.String(200), nullable=True)
    phone = db.Column(db.String(50), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    addresses = db.relationship(
        "ClientAddress", backref="client", lazy="selectin",
        cascade="all, delete-orphan",
    )

    @property
    def display_name(self):
        if self.company_name:
            return self.company_name
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "company_name": self.company_name,
            "display_name": self.display_name,
            "email": self.email,
            "phone": self.phone,
            "addresses": [a.to_dict() for a in self.addresses],
        }

    def __repr__(self):
        return f"<Client {self.id}: {self.display_name}>"


class ClientAddress(db.Model):
    __tablename__ = "client_addresses"

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(
        db.Integer, db.ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    street = db.Column(db.String(200), default="")
    city = db.Column(db.String(100), default="")
    state = db.Column(db.String(100), default="")
    postal_code = db.Column(db.String(20), default="")
    country = db.Column(db.String(2), default="US")
    is_primary = db.Column(db.Boolean, default=False)

    def to_dict(self):
        return {
            "id": self.id,
            "client_id": self.client_id,
            "street": self.street,
            "city": self.city,
            "state": self.state,
            "postal_code": self.postal_code,
            "country": self.country,
            "is_primary": self.is_primary,
        }
