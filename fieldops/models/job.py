"""
FieldOps Workflow Core
Job domain models.

Models:
    - Job:       scheduled unit of field work for a client
    - JobPhoto:  photo metadata attached to a job (files live in object storage)

Lifecycle:
    scheduled → en_route | in_progress | on_hold | cancelled
    en_route  → in_progress | on_hold | cancelled
    in_progress → on_hold | completed | cancelled
    on_hold   → scheduled | in_progress | cancelled
    completed, cancelled: terminal

``completed`` is only reachable through the completion workflow
(``job_lifecycle.complete_job``), never through a generic status update.
"""

from enum import Enum

from fieldops.models import db
from fieldops.models.base import TenantModel, _utcnow, iso, money
from fieldops.models.soft_delete import SoftDeleteMixin


class JobStatus(str, Enum):
    SCHEDULED = "scheduled"
    EN_ROUTE = "en_route"
    IN_PROGRESS = "in_progress"
    ON_HOLD = "on_hold"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class JobPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


JOB_STATUSES = {s.value for s in JobStatus}
JOB_PRIORITIES = {p.value for p in JobPriority}
TERMINAL_JOB_STATUSES = {JobStatus.COMPLETED.value, JobStatus.CANCELLED.value}

PHOTO_TYPES = {"before", "during", "after", "other"}


# ── Lifecycle Transition Guards ──────────────────────────────────────────────

JOB_TRANSITIONS = {
    "scheduled":   ["en_route", "in_progress", "on_hold", "cancelled"],
    "en_route":    ["in_progress", "on_hold", "cancelled"],
    "in_progress": ["on_hold", "completed", "cancelled"],
    "on_hold":     ["scheduled", "in_progress", "cancelled"],
    "completed":   [],
    "cancelled":   [],
}


def validate_job_transition(old_status, new_status):
    """Return True if Job status transition is valid."""
    return new_status in JOB_TRANSITIONS.get(old_status, [])


class Job(SoftDeleteMixin, TenantModel):
    """
    A unit of field work.
    Number format: J-00001 (tenant-scoped, allocated in the service layer).
    """

    __tablename__ = "jobs"

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(
        db.Integer, db.ForeignKey("clients.id", ondelete="RESTRICT"),
        nullable=False, index=True,
    )
    address_id = db.Column(
        db.Integer, db.ForeignKey("client_addresses.id", ondelete="SET NULL"),
        nullable=True,
    )
    quote_id = db.Column(
        db.Integer, db.ForeignKey("quotes.id", ondelete="SET NULL"),
        nullable=True, index=True,
        comment="Originating quote when created by conversion",
    )
    parent_job_id = db.Column(
        db.Integer, db.ForeignKey("jobs.id", ondelete="SET NULL"),
        nullable=True,
        comment="Series parent for recurring jobs",
    )

    job_number = db.Column(db.String(30), nullable=False, comment="J-00001")
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    status = db.Column(db.String(20), nullable=False, default=JobStatus.SCHEDULED.value)
    priority = db.Column(db.String(20), nullable=False, default=JobPriority.NORMAL.value)

    # Timeline
    scheduled_start = db.Column(db.DateTime(timezone=True), nullable=True)
    scheduled_end = db.Column(db.DateTime(timezone=True), nullable=True)
    estimated_duration = db.Column(db.Integer, nullable=True, comment="Minutes")
    actual_start = db.Column(db.DateTime(timezone=True), nullable=True)
    actual_end = db.Column(db.DateTime(timezone=True), nullable=True)

    # Crew
    assigned_to = db.Column(db.JSON, nullable=False, default=list, comment="List of user ids")

    # Money
    estimated_value = db.Column(db.Numeric(12, 2), nullable=True)
    actual_cost = db.Column(db.Numeric(12, 2), nullable=True)

    internal_notes = db.Column(db.Text, nullable=True)
    client_instructions = db.Column(db.Text, nullable=True)

    # Recurrence
    is_recurring = db.Column(db.Boolean, default=False)
    recurrence_rule = db.Column(db.String(200), nullable=True, comment="RRULE string")

    # Completion
    completion_notes = db.Column(db.Text, nullable=True)
    client_signature = db.Column(db.Text, nullable=True)

    created_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )

    __table_args__ = (
        db.UniqueConstraint("tenant_id", "job_number", name="uq_job_tenant_number"),
        db.CheckConstraint(
            "status IN ('scheduled','en_route','in_progress','on_hold','completed','cancelled')",
            name="ck_job_status",
        ),
        db.CheckConstraint(
            "priority IN ('low','normal','high','urgent')",
            name="ck_job_priority",
        ),
        db.CheckConstraint(
            "scheduled_start IS NULL OR scheduled_end IS NULL OR scheduled_end > scheduled_start",
            name="ck_job_schedule_order",
        ),
        db.Index("ix_jobs_tenant_status", "tenant_id", "status"),
    )

    client = db.relationship("Client", foreign_keys=[client_id])
    photos = db.relationship(
        "JobPhoto", backref="job", lazy="dynamic",
        cascade="all, delete-orphan", order_by="JobPhoto.sort_order",
    )

    @property
    def is_terminal(self):
        return self.status in TERMINAL_JOB_STATUSES

    def to_dict(self, include_photos=False):
        result = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "client_id": self.client_id,
            "address_id": self.address_id,
            "quote_id": self.quote_id,
            "parent_job_id": self.parent_job_id,
            "job_number": self.job_number,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "scheduled_start": iso(self.scheduled_start),
            "scheduled_end": iso(self.scheduled_end),
            "estimated_duration": self.estimated_duration,
            "actual_start": iso(self.actual_start),
            "actual_end": iso(self.actual_end),
            "assigned_to": list(self.assigned_to or []),
            "estimated_value": money(self.estimated_value),
            "actual_cost": money(self.actual_cost),
            "internal_notes": self.internal_notes,
            "client_instructions": self.client_instructions,
            "is_recurring": self.is_recurring,
            "recurrence_rule": self.recurrence_rule,
            "completion_notes": self.completion_notes,
            "has_signature": bool(self.client_signature),
            "created_by": self.created_by,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
        if include_photos:
            result["photos"] = [p.to_dict() for p in self.photos]
        return result

    def __repr__(self):
        return f"<Job {self.id}: {self.job_number} [{self.status}]>"


class JobPhoto(db.Model):
    """Photo metadata; the binary lives in external object storage."""

    __tablename__ = "job_photos"

    id = db.Column(db.Integer, primary_key=True)
    job_id = db.Column(
        db.Integer, db.ForeignKey("jobs.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    file_url = db.Column(db.String(500), nullable=False)
    file_name = db.Column(db.String(255), nullable=True)
    file_size = db.Column(db.Integer, nullable=True, comment="Bytes")
    mime_type = db.Column(db.String(100), nullable=True)
    caption = db.Column(db.Text, nullable=True)
    photo_type = db.Column(db.String(20), default="other", comment="before | during | after | other")
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    uploaded_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    uploaded_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "job_id": self.job_id,
            "file_url": self.file_url,
            "file_name": self.file_name,
            "file_size": self.file_size,
            "mime_type": self.mime_type,
            "caption": self.caption,
            "photo_type": self.photo_type,
            "sort_order": self.sort_order,
            "uploaded_by": self.uploaded_by,
            "uploaded_at": iso(self.uploaded_at),
        }
