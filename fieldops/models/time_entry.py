"""
FieldOps Workflow Core
Worker time tracking.

A TimeEntry is open (active) while ``end_time`` is NULL. A worker may have at
most one open entry; the service checks before insert and the partial unique
index ``uq_time_entries_worker_open`` backs it at the storage level.

Lifecycle:
    pending → approved | rejected   (both terminal)
"""

from enum import Enum

from fieldops.models import db
from fieldops.models.base import TenantModel, iso


class TimeEntryStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class EntryType(str, Enum):
    JOB = "job"
    TRAVEL = "travel"
    BREAK = "break"
    ADMIN = "admin"


TIME_ENTRY_STATUSES = {s.value for s in TimeEntryStatus}
ENTRY_TYPES = {t.value for t in EntryType}

TIME_ENTRY_TRANSITIONS = {
    "pending":  ["approved", "rejected"],
    "approved": [],
    "rejected": [],
}


def validate_time_entry_transition(old_status, new_status):
    """Return True if TimeEntry status transition is valid."""
    return new_status in TIME_ENTRY_TRANSITIONS.get(old_status, [])


class TimeEntry(TenantModel):
    __tablename__ = "time_entries"

    id = db.Column(db.Integer, primary_key=True)
    worker_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    job_id = db.Column(
        db.Integer, db.ForeignKey("jobs.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )

    start_time = db.Column(db.DateTime(timezone=True), nullable=False)
    end_time = db.Column(db.DateTime(timezone=True), nullable=True)
    duration_minutes = db.Column(db.Integer, nullable=True, comment="floor(elapsed minutes)")

    start_latitude = db.Column(db.Numeric(10, 7), nullable=True)
    start_longitude = db.Column(db.Numeric(10, 7), nullable=True)
    end_latitude = db.Column(db.Numeric(10, 7), nullable=True)
    end_longitude = db.Column(db.Numeric(10, 7), nullable=True)

    entry_type = db.Column(db.String(20), nullable=False, default=EntryType.JOB.value)
    is_billable = db.Column(db.Boolean, nullable=False, default=True)
    status = db.Column(db.String(20), nullable=False, default=TimeEntryStatus.PENDING.value)
    approved_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    __table_args__ = (
        db.CheckConstraint(
            "status IN ('pending','approved','rejected')",
            name="ck_time_entry_status",
        ),
        db.CheckConstraint(
            "entry_type IN ('job','travel','break','admin')",
            name="ck_time_entry_type",
        ),
        db.CheckConstraint(
            "end_time IS NULL OR end_time >= start_time",
            name="ck_time_entry_order",
        ),
        db.Index(
            "uq_time_entries_worker_open", "worker_id",
            unique=True,
            sqlite_where=db.text("end_time IS NULL"),
            postgresql_where=db.text("end_time IS NULL"),
        ),
    )

    @property
    def is_active(self):
        return self.end_time is None

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "worker_id": self.worker_id,
            "job_id": self.job_id,
            "start_time": iso(self.start_time),
            "end_time": iso(self.end_time),
            "duration_minutes": self.duration_minutes,
            "start_location": _location(self.start_latitude, self.start_longitude),
            "end_location": _location(self.end_latitude, self.end_longitude),
            "entry_type": self.entry_type,
            "is_billable": self.is_billable,
            "status": self.status,
            "approved_by": self.approved_by,
            "approved_at": iso(self.approved_at),
            "notes": self.notes,
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<TimeEntry {self.id}: worker={self.worker_id} [{self.status}]>"


def _location(lat, lng):
    if lat is None or lng is None:
        return None
    return {"latitude": float(lat), "longitude": float(lng)}
