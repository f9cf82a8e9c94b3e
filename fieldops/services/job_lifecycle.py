"""
Job lifecycle — service layer.

Business logic for:
    - Job creation:         reference validation + J-00001 number allocation
    - Schedule / crew:      window validation, soft conflict warnings
    - Status transitions:   JOB_TRANSITIONS table; ``completed`` only via complete_job
    - Completion workflow:  actual times, signature, invoicing trigger
    - Deletion:             soft delete, guarded by status and invoices
    - Photos:               metadata add / remove

Rules: tenant_id explicit on every call; db.session.commit() happens only in
this file (``insert_job`` flushes and leaves the commit to its caller so quote
conversion can share the transaction).
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from fieldops.core import clock
from fieldops.core.exceptions import (
    AlreadyProcessedError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from fieldops.models import db
from fieldops.models.invoice import Invoice
from fieldops.models.job import (
    JOB_PRIORITIES,
    JOB_STATUSES,
    PHOTO_TYPES,
    TERMINAL_JOB_STATUSES,
    Job,
    JobPhoto,
    JobPriority,
    JobStatus,
    validate_job_transition,
)
from fieldops.models.quote import Quote
from fieldops.models.tenant import Client, User
from fieldops.services import invoicing_trigger, sequence_service
from fieldops.services.conflict_detector import Interval, find_conflicts
from fieldops.services.helpers.scoped_queries import get_scoped, get_scoped_or_none
from fieldops.services.money import to_decimal

logger = logging.getLogger(__name__)

_DETAIL_FIELDS = (
    "title", "description", "internal_notes", "client_instructions",
    "estimated_duration", "is_recurring", "recurrence_rule",
)


# ── Reference validation ─────────────────────────────────────────────────────


def require_reference(model, pk, tenant_id: int, field: str):
    if pk is None:
        raise ValidationError(f"{field} is required", details={field: "required"})
    obj = get_scoped_or_none(model, pk, tenant_id=tenant_id)
    if obj is None:
        raise ValidationError(
            f"{model.__name__} {pk} does not exist",
            details={field: pk},
        )
    return obj


def validate_address(client: Client, address_id) -> int | None:
    if address_id is None:
        return None
    if not any(a.id == address_id for a in client.addresses):
        raise ValidationError(
            f"Address {address_id} does not belong to client {client.id}",
            details={"address_id": address_id},
        )
    return address_id


def validate_assignees(tenant_id: int, worker_ids) -> list[int]:
    """Return de-duplicated assignee ids; every one must be a user of the tenant."""
    if worker_ids is None:
        return []
    if not isinstance(worker_ids, (list, tuple, set)):
        raise ValidationError("assigned_to must be a list of user ids",
                              details={"assigned_to": worker_ids})
    ids = []
    for raw in worker_ids:
        if isinstance(raw, bool) or not isinstance(raw, int):
            raise ValidationError("assigned_to must contain integer ids",
                                  details={"assigned_to": raw})
        if raw not in ids:
            ids.append(raw)
    if not ids:
        return []

    found = set(db.session.execute(
        select(User.id).where(User.tenant_id == tenant_id, User.id.in_(ids))
    ).scalars())
    missing = [i for i in ids if i not in found]
    if missing:
        raise ValidationError(
            f"Unknown assignee ids: {missing}",
            details={"assigned_to": missing},
        )
    return ids


def _validate_window(start, end) -> None:
    if start is not None and end is not None and clock.as_utc(end) <= clock.as_utc(start):
        raise ValidationError(
            "scheduled_end must be after scheduled_start",
            details={"scheduled_end": end.isoformat()},
        )


def _priority(value) -> str:
    if value is None:
        return JobPriority.NORMAL.value
    value = getattr(value, "value", value)
    if value not in JOB_PRIORITIES:
        raise ValidationError(f"Invalid priority: {value}",
                              details={"priority": f"must be one of {sorted(JOB_PRIORITIES)}"})
    return value


def _optional_money(data: dict, field: str):
    if data.get(field) is None:
        return None
    amount = to_decimal(data[field], field)
    if amount < 0:
        raise ValidationError(f"{field} cannot be negative", details={field: str(amount)})
    return amount


# ── Conflict gathering ───────────────────────────────────────────────────────


def booked_intervals(tenant_id: int, start, end, *, exclude_job_id: int | None = None) -> list[Interval]:
    """Non-terminal, scheduled jobs of the tenant whose window touches [start, end)."""
    stmt = select(Job).where(
        Job.tenant_id == tenant_id,
        Job.deleted_at.is_(None),
        Job.status.notin_(TERMINAL_JOB_STATUSES),
        Job.scheduled_start.isnot(None),
        Job.scheduled_end.isnot(None),
        Job.scheduled_start < end,
        Job.scheduled_end > start,
    )
    if exclude_job_id is not None:
        stmt = stmt.where(Job.id != exclude_job_id)
    return [
        Interval(
            record_id=j.id,
            start=j.scheduled_start,
            end=j.scheduled_end,
            worker_ids=frozenset(j.assigned_to or []),
            status=j.status,
            label=j.job_number,
        )
        for j in db.session.execute(stmt).scalars()
    ]


def _warn_on_conflicts(job: Job, worker_ids: list[int], start, end) -> list[Interval]:
    """Log a warning for each assignee double-booked by *job*. Never raises."""
    if not worker_ids or start is None or end is None:
        return []
    intervals = booked_intervals(job.tenant_id, start, end, exclude_job_id=job.id)
    found = []
    for worker_id in worker_ids:
        conflicts = find_conflicts(
            worker_id, start, end, intervals,
            exclude_id=job.id, excluded_statuses=TERMINAL_JOB_STATUSES,
        )
        for other in conflicts:
            logger.warning(
                "Scheduling conflict: worker %s on job %s overlaps job %s",
                worker_id, job.job_number, other.label,
                extra={"tenant_id": job.tenant_id, "job_id": job.id, "worker_id": worker_id},
            )
        found.extend(conflicts)
    return found


# ── Reads ────────────────────────────────────────────────────────────────────


def get_job(tenant_id: int, job_id: int, *, for_update: bool = False) -> Job:
    return get_scoped(Job, job_id, tenant_id=tenant_id, for_update=for_update)


def list_jobs(
    tenant_id: int,
    *,
    status: str | None = None,
    client_id: int | None = None,
    assigned_to: int | None = None,
    limit: int | None = None,
    offset: int = 0,
) -> tuple[list[Job], int]:
    """Return (page, total) of the tenant's live jobs, newest schedule first."""
    stmt = select(Job).where(Job.tenant_id == tenant_id, Job.deleted_at.is_(None))
    if status:
        if status not in JOB_STATUSES:
            raise ValidationError(f"Invalid status filter: {status}", details={"status": status})
        stmt = stmt.where(Job.status == status)
    if client_id:
        stmt = stmt.where(Job.client_id == client_id)
    stmt = stmt.order_by(Job.scheduled_start.desc(), Job.id.desc())

    jobs = list(db.session.execute(stmt).scalars())
    if assigned_to is not None:
        jobs = [j for j in jobs if assigned_to in (j.assigned_to or [])]
    total = len(jobs)
    end = None if limit is None else offset + limit
    return jobs[offset:end], total


# ── Create / update ──────────────────────────────────────────────────────────


def insert_job(tenant_id: int, user_id: int | None, data: dict) -> Job:
    """Validate, number and flush a new job without committing."""
    title = (data.get("title") or "").strip()
    if not title:
        raise ValidationError("title is required", details={"title": "required"})

    client = require_reference(Client, data.get("client_id"), tenant_id, "client_id")
    address_id = validate_address(client, data.get("address_id"))
    if data.get("quote_id") is not None:
        require_reference(Quote, data["quote_id"], tenant_id, "quote_id")
    if data.get("parent_job_id") is not None:
        require_reference(Job, data["parent_job_id"], tenant_id, "parent_job_id")

    start = clock.parse_datetime(data.get("scheduled_start"), "scheduled_start")
    end = clock.parse_datetime(data.get("scheduled_end"), "scheduled_end")
    _validate_window(start, end)
    assignees = validate_assignees(tenant_id, data.get("assigned_to"))
    priority = _priority(data.get("priority"))
    estimated_value = _optional_money(data, "estimated_value")
    actual_cost = _optional_money(data, "actual_cost")

    job = Job(
        tenant_id=tenant_id,
        client_id=client.id,
        address_id=address_id,
        quote_id=data.get("quote_id"),
        parent_job_id=data.get("parent_job_id"),
        job_number=sequence_service.allocate_number(tenant_id, "job"),
        title=title,
        description=data.get("description") or "",
        status=JobStatus.SCHEDULED.value,
        priority=priority,
        scheduled_start=start,
        scheduled_end=end,
        estimated_duration=data.get("estimated_duration"),
        assigned_to=assignees,
        estimated_value=estimated_value,
        actual_cost=actual_cost,
        internal_notes=data.get("internal_notes"),
        client_instructions=data.get("client_instructions"),
        is_recurring=bool(data.get("is_recurring", False)),
        recurrence_rule=data.get("recurrence_rule"),
        created_by=user_id,
    )
    db.session.add(job)
    db.session.flush()
    return job


def create_job(tenant_id: int, user_id: int | None, data: dict) -> Job:
    try:
        job = insert_job(tenant_id, user_id, data)
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Job insert rejected by a unique constraint: %s", exc.orig, extra={"tenant_id": tenant_id})
        raise ConflictError("Job", "job_number") from None
    except Exception:
        db.session.rollback()
        raise
    logger.info("Job %s created", job.job_number, extra={"tenant_id": tenant_id, "job_id": job.id})
    return job


def update_job(tenant_id: int, job_id: int, data: dict) -> Job:
    """Edit descriptive fields. Schedule, crew and status have their own operations."""
    job = get_job(tenant_id, job_id, for_update=True)
    if job.status == JobStatus.COMPLETED:
        db.session.rollback()
        raise InvalidTransitionError("Job", job.status, "update",
                                     message="Completed jobs cannot be edited")
    try:
        for field in _DETAIL_FIELDS:
            if field in data:
                setattr(job, field, data[field])
        if "title" in data and not (job.title or "").strip():
            raise ValidationError("title is required", details={"title": "required"})
        if "priority" in data:
            job.priority = _priority(data["priority"])
        for field in ("estimated_value", "actual_cost"):
            if field in data:
                setattr(job, field, _optional_money(data, field))
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return job


def _guard_schedulable(job: Job, operation: str) -> None:
    if job.status in TERMINAL_JOB_STATUSES:
        raise InvalidTransitionError(
            "Job", job.status, operation,
            message=f"Cannot {operation.replace('_', ' ')} a {job.status} job",
        )


def update_schedule(tenant_id: int, job_id: int, data: dict) -> Job:
    """Move a job's window and optionally its crew.

    Overlaps with other bookings of the same workers are logged, not rejected.
    """
    job = get_job(tenant_id, job_id, for_update=True)
    try:
        _guard_schedulable(job, "update_schedule")

        start = job.scheduled_start
        end = job.scheduled_end
        if "scheduled_start" in data:
            start = clock.parse_datetime(data["scheduled_start"], "scheduled_start")
        if "scheduled_end" in data:
            end = clock.parse_datetime(data["scheduled_end"], "scheduled_end")
        _validate_window(start, end)

        assignees = list(job.assigned_to or [])
        if "assigned_to" in data:
            assignees = validate_assignees(tenant_id, data["assigned_to"])

        job.scheduled_start = start
        job.scheduled_end = end
        job.assigned_to = assignees
        if "estimated_duration" in data:
            job.estimated_duration = data["estimated_duration"]

        _warn_on_conflicts(job, assignees, start, end)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info("Job %s rescheduled", job.job_number, extra={"tenant_id": tenant_id, "job_id": job.id})
    return job


def assign_team(tenant_id: int, job_id: int, worker_ids) -> Job:
    """Replace the job's crew. Double bookings are logged, not rejected."""
    job = get_job(tenant_id, job_id, for_update=True)
    try:
        _guard_schedulable(job, "assign_team")
        assignees = validate_assignees(tenant_id, worker_ids)
        job.assigned_to = assignees
        _warn_on_conflicts(job, assignees, job.scheduled_start, job.scheduled_end)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info("Job %s crew set to %s", job.job_number, assignees,
                extra={"tenant_id": tenant_id, "job_id": job.id})
    return job


# ── Lifecycle ────────────────────────────────────────────────────────────────


def complete_job(
    tenant_id: int,
    job_id: int,
    *,
    signature: str | None = None,
    notes: str | None = None,
) -> Job:
    """Run the completion workflow and fire the invoicing trigger."""
    job = get_job(tenant_id, job_id, for_update=True)
    if job.status == JobStatus.COMPLETED:
        db.session.rollback()
        raise AlreadyProcessedError("Job", job.id, f"Job {job.job_number} is already completed")
    if job.status == JobStatus.CANCELLED:
        db.session.rollback()
        raise InvalidTransitionError("Job", job.status, JobStatus.COMPLETED.value,
                                     message="Cancelled jobs cannot be completed")

    now = clock.utcnow()
    job.status = JobStatus.COMPLETED.value
    job.actual_end = now
    if job.actual_start is None:
        job.actual_start = job.scheduled_start or now
    if signature is not None:
        job.client_signature = signature
    if notes is not None:
        job.completion_notes = notes
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Job %s completed", job.job_number, extra={"tenant_id": tenant_id, "job_id": job.id})
    invoicing_trigger.job_completed(job)
    return job


def update_status(tenant_id: int, job_id: int, new_status) -> Job:
    """Generic transition along JOB_TRANSITIONS. ``completed`` is refused here."""
    target = getattr(new_status, "value", new_status)
    if target not in JOB_STATUSES:
        raise ValidationError(f"Invalid status: {target}",
                              details={"status": f"must be one of {sorted(JOB_STATUSES)}"})

    job = get_job(tenant_id, job_id, for_update=True)
    old = job.status
    if target == JobStatus.COMPLETED:
        db.session.rollback()
        raise InvalidTransitionError("Job", old, target,
                                     message="Use the completion workflow to complete a job")
    if not validate_job_transition(old, target):
        db.session.rollback()
        raise InvalidTransitionError("Job", old, target)

    job.status = target
    if target == JobStatus.IN_PROGRESS and job.actual_start is None:
        job.actual_start = clock.utcnow()
    db.session.commit()
    logger.info("Job %s: %s → %s", job.job_number, old, target,
                extra={"tenant_id": tenant_id, "job_id": job.id})
    return job


def delete_job(tenant_id: int, job_id: int) -> None:
    job = get_job(tenant_id, job_id, for_update=True)
    if job.status == JobStatus.COMPLETED:
        db.session.rollback()
        raise InvalidTransitionError("Job", job.status, "deleted",
                                     message="Completed jobs cannot be deleted")
    invoice_count = db.session.execute(
        select(func.count(Invoice.id)).where(
            Invoice.tenant_id == tenant_id,
            Invoice.job_id == job.id,
        )
    ).scalar()
    if invoice_count:
        db.session.rollback()
        raise ValidationError(
            "Job has invoices and cannot be deleted",
            details={"invoices": invoice_count},
        )
    job.soft_delete()
    db.session.commit()
    logger.info("Job %s deleted", job.job_number, extra={"tenant_id": tenant_id, "job_id": job.id})


# ── Photos ───────────────────────────────────────────────────────────────────


def add_photo(tenant_id: int, job_id: int, user_id: int | None, data: dict) -> JobPhoto:
    job = get_job(tenant_id, job_id, for_update=True)
    file_url = (data.get("file_url") or "").strip()
    if not file_url:
        db.session.rollback()
        raise ValidationError("file_url is required", details={"file_url": "required"})
    photo_type = data.get("photo_type") or "other"
    if photo_type not in PHOTO_TYPES:
        db.session.rollback()
        raise ValidationError(f"Invalid photo_type: {photo_type}",
                              details={"photo_type": f"must be one of {sorted(PHOTO_TYPES)}"})

    photo = JobPhoto(
        job_id=job.id,
        file_url=file_url,
        file_name=data.get("file_name"),
        file_size=data.get("file_size"),
        mime_type=data.get("mime_type"),
        caption=data.get("caption"),
        photo_type=photo_type,
        sort_order=job.photos.count(),
        uploaded_by=user_id,
    )
    db.session.add(photo)
    db.session.commit()
    return photo


def delete_photo(tenant_id: int, photo_id: int) -> None:
    """Remove photo metadata; ownership is checked through the parent job."""
    photo = db.session.execute(
        select(JobPhoto)
        .join(Job, JobPhoto.job_id == Job.id)
        .where(JobPhoto.id == photo_id, Job.tenant_id == tenant_id)
    ).scalar_one_or_none()
    if photo is None:
        raise NotFoundError(resource="JobPhoto", resource_id=photo_id)
    db.session.delete(photo)
    db.session.commit()
