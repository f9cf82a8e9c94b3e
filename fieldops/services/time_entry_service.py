"""
Time entry management — clock-in/out, edits, approval and timesheets.

Invariants:
    - a worker has at most one open entry (``end_time IS NULL``); checked
      before insert and backed by the ``uq_time_entries_worker_open`` index
    - closed entries of one worker never overlap (hard rule, unlike job
      scheduling where overlaps are only logged)
    - approved entries are frozen: no edit, no delete

Rules: tenant_id explicit on every call; db.session.commit() happens only in
this file.
"""

import logging
from collections import OrderedDict
from datetime import datetime, time, timedelta

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from fieldops.core import clock
from fieldops.core.exceptions import (
    AlreadyProcessedError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from fieldops.models import db
from fieldops.models.job import Job
from fieldops.models.tenant import User
from fieldops.models.time_entry import (
    ENTRY_TYPES,
    TIME_ENTRY_STATUSES,
    EntryType,
    TimeEntry,
    TimeEntryStatus,
    validate_time_entry_transition,
)
from fieldops.services.conflict_detector import Interval, find_conflicts
from fieldops.services.helpers.scoped_queries import get_scoped
from fieldops.services.job_lifecycle import require_reference
from fieldops.services.money import to_decimal

logger = logging.getLogger(__name__)

TIMESHEET_GROUPINGS = ("day", "week")


# ── Helpers ──────────────────────────────────────────────────────────────────


def _entry_type(value) -> str:
    if value is None:
        return EntryType.JOB.value
    value = getattr(value, "value", value)
    if value not in ENTRY_TYPES:
        raise ValidationError(f"Invalid entry_type: {value}",
                              details={"entry_type": f"must be one of {sorted(ENTRY_TYPES)}"})
    return value


def _coordinate(data: dict, field: str):
    if data.get(field) is None:
        return None
    value = to_decimal(data[field], field)
    limit = 90 if field.endswith("latitude") else 180
    if abs(value) > limit:
        raise ValidationError(f"{field} out of range", details={field: str(value)})
    return value


def _append_note(existing: str | None, addition: str | None, separator: str = "\n") -> str | None:
    if not addition:
        return existing
    if existing:
        return f"{existing}{separator}{addition}"
    return addition


def _open_entry_for(worker_id: int):
    return db.session.execute(
        select(TimeEntry).where(
            TimeEntry.worker_id == worker_id,
            TimeEntry.end_time.is_(None),
        )
    ).scalar_one_or_none()


def _overlapping_entries(entry: TimeEntry, start: datetime, end: datetime) -> list[Interval]:
    """Closed entries of the same worker that collide with [start, end)."""
    rows = db.session.execute(
        select(TimeEntry.id, TimeEntry.start_time, TimeEntry.end_time).where(
            TimeEntry.tenant_id == entry.tenant_id,
            TimeEntry.worker_id == entry.worker_id,
            TimeEntry.id != entry.id,
            TimeEntry.end_time.isnot(None),
            TimeEntry.start_time < end,
            TimeEntry.end_time > start,
        )
    ).all()
    intervals = [
        Interval(record_id=r.id, start=r.start_time, end=r.end_time,
                 worker_ids=frozenset({entry.worker_id}))
        for r in rows
    ]
    return find_conflicts(entry.worker_id, start, end, intervals, exclude_id=entry.id)


# ── Reads ────────────────────────────────────────────────────────────────────


def get_entry(tenant_id: int, entry_id: int, *, for_update: bool = False) -> TimeEntry:
    return get_scoped(TimeEntry, entry_id, tenant_id=tenant_id, for_update=for_update)


def get_active_entry(tenant_id: int, worker_id: int) -> TimeEntry | None:
    return db.session.execute(
        select(TimeEntry).where(
            TimeEntry.tenant_id == tenant_id,
            TimeEntry.worker_id == worker_id,
            TimeEntry.end_time.is_(None),
        )
    ).scalar_one_or_none()


def list_entries(
    tenant_id: int,
    *,
    worker_id: int | None = None,
    job_id: int | None = None,
    status: str | None = None,
    start=None,
    end=None,
    limit: int | None = None,
    offset: int = 0,
) -> tuple[list[TimeEntry], int]:
    stmt = select(TimeEntry).where(TimeEntry.tenant_id == tenant_id)
    if worker_id is not None:
        stmt = stmt.where(TimeEntry.worker_id == worker_id)
    if job_id is not None:
        stmt = stmt.where(TimeEntry.job_id == job_id)
    if status:
        if status not in TIME_ENTRY_STATUSES:
            raise ValidationError(f"Invalid status filter: {status}", details={"status": status})
        stmt = stmt.where(TimeEntry.status == status)
    if start is not None:
        stmt = stmt.where(TimeEntry.start_time >= clock.parse_datetime(start, "start"))
    if end is not None:
        stmt = stmt.where(TimeEntry.start_time < clock.parse_datetime(end, "end"))

    total = db.session.execute(select(func.count()).select_from(stmt.subquery())).scalar()
    stmt = stmt.order_by(TimeEntry.start_time.desc()).offset(offset)
    if limit is not None:
        stmt = stmt.limit(limit)
    return list(db.session.execute(stmt).scalars()), total


# ── Clock in / out ───────────────────────────────────────────────────────────


def clock_in(tenant_id: int, worker_id: int, data: dict | None = None) -> TimeEntry:
    """Open a new entry for *worker_id* starting now."""
    data = data or {}
    require_reference(User, worker_id, tenant_id, "worker_id")

    active = _open_entry_for(worker_id)
    if active is not None:
        raise AlreadyProcessedError("TimeEntry", active.id, "Worker is already clocked in")

    job_id = data.get("job_id")
    if job_id is not None:
        require_reference(Job, job_id, tenant_id, "job_id")

    entry = TimeEntry(
        tenant_id=tenant_id,
        worker_id=worker_id,
        job_id=job_id,
        start_time=clock.utcnow(),
        start_latitude=_coordinate(data, "latitude"),
        start_longitude=_coordinate(data, "longitude"),
        entry_type=_entry_type(data.get("entry_type")),
        is_billable=bool(data.get("is_billable", True)),
        status=TimeEntryStatus.PENDING.value,
        notes=data.get("notes"),
    )
    db.session.add(entry)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        logger.info("Concurrent clock-in rejected for worker %s", worker_id,
                    extra={"tenant_id": tenant_id, "worker_id": worker_id})
        raise AlreadyProcessedError("TimeEntry", None, "Worker is already clocked in") from None
    logger.info("Worker %s clocked in (entry %s)", worker_id, entry.id,
                extra={"tenant_id": tenant_id, "worker_id": worker_id})
    return entry


def clock_out(
    tenant_id: int,
    entry_id: int,
    data: dict | None = None,
    *,
    worker_id: int | None = None,
) -> TimeEntry:
    """Close an open entry now. When *worker_id* is given the entry must be theirs."""
    data = data or {}
    entry = get_entry(tenant_id, entry_id, for_update=True)
    if worker_id is not None and entry.worker_id != worker_id:
        db.session.rollback()
        raise NotFoundError(resource="TimeEntry", resource_id=entry_id)
    if entry.end_time is not None:
        db.session.rollback()
        raise AlreadyProcessedError("TimeEntry", entry.id, "Time entry is already clocked out")

    try:
        now = clock.utcnow()
        start = clock.as_utc(entry.start_time)
        end = now if now >= start else start
        entry.end_time = end
        entry.duration_minutes = clock.minutes_between(start, end)
        entry.end_latitude = _coordinate(data, "latitude")
        entry.end_longitude = _coordinate(data, "longitude")
        entry.notes = _append_note(entry.notes, data.get("notes"))
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info("Worker %s clocked out (entry %s, %s min)", entry.worker_id, entry.id,
                entry.duration_minutes, extra={"tenant_id": tenant_id, "worker_id": entry.worker_id})
    return entry


# ── Edit / delete ────────────────────────────────────────────────────────────


def update_entry(tenant_id: int, entry_id: int, data: dict) -> TimeEntry:
    entry = get_entry(tenant_id, entry_id, for_update=True)
    try:
        if entry.status == TimeEntryStatus.APPROVED:
            raise InvalidTransitionError("TimeEntry", entry.status, "update",
                                         message="Approved time entries cannot be edited")

        start = clock.as_utc(entry.start_time)
        end = clock.as_utc(entry.end_time)
        if data.get("start_time") is not None:
            start = clock.parse_datetime(data["start_time"], "start_time")
        if data.get("end_time") is not None:
            end = clock.parse_datetime(data["end_time"], "end_time")
        if end is not None and start >= end:
            raise ValidationError("start_time must be before end_time",
                                  details={"end_time": end.isoformat()})

        if "job_id" in data:
            if data["job_id"] is not None:
                require_reference(Job, data["job_id"], tenant_id, "job_id")
            entry.job_id = data["job_id"]
        if "entry_type" in data:
            entry.entry_type = _entry_type(data["entry_type"])
        if "is_billable" in data:
            entry.is_billable = bool(data["is_billable"])
        if "notes" in data:
            entry.notes = data["notes"]

        if end is not None:
            overlaps = _overlapping_entries(entry, start, end)
            if overlaps:
                raise ValidationError(
                    "Time entry overlaps with another entry",
                    details={"overlaps": [i.record_id for i in overlaps]},
                )
            entry.duration_minutes = clock.minutes_between(start, end)
        entry.start_time = start
        entry.end_time = end
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return entry


def delete_entry(tenant_id: int, entry_id: int) -> None:
    entry = get_entry(tenant_id, entry_id, for_update=True)
    if entry.status == TimeEntryStatus.APPROVED:
        db.session.rollback()
        raise InvalidTransitionError("TimeEntry", entry.status, "deleted",
                                     message="Approved time entries cannot be deleted")
    db.session.delete(entry)
    db.session.commit()


# ── Review ───────────────────────────────────────────────────────────────────


def approve_entry(tenant_id: int, entry_id: int, approver_id: int) -> TimeEntry:
    entry = get_entry(tenant_id, entry_id, for_update=True)
    try:
        if entry.status == TimeEntryStatus.APPROVED:
            raise AlreadyProcessedError("TimeEntry", entry.id, "Time entry is already approved")
        if entry.end_time is None:
            raise InvalidTransitionError("TimeEntry", entry.status, TimeEntryStatus.APPROVED.value,
                                         message="Cannot approve a time entry without a clock-out")
        if not validate_time_entry_transition(entry.status, TimeEntryStatus.APPROVED.value):
            raise InvalidTransitionError("TimeEntry", entry.status, TimeEntryStatus.APPROVED.value)
        require_reference(User, approver_id, tenant_id, "approver_id")

        entry.status = TimeEntryStatus.APPROVED.value
        entry.approved_by = approver_id
        entry.approved_at = clock.utcnow()
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info("Time entry %s approved by %s", entry.id, approver_id,
                extra={"tenant_id": tenant_id, "worker_id": entry.worker_id})
    return entry


def reject_entry(tenant_id: int, entry_id: int, approver_id: int, reason: str | None = None) -> TimeEntry:
    entry = get_entry(tenant_id, entry_id, for_update=True)
    try:
        if entry.status == TimeEntryStatus.APPROVED:
            raise InvalidTransitionError("TimeEntry", entry.status, TimeEntryStatus.REJECTED.value,
                                         message="Approved time entries cannot be rejected")
        if entry.status == TimeEntryStatus.REJECTED:
            raise AlreadyProcessedError("TimeEntry", entry.id, "Time entry is already rejected")
        require_reference(User, approver_id, tenant_id, "approver_id")

        entry.status = TimeEntryStatus.REJECTED.value
        entry.approved_by = approver_id
        entry.approved_at = clock.utcnow()
        if reason:
            entry.notes = _append_note(entry.notes, f"Rejection reason: {reason}", separator="\n\n")
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info("Time entry %s rejected by %s", entry.id, approver_id,
                extra={"tenant_id": tenant_id, "worker_id": entry.worker_id})
    return entry


# ── Timesheets ───────────────────────────────────────────────────────────────


def _period_key(start: datetime, group_by: str) -> str:
    day = clock.as_utc(start).date()
    if group_by == "week":
        day = day - timedelta(days=day.weekday())
    return day.isoformat()


def _summary(minutes: int, billable: int, count: int) -> dict:
    return {
        "total_minutes": minutes,
        "total_hours": round(minutes / 60, 2),
        "billable_minutes": billable,
        "billable_hours": round(billable / 60, 2),
        "entries_count": count,
    }


def get_timesheet(
    tenant_id: int,
    start_date,
    end_date,
    *,
    worker_id: int | None = None,
    group_by: str = "day",
) -> dict:
    """Summarise closed entries starting within [start_date, end_date] by day or ISO week."""
    if group_by not in TIMESHEET_GROUPINGS:
        raise ValidationError(f"Invalid group_by: {group_by}",
                              details={"group_by": f"must be one of {list(TIMESHEET_GROUPINGS)}"})
    first = clock.parse_date(start_date, "start_date")
    last = clock.parse_date(end_date, "end_date")
    if first is None or last is None:
        raise ValidationError("start_date and end_date are required")
    if last < first:
        raise ValidationError("end_date cannot be before start_date",
                              details={"end_date": last.isoformat()})

    window_start = clock.as_utc(datetime.combine(first, time.min))
    window_end = clock.as_utc(datetime.combine(last + timedelta(days=1), time.min))
    stmt = select(TimeEntry).where(
        TimeEntry.tenant_id == tenant_id,
        TimeEntry.end_time.isnot(None),
        TimeEntry.start_time >= window_start,
        TimeEntry.start_time < window_end,
    )
    if worker_id is not None:
        stmt = stmt.where(TimeEntry.worker_id == worker_id)
    entries = list(db.session.execute(stmt.order_by(TimeEntry.start_time)).scalars())

    buckets: "OrderedDict[str, list[TimeEntry]]" = OrderedDict()
    for entry in entries:
        buckets.setdefault(_period_key(entry.start_time, group_by), []).append(entry)

    periods = []
    for key, bucket in buckets.items():
        minutes = sum(e.duration_minutes or 0 for e in bucket)
        billable = sum(e.duration_minutes or 0 for e in bucket if e.is_billable)
        periods.append({"period": key, **_summary(minutes, billable, len(bucket))})

    total = sum(e.duration_minutes or 0 for e in entries)
    billable_total = sum(e.duration_minutes or 0 for e in entries if e.is_billable)
    return {
        "worker_id": worker_id,
        "start_date": first.isoformat(),
        "end_date": last.isoformat(),
        "group_by": group_by,
        "periods": periods,
        "summary": _summary(total, billable_total, len(entries)),
    }
