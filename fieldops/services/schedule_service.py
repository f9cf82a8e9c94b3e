"""
Dispatch board queries — read-only views built on the conflict detector.

    find_conflicts(tenant_id, worker_id, start, end)      → overlapping jobs
    check_availability(tenant_id, worker_ids, start, end) → per-worker verdict
"""

import logging

from fieldops.core import clock
from fieldops.core.exceptions import ValidationError
from fieldops.models.job import TERMINAL_JOB_STATUSES
from fieldops.models.tenant import User
from fieldops.models import db
from fieldops.services import conflict_detector
from fieldops.services.job_lifecycle import booked_intervals, validate_assignees

logger = logging.getLogger(__name__)


def _window(start, end):
    start = clock.parse_datetime(start, "start")
    end = clock.parse_datetime(end, "end")
    if start is None or end is None:
        raise ValidationError("start and end are required")
    if end <= start:
        raise ValidationError("end must be after start", details={"end": end.isoformat()})
    return start, end


def find_conflicts(
    tenant_id: int,
    worker_id: int,
    start,
    end,
    *,
    exclude_job_id: int | None = None,
) -> list[dict]:
    """Jobs booked for *worker_id* that overlap [start, end)."""
    start, end = _window(start, end)
    intervals = booked_intervals(tenant_id, start, end, exclude_job_id=exclude_job_id)
    return [
        i.to_dict() for i in conflict_detector.find_conflicts(
            worker_id, start, end, intervals,
            exclude_id=exclude_job_id, excluded_statuses=TERMINAL_JOB_STATUSES,
        )
    ]


def check_availability(tenant_id: int, worker_ids, start, end) -> dict:
    start, end = _window(start, end)
    ids = validate_assignees(tenant_id, worker_ids)
    if not ids:
        raise ValidationError("worker_ids is required", details={"worker_ids": "required"})

    users = {u.id: u for u in db.session.query(User).filter(User.id.in_(ids)).all()}
    intervals = booked_intervals(tenant_id, start, end)
    availability = []
    for worker_id in ids:
        conflicts = conflict_detector.find_conflicts(
            worker_id, start, end, intervals, excluded_statuses=TERMINAL_JOB_STATUSES,
        )
        availability.append({
            "worker_id": worker_id,
            "full_name": users[worker_id].full_name,
            "available": not conflicts,
            "conflicts": [c.to_dict() for c in conflicts],
        })
    return {
        "start": start.isoformat(),
        "end": end.isoformat(),
        "availability": availability,
    }
