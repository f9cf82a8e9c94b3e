"""
Scheduling conflict detection.

Pure predicates over half-open intervals ``[start, end)``; no database access.
Callers (job_lifecycle, schedule_service, time_entry_service) gather the
candidate intervals and decide what a conflict means:

  - job scheduling: soft, logged as a warning
  - time entries:   hard, rejected

Two intervals overlap iff ``a.start < b.end and a.end > b.start``; touching
endpoints (one ends exactly when the next starts) do not overlap.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from fieldops.core.clock import as_utc


@dataclass(frozen=True)
class Interval:
    """A booked window for one or more workers."""
    record_id: int | None
    start: datetime
    end: datetime
    worker_ids: frozenset = field(default_factory=frozenset)
    status: str | None = None
    label: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.record_id,
            "start": as_utc(self.start).isoformat(),
            "end": as_utc(self.end).isoformat(),
            "worker_ids": sorted(self.worker_ids),
            "status": self.status,
            "label": self.label,
        }


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return as_utc(a_start) < as_utc(b_end) and as_utc(a_end) > as_utc(b_start)


def find_conflicts(
    worker_id: int | None,
    start: datetime,
    end: datetime,
    existing: Iterable[Interval],
    *,
    exclude_id: int | None = None,
    excluded_statuses: Iterable[str] = (),
) -> list[Interval]:
    """Return the intervals in *existing* that collide with ``[start, end)``.

    An interval is considered only if it is assigned to *worker_id* (pass
    ``None`` to skip the worker filter), is not *exclude_id*, and its status
    is not in *excluded_statuses*.
    """
    skip = set(excluded_statuses)
    conflicts = []
    for interval in existing:
        if exclude_id is not None and interval.record_id == exclude_id:
            continue
        if interval.status is not None and interval.status in skip:
            continue
        if worker_id is not None and worker_id not in interval.worker_ids:
            continue
        if overlaps(start, end, interval.start, interval.end):
            conflicts.append(interval)
    return conflicts


def has_conflict(
    worker_id: int | None,
    start: datetime,
    end: datetime,
    existing: Iterable[Interval],
    *,
    exclude_id: int | None = None,
    excluded_statuses: Iterable[str] = (),
) -> bool:
    return bool(find_conflicts(
        worker_id, start, end, existing,
        exclude_id=exclude_id, excluded_statuses=excluded_statuses,
    ))
