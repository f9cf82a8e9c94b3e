"""
Job lifecycle service tests.

Covers:
    - creation: numbering, reference validation, window validation, crew dedup
    - JOB_TRANSITIONS: every (from, to) pair through update_status
    - completion workflow: backfill, signature, idempotency guard
    - scheduling: soft conflict warnings (logged, never raised)
    - deletion guards and photo metadata
"""

import logging
from datetime import timedelta

import pytest

from fieldops.core.clock import as_utc
from fieldops.core.exceptions import (
    AlreadyProcessedError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from fieldops.models import db
from fieldops.models.invoice import Invoice
from fieldops.models.job import JOB_STATUSES, JOB_TRANSITIONS, Job
from fieldops.models.tenant import Client, ClientAddress, User
from fieldops.services import job_lifecycle

START = "2026-03-02T09:00:00+00:00"
END = "2026-03-02T11:00:00+00:00"


def _make_client(tenant, company_name):
    c = Client(tenant_id=tenant.id, company_name=company_name)
    c.addresses.append(ClientAddress(street="9 Side St", city="Portland"))
    db.session.add(c)
    db.session.commit()
    return c


def _make_user(tenant, email):
    u = User(tenant_id=tenant.id, email=email, full_name="Outsider")
    db.session.add(u)
    db.session.commit()
    return u


def _job(tenant, customer, **overrides):
    data = {"client_id": customer.id, "title": "Replace water heater"}
    data.update(overrides)
    return job_lifecycle.create_job(tenant.id, None, data)


def _force_status(job, status):
    job.status = status
    db.session.commit()
    return job


# ── Creation ─────────────────────────────────────────────────────────────────


class TestCreateJob:

    def test_defaults_and_number(self, tenant, customer):
        job = _job(tenant, customer)
        assert job.job_number == "J-00001"
        assert job.status == "scheduled"
        assert job.priority == "normal"
        assert job.assigned_to == []
        assert job.tenant_id == tenant.id

    def test_numbers_are_sequential(self, tenant, customer):
        numbers = [_job(tenant, customer).job_number for _ in range(3)]
        assert numbers == ["J-00001", "J-00002", "J-00003"]

    def test_assignees_are_deduplicated_in_order(self, tenant, customer, worker, second_worker):
        job = _job(tenant, customer, assigned_to=[second_worker.id, worker.id, second_worker.id])
        assert job.assigned_to == [second_worker.id, worker.id]

    def test_schedule_is_stored_in_utc(self, tenant, customer):
        job = _job(tenant, customer, scheduled_start="2026-03-02T10:00:00+01:00", scheduled_end=END)
        assert as_utc(job.scheduled_start).isoformat() == START

    def test_title_required(self, tenant, customer):
        with pytest.raises(ValidationError, match="title is required"):
            _job(tenant, customer, title="  ")

    def test_missing_client_rejected(self, tenant):
        with pytest.raises(ValidationError, match="client_id is required"):
            job_lifecycle.create_job(tenant.id, None, {"title": "No client"})

    def test_client_of_another_tenant_rejected(self, tenant, other_tenant):
        foreign = _make_client(other_tenant, "Elsewhere Inc")
        with pytest.raises(ValidationError, match="does not exist"):
            job_lifecycle.create_job(tenant.id, None, {"client_id": foreign.id, "title": "X"})

    def test_address_must_belong_to_client(self, tenant, customer):
        other = _make_client(tenant, "Second Client")
        with pytest.raises(ValidationError, match="does not belong"):
            _job(tenant, customer, address_id=other.addresses[0].id)

    def test_end_before_start_rejected(self, tenant, customer):
        with pytest.raises(ValidationError, match="scheduled_end must be after"):
            _job(tenant, customer, scheduled_start=END, scheduled_end=START)

    def test_zero_length_window_rejected(self, tenant, customer):
        with pytest.raises(ValidationError):
            _job(tenant, customer, scheduled_start=START, scheduled_end=START)

    def test_unknown_assignee_rejected(self, tenant, customer, worker):
        with pytest.raises(ValidationError) as exc_info:
            _job(tenant, customer, assigned_to=[worker.id, 9999])
        assert exc_info.value.details == {"assigned_to": [9999]}

    def test_assignee_from_other_tenant_rejected(self, tenant, other_tenant, customer):
        outsider = _make_user(other_tenant, "eve@rival.test")
        with pytest.raises(ValidationError):
            _job(tenant, customer, assigned_to=[outsider.id])

    def test_invalid_priority_rejected(self, tenant, customer):
        with pytest.raises(ValidationError, match="Invalid priority"):
            _job(tenant, customer, priority="asap")

    def test_failed_create_does_not_consume_number(self, tenant, customer):
        with pytest.raises(ValidationError):
            _job(tenant, customer, estimated_value="-10")
        assert _job(tenant, customer).job_number == "J-00001"

    def test_taken_number_is_conflict(self, tenant, customer):
        # imported row numbered outside the allocator
        db.session.add(Job(tenant_id=tenant.id, client_id=customer.id, job_number="J-00001", title="Imported"))
        db.session.commit()
        with pytest.raises(ConflictError) as exc_info:
            _job(tenant, customer)
        assert exc_info.value.field == "job_number"
        assert Job.query.filter_by(tenant_id=tenant.id).count() == 1


# ── State machine ────────────────────────────────────────────────────────────


_ALL_PAIRS = [(a, b) for a in sorted(JOB_STATUSES) for b in sorted(JOB_STATUSES) if b != "completed"]


class TestStatusTransitions:

    @pytest.mark.parametrize("current,target", _ALL_PAIRS)
    def test_transition_table_is_enforced(self, tenant, customer, current, target):
        job = _force_status(_job(tenant, customer), current)
        if target in JOB_TRANSITIONS[current]:
            updated = job_lifecycle.update_status(tenant.id, job.id, target)
            assert updated.status == target
        else:
            with pytest.raises(InvalidTransitionError):
                job_lifecycle.update_status(tenant.id, job.id, target)
            assert db.session.get(Job, job.id).status == current

    def test_completed_refused_through_generic_update(self, tenant, customer):
        job = _force_status(_job(tenant, customer), "in_progress")
        with pytest.raises(InvalidTransitionError, match="completion workflow"):
            job_lifecycle.update_status(tenant.id, job.id, "completed")

    def test_unknown_status_is_validation_error(self, tenant, customer):
        job = _job(tenant, customer)
        with pytest.raises(ValidationError):
            job_lifecycle.update_status(tenant.id, job.id, "teleported")

    def test_in_progress_sets_actual_start_once(self, tenant, customer, frozen_clock):
        job = _job(tenant, customer)
        job_lifecycle.update_status(tenant.id, job.id, "in_progress")
        first_start = frozen_clock.now
        frozen_clock.advance(minutes=30)
        job_lifecycle.update_status(tenant.id, job.id, "on_hold")
        job = job_lifecycle.update_status(tenant.id, job.id, "in_progress")
        assert as_utc(job.actual_start) == first_start

    def test_other_tenant_cannot_transition(self, tenant, other_tenant, customer):
        job = _job(tenant, customer)
        with pytest.raises(NotFoundError):
            job_lifecycle.update_status(other_tenant.id, job.id, "en_route")


# ── Completion ───────────────────────────────────────────────────────────────


class TestCompleteJob:

    def test_complete_from_in_progress(self, tenant, customer, frozen_clock):
        job = _job(tenant, customer)
        job_lifecycle.update_status(tenant.id, job.id, "in_progress")
        started = frozen_clock.now
        frozen_clock.advance(hours=2)

        job = job_lifecycle.complete_job(tenant.id, job.id, signature="data:image/png;base64,AAA",
                                         notes="Replaced valve")
        assert job.status == "completed"
        assert as_utc(job.actual_start) == started
        assert as_utc(job.actual_end) == frozen_clock.now
        assert job.client_signature == "data:image/png;base64,AAA"
        assert job.completion_notes == "Replaced valve"

    def test_actual_start_backfilled_from_schedule(self, tenant, customer, frozen_clock):
        job = _job(tenant, customer, scheduled_start=START, scheduled_end=END)
        job = job_lifecycle.complete_job(tenant.id, job.id)
        assert as_utc(job.actual_start).isoformat() == START
        assert as_utc(job.actual_end) == frozen_clock.now

    def test_actual_start_falls_back_to_now(self, tenant, customer, frozen_clock):
        job = job_lifecycle.complete_job(tenant.id, _job(tenant, customer).id)
        assert as_utc(job.actual_start) == frozen_clock.now

    def test_complete_twice_is_already_processed(self, tenant, customer, frozen_clock):
        job = job_lifecycle.complete_job(tenant.id, _job(tenant, customer).id, notes="first")
        first_end = as_utc(job.actual_end)
        frozen_clock.advance(hours=1)
        with pytest.raises(AlreadyProcessedError):
            job_lifecycle.complete_job(tenant.id, job.id, notes="second")
        job = db.session.get(Job, job.id)
        assert as_utc(job.actual_end) == first_end
        assert job.completion_notes == "first"

    def test_cancelled_job_cannot_be_completed(self, tenant, customer):
        job = _job(tenant, customer)
        job_lifecycle.update_status(tenant.id, job.id, "cancelled")
        with pytest.raises(InvalidTransitionError):
            job_lifecycle.complete_job(tenant.id, job.id)

    def test_completion_fires_invoicing_trigger(self, tenant, customer, monkeypatch):
        seen = []
        monkeypatch.setattr(job_lifecycle.invoicing_trigger, "job_completed", lambda j: seen.append(j.id))
        job = job_lifecycle.complete_job(tenant.id, _job(tenant, customer).id)
        assert seen == [job.id]


# ── Scheduling & crew ────────────────────────────────────────────────────────


class TestScheduling:

    def test_overlap_logs_warning_but_saves(self, tenant, customer, worker, caplog):
        _job(tenant, customer, scheduled_start=START, scheduled_end=END, assigned_to=[worker.id])
        second = _job(tenant, customer)

        with caplog.at_level(logging.WARNING, logger="fieldops.services.job_lifecycle"):
            updated = job_lifecycle.update_schedule(tenant.id, second.id, {
                "scheduled_start": "2026-03-02T10:00:00Z",
                "scheduled_end": "2026-03-02T12:00:00Z",
                "assigned_to": [worker.id],
            })

        assert updated.assigned_to == [worker.id]
        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 1
        assert warnings[0].worker_id == worker.id
        assert warnings[0].job_id == second.id
        assert warnings[0].tenant_id == tenant.id
        assert "J-00001" in warnings[0].getMessage()

    def test_back_to_back_jobs_do_not_warn(self, tenant, customer, worker, caplog):
        _job(tenant, customer, scheduled_start=START, scheduled_end=END, assigned_to=[worker.id])
        with caplog.at_level(logging.WARNING, logger="fieldops.services.job_lifecycle"):
            second = _job(tenant, customer, assigned_to=[worker.id])
            job_lifecycle.update_schedule(tenant.id, second.id, {
                "scheduled_start": END,
                "scheduled_end": "2026-03-02T12:00:00+00:00",
            })
        assert not [r for r in caplog.records if r.levelno == logging.WARNING]

    def test_cancelled_jobs_do_not_count_as_bookings(self, tenant, customer, worker, caplog):
        first = _job(tenant, customer, scheduled_start=START, scheduled_end=END, assigned_to=[worker.id])
        job_lifecycle.update_status(tenant.id, first.id, "cancelled")
        second = _job(tenant, customer, scheduled_start=START, scheduled_end=END)
        with caplog.at_level(logging.WARNING, logger="fieldops.services.job_lifecycle"):
            job_lifecycle.assign_team(tenant.id, second.id, [worker.id])
        assert not [r for r in caplog.records if r.levelno == logging.WARNING]

    def test_assign_team_warns_on_double_booking(self, tenant, customer, worker, second_worker, caplog):
        _job(tenant, customer, scheduled_start=START, scheduled_end=END, assigned_to=[worker.id])
        second = _job(tenant, customer, scheduled_start=START, scheduled_end=END)
        with caplog.at_level(logging.WARNING, logger="fieldops.services.job_lifecycle"):
            job = job_lifecycle.assign_team(tenant.id, second.id, [worker.id, second_worker.id])
        assert job.assigned_to == [worker.id, second_worker.id]
        assert [r.worker_id for r in caplog.records if r.levelno == logging.WARNING] == [worker.id]

    def test_partial_schedule_update_keeps_other_bound(self, tenant, customer):
        job = _job(tenant, customer, scheduled_start=START, scheduled_end=END)
        job = job_lifecycle.update_schedule(tenant.id, job.id, {"scheduled_end": "2026-03-02T13:00:00Z"})
        assert as_utc(job.scheduled_start).isoformat() == START

    def test_partial_update_still_validates_window(self, tenant, customer):
        job = _job(tenant, customer, scheduled_start=START, scheduled_end=END)
        with pytest.raises(ValidationError):
            job_lifecycle.update_schedule(tenant.id, job.id, {"scheduled_start": "2026-03-02T12:00:00Z"})

    @pytest.mark.parametrize("terminal", ["completed", "cancelled"])
    def test_terminal_jobs_cannot_be_rescheduled(self, tenant, customer, worker, terminal):
        job = _force_status(_job(tenant, customer), terminal)
        with pytest.raises(InvalidTransitionError):
            job_lifecycle.update_schedule(tenant.id, job.id, {"scheduled_start": START, "scheduled_end": END})
        with pytest.raises(InvalidTransitionError):
            job_lifecycle.assign_team(tenant.id, job.id, [worker.id])


# ── Update / delete / list ───────────────────────────────────────────────────


class TestUpdateDeleteList:

    def test_update_descriptive_fields(self, tenant, customer):
        job = _job(tenant, customer)
        job = job_lifecycle.update_job(tenant.id, job.id, {
            "title": "Replace heater and valve", "priority": "urgent", "estimated_value": "450.00",
        })
        assert job.title == "Replace heater and valve"
        assert job.priority == "urgent"
        assert str(job.estimated_value) == "450.00"

    def test_completed_job_cannot_be_edited(self, tenant, customer):
        job = _force_status(_job(tenant, customer), "completed")
        with pytest.raises(InvalidTransitionError):
            job_lifecycle.update_job(tenant.id, job.id, {"title": "New"})

    def test_delete_is_soft(self, tenant, customer):
        job = _job(tenant, customer)
        job_lifecycle.delete_job(tenant.id, job.id)
        assert db.session.get(Job, job.id).deleted_at is not None
        with pytest.raises(NotFoundError):
            job_lifecycle.get_job(tenant.id, job.id)
        assert job_lifecycle.list_jobs(tenant.id) == ([], 0)

    def test_deleted_job_number_is_not_reused(self, tenant, customer):
        job_lifecycle.delete_job(tenant.id, _job(tenant, customer).id)
        assert _job(tenant, customer).job_number == "J-00002"

    def test_completed_job_cannot_be_deleted(self, tenant, customer):
        job = _force_status(_job(tenant, customer), "completed")
        with pytest.raises(InvalidTransitionError):
            job_lifecycle.delete_job(tenant.id, job.id)

    def test_job_with_invoice_cannot_be_deleted(self, tenant, customer):
        job = _job(tenant, customer)
        db.session.add(Invoice(tenant_id=tenant.id, client_id=customer.id, job_id=job.id,
                               invoice_number="INV-00001"))
        db.session.commit()
        with pytest.raises(ValidationError, match="invoices"):
            job_lifecycle.delete_job(tenant.id, job.id)

    def test_list_filters_and_paginates(self, tenant, customer, worker):
        _job(tenant, customer, assigned_to=[worker.id])
        second = _job(tenant, customer)
        _job(tenant, customer, assigned_to=[worker.id])
        job_lifecycle.update_status(tenant.id, second.id, "en_route")

        items, total = job_lifecycle.list_jobs(tenant.id, status="en_route")
        assert total == 1 and items[0].id == second.id

        items, total = job_lifecycle.list_jobs(tenant.id, assigned_to=worker.id, limit=1)
        assert total == 2 and len(items) == 1

    def test_list_rejects_unknown_status(self, tenant):
        with pytest.raises(ValidationError):
            job_lifecycle.list_jobs(tenant.id, status="bogus")


# ── Photos ───────────────────────────────────────────────────────────────────


class TestPhotos:

    def test_photos_get_sequential_sort_order(self, tenant, customer, worker):
        job = _job(tenant, customer)
        first = job_lifecycle.add_photo(tenant.id, job.id, worker.id, {"file_url": "s3://b/1.jpg",
                                                                        "photo_type": "before"})
        second = job_lifecycle.add_photo(tenant.id, job.id, worker.id, {"file_url": "s3://b/2.jpg"})
        assert (first.sort_order, second.sort_order) == (0, 1)
        assert second.photo_type == "other"
        assert [p["file_url"] for p in job.to_dict(include_photos=True)["photos"]] == [
            "s3://b/1.jpg", "s3://b/2.jpg",
        ]

    def test_photo_requires_file_url(self, tenant, customer):
        job = _job(tenant, customer)
        with pytest.raises(ValidationError):
            job_lifecycle.add_photo(tenant.id, job.id, None, {"caption": "no file"})

    def test_invalid_photo_type(self, tenant, customer):
        job = _job(tenant, customer)
        with pytest.raises(ValidationError):
            job_lifecycle.add_photo(tenant.id, job.id, None, {"file_url": "x", "photo_type": "selfie"})

    def test_delete_photo_is_tenant_scoped(self, tenant, other_tenant, customer):
        job = _job(tenant, customer)
        photo = job_lifecycle.add_photo(tenant.id, job.id, None, {"file_url": "s3://b/1.jpg"})
        with pytest.raises(NotFoundError):
            job_lifecycle.delete_photo(other_tenant.id, photo.id)
        job_lifecycle.delete_photo(tenant.id, photo.id)
        assert job.photos.count() == 0


def test_estimated_duration_survives_reschedule(tenant, customer):
    job = _job(tenant, customer, estimated_duration=90, scheduled_start=START, scheduled_end=END)
    later = as_utc(job.scheduled_start) + timedelta(days=1)
    job = job_lifecycle.update_schedule(tenant.id, job.id, {
        "scheduled_start": later, "scheduled_end": later + timedelta(hours=2),
    })
    assert job.estimated_duration == 90
