"""
Dispatch board queries: conflict lookup and crew availability.
"""

import pytest

from fieldops.core.exceptions import ValidationError
from fieldops.services import job_lifecycle, schedule_service

NINE = "2026-03-02T09:00:00+00:00"
ELEVEN = "2026-03-02T11:00:00+00:00"


@pytest.fixture
def booked_job(tenant, customer, worker):
    return job_lifecycle.create_job(tenant.id, None, {
        "client_id": customer.id,
        "title": "Install thermostat",
        "scheduled_start": NINE,
        "scheduled_end": ELEVEN,
        "assigned_to": [worker.id],
    })


class TestFindConflicts:

    def test_overlapping_job_reported(self, tenant, worker, booked_job):
        found = schedule_service.find_conflicts(tenant.id, worker.id, "2026-03-02T10:00:00+00:00",
                                                "2026-03-02T12:00:00+00:00")
        assert [c["id"] for c in found] == [booked_job.id]
        assert found[0]["label"] == booked_job.job_number
        assert found[0]["worker_ids"] == [worker.id]

    def test_back_to_back_is_free(self, tenant, worker, booked_job):
        assert schedule_service.find_conflicts(tenant.id, worker.id, ELEVEN, "2026-03-02T12:00:00+00:00") == []

    def test_excluding_the_job_itself(self, tenant, worker, booked_job):
        assert schedule_service.find_conflicts(tenant.id, worker.id, NINE, ELEVEN,
                                               exclude_job_id=booked_job.id) == []

    def test_cancelled_jobs_do_not_block(self, tenant, worker, booked_job):
        job_lifecycle.update_status(tenant.id, booked_job.id, "cancelled")
        assert schedule_service.find_conflicts(tenant.id, worker.id, NINE, ELEVEN) == []

    def test_other_workers_are_not_affected(self, tenant, second_worker, booked_job):
        assert schedule_service.find_conflicts(tenant.id, second_worker.id, NINE, ELEVEN) == []

    @pytest.mark.parametrize("start,end", [(ELEVEN, NINE), (NINE, NINE), (None, ELEVEN), ("noon", ELEVEN)])
    def test_bad_window_rejected(self, tenant, worker, start, end):
        with pytest.raises(ValidationError):
            schedule_service.find_conflicts(tenant.id, worker.id, start, end)


class TestAvailability:

    def test_verdict_per_worker(self, tenant, worker, second_worker, booked_job):
        result = schedule_service.check_availability(tenant.id, [worker.id, second_worker.id], NINE, ELEVEN)
        by_worker = {a["worker_id"]: a for a in result["availability"]}
        assert by_worker[worker.id]["available"] is False
        assert by_worker[worker.id]["conflicts"][0]["id"] == booked_job.id
        assert by_worker[second_worker.id]["available"] is True
        assert by_worker[second_worker.id]["full_name"] == "Ben Field"

    def test_duplicates_collapsed(self, tenant, worker):
        result = schedule_service.check_availability(tenant.id, [worker.id, worker.id], NINE, ELEVEN)
        assert len(result["availability"]) == 1

    def test_worker_ids_required(self, tenant):
        with pytest.raises(ValidationError, match="worker_ids"):
            schedule_service.check_availability(tenant.id, [], NINE, ELEVEN)

    def test_unknown_worker_rejected(self, tenant):
        with pytest.raises(ValidationError):
            schedule_service.check_availability(tenant.id, [999], NINE, ELEVEN)
