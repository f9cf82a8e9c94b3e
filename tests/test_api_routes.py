"""
HTTP API tests — blueprints, error mapping and the full quote → job → time flow.

Uses the shared ``client`` and ``headers`` fixtures (tenant = Acme, user = manager).
"""

import pytest

from fieldops.models import db
from fieldops.models.job import Job


def _worker_headers(tenant, worker):
    return {"X-Tenant-ID": str(tenant.id), "X-User-ID": str(worker.id)}


def _post_quote(client, headers, customer, **overrides):
    body = {
        "client_id": customer.id,
        "title": "Boiler service",
        "tax_rate": "0.0825",
        "line_items": [
            {"name": "Labor", "quantity": 4, "unit_price": "50.00", "is_taxable": True},
            {"name": "Disposal", "quantity": 1, "unit_price": "25.00", "is_taxable": False},
        ],
    }
    body.update(overrides)
    return client.post("/api/v1/quotes", json=body, headers=headers)


# ── End-to-end flow ──────────────────────────────────────────────────────────


def test_quote_to_job_to_timesheet(client, headers, tenant, customer, worker, frozen_clock):
    res = _post_quote(client, headers, customer)
    assert res.status_code == 201
    quote = res.get_json()
    assert quote["quote_number"] == "Q-00001"
    assert quote["total"] == "241.50"
    assert len(quote["line_items"]) == 2

    assert client.post(f"/api/v1/quotes/{quote['id']}/send", headers=headers).status_code == 200
    res = client.post(f"/api/v1/quotes/{quote['id']}/approve", json={"signature": "data:image/png;base64,AA"},
                      headers={**headers, "X-Forwarded-For": "198.51.100.4"})
    assert res.status_code == 200
    assert res.get_json()["status"] == "approved"

    res = client.post(f"/api/v1/quotes/{quote['id']}/convert", headers=headers)
    assert res.status_code == 201
    job = res.get_json()["job"]
    assert job["job_number"] == "J-00001"
    assert job["quote_id"] == quote["id"]
    assert job["estimated_value"] == "241.50"

    res = client.put(f"/api/v1/jobs/{job['id']}/schedule", json={
        "scheduled_start": "2026-03-02T09:00:00+00:00",
        "scheduled_end": "2026-03-02T12:00:00+00:00",
        "assigned_to": [worker.id],
    }, headers=headers)
    assert res.status_code == 200
    assert res.get_json()["assigned_to"] == [worker.id]

    wh = _worker_headers(tenant, worker)
    res = client.post("/api/v1/time-entries/clock-in", json={"job_id": job["id"]}, headers=wh)
    assert res.status_code == 201
    entry_id = res.get_json()["id"]
    assert client.get("/api/v1/time-entries/active", headers=wh).get_json()["entry"]["id"] == entry_id

    frozen_clock.advance(hours=2, minutes=30)
    res = client.post(f"/api/v1/time-entries/{entry_id}/clock-out", json={"notes": "done"}, headers=wh)
    assert res.status_code == 200
    assert res.get_json()["duration_minutes"] == 150

    res = client.post(f"/api/v1/jobs/{job['id']}/complete", json={"signature": "sig"}, headers=headers)
    assert res.status_code == 200
    assert res.get_json()["status"] == "completed"

    res = client.post(f"/api/v1/time-entries/{entry_id}/approve", headers=headers)
    assert res.status_code == 200
    assert res.get_json()["status"] == "approved"

    res = client.get("/api/v1/time-entries/timesheet?start_date=2026-03-02&end_date=2026-03-08&group_by=week",
                     headers=headers)
    assert res.status_code == 200
    assert res.get_json()["summary"]["total_minutes"] == 150


# ── Error mapping ────────────────────────────────────────────────────────────


class TestErrorMapping:

    def test_missing_record_is_404(self, client, headers):
        res = client.get("/api/v1/jobs/4242", headers=headers)
        assert res.status_code == 404
        assert "not found" in res.get_json()["error"]

    def test_validation_is_422_with_details(self, client, headers, customer):
        res = client.post("/api/v1/jobs", json={
            "client_id": customer.id,
            "title": "Backwards",
            "scheduled_start": "2026-03-02T12:00:00+00:00",
            "scheduled_end": "2026-03-02T09:00:00+00:00",
        }, headers=headers)
        assert res.status_code == 422
        assert "details" in res.get_json()

    def test_invalid_transition_is_409(self, client, headers, customer):
        quote = _post_quote(client, headers, customer).get_json()
        res = client.post(f"/api/v1/quotes/{quote['id']}/approve", headers=headers)
        assert res.status_code == 409
        body = res.get_json()
        assert body["code"] == "invalid_transition"
        assert body["current_status"] == "draft"

    def test_already_processed_is_409(self, client, headers, customer):
        quote = _post_quote(client, headers, customer).get_json()
        client.post(f"/api/v1/quotes/{quote['id']}/send", headers=headers)
        client.post(f"/api/v1/quotes/{quote['id']}/approve", headers=headers)
        assert client.post(f"/api/v1/quotes/{quote['id']}/convert", headers=headers).status_code == 201
        res = client.post(f"/api/v1/quotes/{quote['id']}/convert", headers=headers)
        assert res.status_code == 409
        assert res.get_json()["code"] == "already_processed"
        assert Job.query.count() == 1

    def test_unknown_route_is_json_404(self, client, headers):
        res = client.get("/api/v1/nothing-here", headers=headers)
        assert res.status_code == 404
        assert res.get_json()["path"] == "/api/v1/nothing-here"

    def test_wrong_method_is_405(self, client, headers):
        assert client.patch("/api/v1/jobs", headers=headers).status_code == 405

    def test_taken_job_number_is_409(self, client, headers, tenant, customer):
        db.session.add(Job(tenant_id=tenant.id, client_id=customer.id, job_number="J-00001", title="Imported"))
        db.session.commit()
        res = client.post("/api/v1/jobs", json={"client_id": customer.id, "title": "New"}, headers=headers)
        assert res.status_code == 409
        assert res.get_json()["field"] == "job_number"

    def test_excess_precision_is_422(self, client, headers, customer):
        res = _post_quote(client, headers, customer, tax_rate="0.08255")
        assert res.status_code == 422
        assert "tax_rate" in res.get_json()["details"]


# ── Jobs ─────────────────────────────────────────────────────────────────────


class TestJobsApi:

    def test_list_paginates(self, client, headers, customer):
        for i in range(3):
            client.post("/api/v1/jobs", json={"client_id": customer.id, "title": f"Job {i}"}, headers=headers)
        body = client.get("/api/v1/jobs?limit=2&offset=0", headers=headers).get_json()
        assert body["total"] == 3
        assert len(body["items"]) == 2
        assert body["limit"] == 2

    def test_team_requires_assigned_to(self, client, headers, customer):
        job = client.post("/api/v1/jobs", json={"client_id": customer.id, "title": "X"}, headers=headers).get_json()
        assert client.put(f"/api/v1/jobs/{job['id']}/team", json={}, headers=headers).status_code == 400

    def test_status_requires_status(self, client, headers, customer):
        job = client.post("/api/v1/jobs", json={"client_id": customer.id, "title": "X"}, headers=headers).get_json()
        assert client.post(f"/api/v1/jobs/{job['id']}/status", json={}, headers=headers).status_code == 400

    def test_status_change(self, client, headers, customer):
        job = client.post("/api/v1/jobs", json={"client_id": customer.id, "title": "X"}, headers=headers).get_json()
        res = client.post(f"/api/v1/jobs/{job['id']}/status", json={"status": "en_route"}, headers=headers)
        assert res.status_code == 200
        assert res.get_json()["status"] == "en_route"

    def test_photos(self, client, headers, customer):
        job = client.post("/api/v1/jobs", json={"client_id": customer.id, "title": "X"}, headers=headers).get_json()
        res = client.post(f"/api/v1/jobs/{job['id']}/photos",
                          json={"file_url": "https://cdn.example.com/a.jpg", "photo_type": "before"},
                          headers=headers)
        assert res.status_code == 201
        photo_id = res.get_json()["id"]
        detail = client.get(f"/api/v1/jobs/{job['id']}", headers=headers).get_json()
        assert [p["id"] for p in detail["photos"]] == [photo_id]
        assert client.delete(f"/api/v1/jobs/photos/{photo_id}", headers=headers).status_code == 204

    def test_delete(self, client, headers, customer):
        job = client.post("/api/v1/jobs", json={"client_id": customer.id, "title": "X"}, headers=headers).get_json()
        assert client.delete(f"/api/v1/jobs/{job['id']}", headers=headers).status_code == 204
        assert client.get(f"/api/v1/jobs/{job['id']}", headers=headers).status_code == 404


# ── Quotes ───────────────────────────────────────────────────────────────────


class TestQuotesApi:

    def test_decline_with_reason(self, client, headers, customer):
        quote = _post_quote(client, headers, customer).get_json()
        client.post(f"/api/v1/quotes/{quote['id']}/send", headers=headers)
        res = client.post(f"/api/v1/quotes/{quote['id']}/decline", json={"reason": "Budget"}, headers=headers)
        assert res.status_code == 200
        assert res.get_json()["decline_reason"] == "Budget"

    def test_update_and_filter(self, client, headers, customer):
        quote = _post_quote(client, headers, customer).get_json()
        res = client.put(f"/api/v1/quotes/{quote['id']}", json={"discount_amount": "41.50"}, headers=headers)
        assert res.get_json()["total"] == "200.00"
        assert client.get("/api/v1/quotes?status=draft", headers=headers).get_json()["total"] == 1
        assert client.get("/api/v1/quotes?status=sent", headers=headers).get_json()["total"] == 0

    def test_delete_draft(self, client, headers, customer):
        quote = _post_quote(client, headers, customer).get_json()
        assert client.delete(f"/api/v1/quotes/{quote['id']}", headers=headers).status_code == 204


# ── Time entries ─────────────────────────────────────────────────────────────


class TestTimeEntriesApi:

    @pytest.mark.parametrize("path", ["/api/v1/time-entries/clock-in", "/api/v1/time-entries/1/clock-out"])
    def test_acting_user_required(self, client, tenant, path):
        res = client.post(path, headers={"X-Tenant-ID": str(tenant.id)})
        assert res.status_code == 400

    def test_double_clock_in_is_409(self, client, tenant, worker):
        wh = _worker_headers(tenant, worker)
        assert client.post("/api/v1/time-entries/clock-in", headers=wh).status_code == 201
        assert client.post("/api/v1/time-entries/clock-in", headers=wh).status_code == 409

    def test_clock_out_someone_elses_entry_is_404(self, client, tenant, worker, second_worker):
        entry = client.post("/api/v1/time-entries/clock-in", headers=_worker_headers(tenant, worker)).get_json()
        res = client.post(f"/api/v1/time-entries/{entry['id']}/clock-out",
                          headers=_worker_headers(tenant, second_worker))
        assert res.status_code == 404

    def test_active_is_null_when_clocked_out(self, client, tenant, worker):
        res = client.get("/api/v1/time-entries/active", headers=_worker_headers(tenant, worker))
        assert res.get_json() == {"entry": None}

    def test_reject_with_reason(self, client, headers, tenant, worker, frozen_clock):
        wh = _worker_headers(tenant, worker)
        entry = client.post("/api/v1/time-entries/clock-in", headers=wh).get_json()
        frozen_clock.advance(minutes=45)
        client.post(f"/api/v1/time-entries/{entry['id']}/clock-out", headers=wh)
        res = client.post(f"/api/v1/time-entries/{entry['id']}/reject", json={"reason": "Duplicate"},
                          headers=headers)
        assert res.status_code == 200
        assert res.get_json()["notes"] == "Rejection reason: Duplicate"

    def test_invalid_timesheet_grouping_is_422(self, client, headers):
        res = client.get("/api/v1/time-entries/timesheet?start_date=2026-03-01&end_date=2026-03-02&group_by=year",
                         headers=headers)
        assert res.status_code == 422


# ── Schedule & health ────────────────────────────────────────────────────────


class TestScheduleApi:

    def _booked(self, client, headers, customer, worker):
        return client.post("/api/v1/jobs", json={
            "client_id": customer.id,
            "title": "Booked",
            "scheduled_start": "2026-03-02T09:00:00+00:00",
            "scheduled_end": "2026-03-02T11:00:00+00:00",
            "assigned_to": [worker.id],
        }, headers=headers).get_json()

    def test_conflicts_lookup(self, client, headers, customer, worker):
        job = self._booked(client, headers, customer, worker)
        res = client.get(
            f"/api/v1/schedule/conflicts?worker_id={worker.id}"
            "&start=2026-03-02T10:00:00%2B00:00&end=2026-03-02T12:00:00%2B00:00",
            headers=headers,
        )
        assert res.status_code == 200
        assert [c["id"] for c in res.get_json()["conflicts"]] == [job["id"]]

    def test_conflicts_requires_worker(self, client, headers):
        assert client.get("/api/v1/schedule/conflicts", headers=headers).status_code == 400

    def test_availability(self, client, headers, customer, worker, second_worker):
        self._booked(client, headers, customer, worker)
        res = client.post("/api/v1/schedule/availability", json={
            "worker_ids": [worker.id, second_worker.id],
            "start": "2026-03-02T10:00:00+00:00",
            "end": "2026-03-02T10:30:00+00:00",
        }, headers=headers)
        verdicts = {a["worker_id"]: a["available"] for a in res.get_json()["availability"]}
        assert verdicts == {worker.id: False, second_worker.id: True}


class TestHealth:

    def test_ready(self, client):
        assert client.get("/api/v1/health/ready").get_json() == {"status": "ok"}

    def test_live_reports_database_and_jobs(self, client):
        res = client.get("/api/v1/health/live")
        assert res.status_code == 200
        checks = res.get_json()["checks"]
        assert checks["database"]["status"] == "ok"
        assert "quote_expiry_sweep" in checks["scheduler"]["jobs"]


def test_cors_headers_present(client, headers):
    res = client.get("/api/v1/jobs", headers={**headers, "Origin": "http://localhost:3000"})
    assert res.status_code == 200
    assert "Access-Control-Allow-Origin" in res.headers
