"""Time entries blueprint.

Endpoint groups:
  Clock           POST    /api/v1/time-entries/clock-in
                  POST    /api/v1/time-entries/<id>/clock-out
                  GET     /api/v1/time-entries/active
  Entries         GET     /api/v1/time-entries
                  GET/PUT/DELETE  /api/v1/time-entries/<id>
  Review          POST    /api/v1/time-entries/<id>/approve
                  POST    /api/v1/time-entries/<id>/reject
  Timesheets      GET     /api/v1/time-entries/timesheet

The acting user (X-User-ID) is the worker for clock operations and the
reviewer for approve / reject.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

import fieldops.services.time_entry_service as entries
from fieldops.blueprints import json_body, page_args, page_response, tenant_id, user_id

logger = logging.getLogger(__name__)

time_entries_bp = Blueprint("time_entries", __name__, url_prefix="/api/v1/time-entries")


def _acting_user():
    uid = user_id()
    if uid is None:
        return None, (jsonify({"error": "X-User-ID header is required"}), 400)
    return uid, None


@time_entries_bp.route("/clock-in", methods=["POST"])
def clock_in():
    """Body: {job_id?, entry_type?, is_billable?, latitude?, longitude?, notes?}"""
    uid, err = _acting_user()
    if err:
        return err
    entry = entries.clock_in(tenant_id(), uid, json_body())
    return jsonify(entry.to_dict()), 201


@time_entries_bp.route("/<int:entry_id>/clock-out", methods=["POST"])
def clock_out(entry_id):
    """Body: {latitude?, longitude?, notes?}"""
    uid, err = _acting_user()
    if err:
        return err
    entry = entries.clock_out(tenant_id(), entry_id, json_body(), worker_id=uid)
    return jsonify(entry.to_dict()), 200


@time_entries_bp.route("/active", methods=["GET"])
def active_entry():
    uid, err = _acting_user()
    if err:
        return err
    entry = entries.get_active_entry(tenant_id(), uid)
    return jsonify({"entry": entry.to_dict() if entry else None}), 200


@time_entries_bp.route("", methods=["GET"])
def list_entries():
    """Query params: worker_id, job_id, status, start, end, limit, offset."""
    limit, offset = page_args()
    items, total = entries.list_entries(
        tenant_id(),
        worker_id=request.args.get("worker_id", type=int),
        job_id=request.args.get("job_id", type=int),
        status=request.args.get("status"),
        start=request.args.get("start"),
        end=request.args.get("end"),
        limit=limit,
        offset=offset,
    )
    return page_response(items, total, limit, offset)


@time_entries_bp.route("/timesheet", methods=["GET"])
def timesheet():
    """Query params: start_date, end_date (required), worker_id, group_by=day|week."""
    result = entries.get_timesheet(
        tenant_id(),
        request.args.get("start_date"),
        request.args.get("end_date"),
        worker_id=request.args.get("worker_id", type=int),
        group_by=request.args.get("group_by", "day"),
    )
    return jsonify(result), 200


@time_entries_bp.route("/<int:entry_id>", methods=["GET"])
def get_entry(entry_id):
    return jsonify(entries.get_entry(tenant_id(), entry_id).to_dict()), 200


@time_entries_bp.route("/<int:entry_id>", methods=["PUT"])
def update_entry(entry_id):
    entry = entries.update_entry(tenant_id(), entry_id, json_body())
    return jsonify(entry.to_dict()), 200


@time_entries_bp.route("/<int:entry_id>", methods=["DELETE"])
def delete_entry(entry_id):
    entries.delete_entry(tenant_id(), entry_id)
    return "", 204


@time_entries_bp.route("/<int:entry_id>/approve", methods=["POST"])
def approve_entry(entry_id):
    uid, err = _acting_user()
    if err:
        return err
    entry = entries.approve_entry(tenant_id(), entry_id, uid)
    return jsonify(entry.to_dict()), 200


@time_entries_bp.route("/<int:entry_id>/reject", methods=["POST"])
def reject_entry(entry_id):
    """Body: {reason?}"""
    uid, err = _acting_user()
    if err:
        return err
    entry = entries.reject_entry(tenant_id(), entry_id, uid, json_body().get("reason"))
    return jsonify(entry.to_dict()), 200
