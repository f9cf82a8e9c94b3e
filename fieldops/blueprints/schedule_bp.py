"""Schedule blueprint — dispatch board availability and conflict lookups.

    GET  /api/v1/schedule/conflicts?worker_id=&start=&end=&exclude_job_id=
    POST /api/v1/schedule/availability   {worker_ids, start, end}
"""

from flask import Blueprint, jsonify, request

import fieldops.services.schedule_service as schedule
from fieldops.blueprints import json_body, tenant_id

schedule_bp = Blueprint("schedule", __name__, url_prefix="/api/v1/schedule")


@schedule_bp.route("/conflicts", methods=["GET"])
def conflicts():
    worker_id = request.args.get("worker_id", type=int)
    if worker_id is None:
        return jsonify({"error": "worker_id is required"}), 400
    found = schedule.find_conflicts(
        tenant_id(), worker_id,
        request.args.get("start"), request.args.get("end"),
        exclude_job_id=request.args.get("exclude_job_id", type=int),
    )
    return jsonify({"worker_id": worker_id, "conflicts": found}), 200


@schedule_bp.route("/availability", methods=["POST"])
def availability():
    data = json_body()
    result = schedule.check_availability(
        tenant_id(), data.get("worker_ids"), data.get("start"), data.get("end"),
    )
    return jsonify(result), 200
