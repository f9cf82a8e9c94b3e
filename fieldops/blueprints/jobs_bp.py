"""Jobs blueprint.

Endpoint groups:
  Jobs            GET/POST        /api/v1/jobs
                  GET/PUT/DELETE  /api/v1/jobs/<id>
  Scheduling      PUT             /api/v1/jobs/<id>/schedule
                  PUT             /api/v1/jobs/<id>/team
  Lifecycle       POST            /api/v1/jobs/<id>/status
                  POST            /api/v1/jobs/<id>/complete
  Photos          POST            /api/v1/jobs/<id>/photos
                  DELETE          /api/v1/jobs/photos/<photo_id>

Tenant comes from the tenant context middleware. Service layer owns all
business logic and commits.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

import fieldops.services.job_lifecycle as jobs
from fieldops.blueprints import json_body, page_args, page_response, tenant_id, user_id

logger = logging.getLogger(__name__)

jobs_bp = Blueprint("jobs", __name__, url_prefix="/api/v1/jobs")


@jobs_bp.route("", methods=["GET"])
def list_jobs():
    """Query params: status, client_id, assigned_to, limit, offset."""
    limit, offset = page_args()
    items, total = jobs.list_jobs(
        tenant_id(),
        status=request.args.get("status"),
        client_id=request.args.get("client_id", type=int),
        assigned_to=request.args.get("assigned_to", type=int),
        limit=limit,
        offset=offset,
    )
    return page_response(items, total, limit, offset)


@jobs_bp.route("", methods=["POST"])
def create_job():
    job = jobs.create_job(tenant_id(), user_id(), json_body())
    return jsonify(job.to_dict()), 201


@jobs_bp.route("/<int:job_id>", methods=["GET"])
def get_job(job_id):
    job = jobs.get_job(tenant_id(), job_id)
    return jsonify(job.to_dict(include_photos=True)), 200


@jobs_bp.route("/<int:job_id>", methods=["PUT"])
def update_job(job_id):
    job = jobs.update_job(tenant_id(), job_id, json_body())
    return jsonify(job.to_dict()), 200


@jobs_bp.route("/<int:job_id>", methods=["DELETE"])
def delete_job(job_id):
    jobs.delete_job(tenant_id(), job_id)
    return "", 204


@jobs_bp.route("/<int:job_id>/schedule", methods=["PUT"])
def update_schedule(job_id):
    """Body: {scheduled_start?, scheduled_end?, assigned_to?, estimated_duration?}"""
    job = jobs.update_schedule(tenant_id(), job_id, json_body())
    return jsonify(job.to_dict()), 200


@jobs_bp.route("/<int:job_id>/team", methods=["PUT"])
def assign_team(job_id):
    """Body: {assigned_to: [user_id, ...]}"""
    data = json_body()
    if "assigned_to" not in data:
        return jsonify({"error": "assigned_to is required"}), 400
    job = jobs.assign_team(tenant_id(), job_id, data["assigned_to"])
    return jsonify(job.to_dict()), 200


@jobs_bp.route("/<int:job_id>/status", methods=["POST"])
def update_status(job_id):
    """Body: {status}. ``completed`` must go through /complete."""
    status = json_body().get("status")
    if not status:
        return jsonify({"error": "status is required"}), 400
    job = jobs.update_status(tenant_id(), job_id, status)
    return jsonify(job.to_dict()), 200


@jobs_bp.route("/<int:job_id>/complete", methods=["POST"])
def complete_job(job_id):
    """Body: {signature?, notes?}"""
    data = json_body()
    job = jobs.complete_job(
        tenant_id(), job_id,
        signature=data.get("signature"),
        notes=data.get("notes"),
    )
    return jsonify(job.to_dict()), 200


@jobs_bp.route("/<int:job_id>/photos", methods=["POST"])
def add_photo(job_id):
    """Body: {file_url, file_name?, file_size?, mime_type?, caption?, photo_type?}"""
    photo = jobs.add_photo(tenant_id(), job_id, user_id(), json_body())
    return jsonify(photo.to_dict()), 201


@jobs_bp.route("/photos/<int:photo_id>", methods=["DELETE"])
def delete_photo(photo_id):
    jobs.delete_photo(tenant_id(), photo_id)
    return "", 204
