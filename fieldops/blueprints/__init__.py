"""
FieldOps Workflow Core
Blueprint registry and shared request helpers.
"""

import logging

from flask import g, jsonify, request

from fieldops.core.exceptions import (
    AlreadyProcessedError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def page_args(default_limit=200, max_limit=1000):
    """Read limit/offset query params.

    Query params:
        limit  — max items (default 200, capped at max_limit)
        offset — starting position (default 0)

    Returns:
        (limit, offset)
    """
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return limit, offset


def page_response(items, total, limit, offset):
    return jsonify({
        "items": [i.to_dict() for i in items],
        "total": total,
        "limit": limit,
        "offset": offset,
    })


def json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def tenant_id() -> int:
    """Tenant resolved by the tenant context middleware."""
    return g.tenant_id


def user_id() -> int | None:
    return g.get("user_id")


def register_error_handlers(app):
    """Map the service exception taxonomy to JSON responses, app-wide."""

    @app.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return jsonify({"error": str(error)}), 404

    @app.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return jsonify({"error": str(error), "details": error.details}), 422

    @app.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        return jsonify({"error": str(error), "field": error.field}), 409

    @app.errorhandler(InvalidTransitionError)
    def _handle_invalid_transition(error: InvalidTransitionError):
        return jsonify({
            "error": str(error),
            "code": "invalid_transition",
            "current_status": error.current,
            "requested": error.target,
        }), 409

    @app.errorhandler(AlreadyProcessedError)
    def _handle_already_processed(error: AlreadyProcessedError):
        return jsonify({"error": str(error), "code": "already_processed"}), 409

    @app.errorhandler(404)
    def _not_found(e):
        return jsonify({"error": "Not found", "path": request.path}), 404

    @app.errorhandler(405)
    def _method_not_allowed(e):
        return jsonify({"error": "Method not allowed"}), 405

    @app.errorhandler(500)
    def _server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return jsonify({"error": "Internal server error"}), 500
