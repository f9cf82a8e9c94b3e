"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready  — simple 200 for load balancers
    GET /api/v1/health/live   — database round-trip and registered jobs
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from fieldops.models import db
from fieldops.services.scheduler_service import get_registered_jobs

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Simple readiness probe — always 200 if app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Liveness check with database status."""
    checks = {}
    overall = True

    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except Exception as exc:
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check — database failed: %s", exc)

    checks["scheduler"] = {"jobs": sorted(get_registered_jobs())}
    checks["app"] = {
        "name": "FieldOps Workflow Core",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }
    return jsonify({"status": "ok" if overall else "degraded", "checks": checks}), 200 if overall else 503
