"""
Tenant Context Middleware — resolves the caller's tenant on API requests.

Authentication is performed upstream (API gateway / auth service), which
forwards the verified identity as headers:

    X-Tenant-ID   tenant (account) id, required on /api/v1/ routes
    X-User-ID     acting user id, optional

This middleware:
  1. Verifies the tenant exists and is active
  2. Sets g.tenant_id / g.tenant / g.user_id for route handlers
  3. Rejects the request with 401 (missing) or 403 (unknown/inactive)

Chain order:
  gateway auth  →  tenant_context.py  →  route handler  →  service (tenant_id explicit)
"""

import logging

from flask import g, jsonify, request

from fieldops.models import db
from fieldops.models.tenant import Tenant

logger = logging.getLogger(__name__)

TENANT_SKIP_PREFIXES = (
    "/api/v1/health",
)


def _int_header(name: str) -> int | None:
    raw = request.headers.get(name)
    if raw and raw.strip().isdigit():
        return int(raw.strip())
    return None


def init_tenant_context(app):
    """Register tenant context middleware as a before_request hook."""

    @app.before_request
    def _tenant_context():
        g.tenant = None
        g.tenant_id = None
        g.user_id = None

        if not request.path.startswith("/api/v1/"):
            return None
        for prefix in TENANT_SKIP_PREFIXES:
            if request.path.startswith(prefix):
                return None

        tenant_id = _int_header("X-Tenant-ID")
        if tenant_id is None:
            return jsonify({"error": "X-Tenant-ID header is required"}), 401

        tenant = db.session.get(Tenant, tenant_id)
        if tenant is None:
            logger.warning("Request for unknown tenant %s", tenant_id, extra={"path": request.path})
            return jsonify({"error": "Tenant not found"}), 403
        if not tenant.is_active:
            logger.warning("Request for deactivated tenant %s", tenant_id, extra={"path": request.path})
            return jsonify({"error": "Tenant account is deactivated"}), 403

        g.tenant = tenant
        g.tenant_id = tenant.id
        g.user_id = _int_header("X-User-ID")
        return None

    logger.debug("Tenant context middleware installed")
