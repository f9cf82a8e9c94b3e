"""
FieldOps Workflow Core
Scheduled Jobs.

Concrete job implementations run by an external scheduler.

Jobs:
    - quote_expiry_sweep: moves sent quotes past their expiry date to expired
"""

from __future__ import annotations

import logging
from typing import Any

from fieldops.services import quote_lifecycle
from fieldops.services.scheduler_service import register_job

logger = logging.getLogger(__name__)


@register_job("quote_expiry_sweep")
def expire_overdue_quotes(app) -> dict[str, Any]:
    """Expire sent quotes whose expiry date has passed."""
    result = quote_lifecycle.expire_quotes()
    if result["expired"]:
        logger.info("Quote expiry sweep expired %d quote(s)", result["expired"])
    return result
