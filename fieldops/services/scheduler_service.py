"""
FieldOps Workflow Core
Scheduler Service.

Registry and runner for periodic jobs. Nothing runs in the background: an
external scheduler (cron, Kubernetes CronJob) calls ``flask run-job <name>``
or ``SchedulerService.run_job(name)``, which executes the job inside an app
context and reports the outcome.

Architecture:
    - register_job: decorator that adds a job function to the registry
    - SchedulerService.run_job: executes one job, catching and logging failures
    - SchedulerService.list_jobs: registry contents + last outcome per job
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from flask import Flask

from fieldops.core import clock

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Job Registry
# ═══════════════════════════════════════════════════════════════════════════

_job_registry: dict[str, Callable] = {}


def register_job(name: str):
    """Decorator to register a job function.

    Usage:
        @register_job("quote_expiry_sweep")
        def expire_overdue_quotes(app):
            ...
    """
    def decorator(fn: Callable) -> Callable:
        _job_registry[name] = fn
        return fn
    return decorator


def get_registered_jobs() -> dict[str, Callable]:
    """Return all registered job functions."""
    return dict(_job_registry)


class SchedulerService:
    """
    Lightweight job runner.

    Jobs are executed within Flask app context.
    """

    _app: Flask | None = None
    _last_runs: dict[str, dict] = {}

    @classmethod
    def init_app(cls, app: Flask) -> None:
        """Bind the runner to the Flask app."""
        cls._app = app
        cls._last_runs = {}
        app.extensions["scheduler"] = cls
        logger.debug("SchedulerService initialized with %d registered jobs", len(_job_registry))

    @classmethod
    def run_job(cls, job_name: str) -> dict:
        """
        Execute a single job by name.

        Returns:
            Dict with status, duration_ms, result or error.
        """
        fn = _job_registry.get(job_name)
        if not fn:
            return {"job_name": job_name, "status": "error", "error": f"Unknown job: {job_name}"}

        if not cls._app:
            return {"job_name": job_name, "status": "error", "error": "Scheduler not initialized"}

        start = time.monotonic()
        result = None
        error = None
        status = "success"

        try:
            with cls._app.app_context():
                result = fn(cls._app)
        except Exception as exc:
            status = "failed"
            error = str(exc)
            logger.exception("Job %s failed: %s", job_name, exc)

        duration_ms = int((time.monotonic() - start) * 1000)
        outcome = {
            "job_name": job_name,
            "status": status,
            "duration_ms": duration_ms,
            "result": result,
            "error": error,
            "finished_at": clock.utcnow().isoformat(),
        }
        cls._last_runs[job_name] = outcome
        logger.info("Job %s finished: %s in %dms", job_name, status, duration_ms)
        return outcome

    @classmethod
    def list_jobs(cls) -> list[dict]:
        """List all registered jobs with their last outcome in this process."""
        return [
            {
                "job_name": name,
                "description": (fn.__doc__ or "").strip().splitlines()[0] if fn.__doc__ else "",
                "schedule": _get_default_schedule(name),
                "last_run": cls._last_runs.get(name),
            }
            for name, fn in _job_registry.items()
        ]


def _get_default_schedule(job_name: str) -> dict:
    """Return the recommended cron schedule for known jobs."""
    defaults = {
        "quote_expiry_sweep": {"hour": "0", "minute": "15", "description": "Daily at 00:15 UTC"},
    }
    return defaults.get(job_name, {"hour": "0", "minute": "0",
                                   "description": "Daily at midnight"})
