"""
Invoicing trigger — fire-and-forget hooks run after a job is completed.

Handlers are registered by name, the same way scheduled jobs are:

    @register_handler("log_invoice_request")
    def log_invoice_request(job): ...

``job_completed`` runs every handler after the completion has been
committed. A failing handler is logged and rolled back; it never undoes the
completion and never reaches the caller.

``create_draft_invoice`` is opt-in (``AUTO_DRAFT_INVOICES`` config flag).
"""

from __future__ import annotations

import logging
from typing import Callable

from flask import current_app
from sqlalchemy import func, select

from fieldops.models import db
from fieldops.models.invoice import Invoice
from fieldops.models.job import Job
from fieldops.services import sequence_service

logger = logging.getLogger(__name__)

_handlers: dict[str, Callable[[Job], None]] = {}


def register_handler(name: str):
    """Decorator to register a completion handler under *name*."""
    def decorator(fn: Callable[[Job], None]) -> Callable[[Job], None]:
        _handlers[name] = fn
        return fn
    return decorator


def get_registered_handlers() -> dict[str, Callable[[Job], None]]:
    return dict(_handlers)


def job_completed(job: Job) -> list[str]:
    """Run every handler for *job*; return the names that failed."""
    failed = []
    for name, handler in list(_handlers.items()):
        try:
            handler(job)
        except Exception:
            db.session.rollback()
            failed.append(name)
            logger.warning(
                "Invoicing handler %s failed for job %s",
                name, job.job_number, exc_info=True,
                extra={"tenant_id": job.tenant_id, "job_id": job.id},
            )
    return failed


@register_handler("log_invoice_request")
def log_invoice_request(job: Job) -> None:
    logger.info(
        "Invoice requested for completed job %s",
        job.job_number,
        extra={"tenant_id": job.tenant_id, "job_id": job.id, "event_type": "invoice_requested"},
    )


@register_handler("create_draft_invoice")
def create_draft_invoice(job: Job) -> Invoice | None:
    """Open a draft invoice for the job unless one already exists."""
    if not current_app.config.get("AUTO_DRAFT_INVOICES", False):
        return None

    existing = db.session.execute(
        select(func.count(Invoice.id)).where(
            Invoice.tenant_id == job.tenant_id,
            Invoice.job_id == job.id,
        )
    ).scalar()
    if existing:
        return None

    invoice = Invoice(
        tenant_id=job.tenant_id,
        client_id=job.client_id,
        job_id=job.id,
        quote_id=job.quote_id,
        invoice_number=sequence_service.allocate_number(job.tenant_id, "invoice"),
        status="draft",
        total=job.estimated_value or 0,
    )
    db.session.add(invoice)
    db.session.commit()
    logger.info("Draft invoice %s created for job %s", invoice.invoice_number, job.job_number)
    return invoice
