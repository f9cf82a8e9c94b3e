"""
Quote lifecycle — service layer.

Business logic for:
    - Quote creation:     client validation, Q-00001 numbering, money totals
    - Editing:            line-item replacement, tax/discount recompute
    - Client response:    send, approve (signature + IP), decline (reason)
    - Conversion:         approved quote → job, one transaction, exactly once
    - Expiry sweep:       sent quotes past their expiry date → expired

Rules: tenant_id explicit on every call; db.session.commit() happens only in
this file; every failure rolls the session back before re-raising.
"""

import logging
from datetime import timedelta

from flask import current_app
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from fieldops.core import clock
from fieldops.core.exceptions import (
    AlreadyProcessedError,
    ConflictError,
    InvalidTransitionError,
    ValidationError,
)
from fieldops.models import db
from fieldops.models.job import Job
from fieldops.models.quote import (
    LINE_ITEM_TYPES,
    QUOTE_STATUSES,
    Quote,
    QuoteLineItem,
    QuoteStatus,
    validate_quote_transition,
)
from fieldops.models.tenant import Client
from fieldops.services import job_lifecycle, sequence_service
from fieldops.services.helpers.scoped_queries import get_scoped
from fieldops.services.money import compute_totals, line_amount, tax_rate_value

logger = logging.getLogger(__name__)

DEFAULT_VALIDITY_DAYS = 30

_LOCKED_FOR_EDIT = {QuoteStatus.APPROVED.value, QuoteStatus.CONVERTED.value}


# ── Helpers ──────────────────────────────────────────────────────────────────


def _build_line_items(items) -> list[QuoteLineItem]:
    if items is None:
        return []
    if not isinstance(items, (list, tuple)):
        raise ValidationError("line_items must be a list", details={"line_items": "must be a list"})

    built = []
    for index, item in enumerate(items):
        amount = line_amount(item, index)
        name = (item.get("name") or "").strip()
        if not name:
            raise ValidationError("Line item name is required",
                                  details={f"line_items[{index}].name": "required"})
        item_type = item.get("item_type") or "service"
        if item_type not in LINE_ITEM_TYPES:
            raise ValidationError(
                f"Invalid item_type: {item_type}",
                details={f"line_items[{index}].item_type": f"must be one of {sorted(LINE_ITEM_TYPES)}"},
            )
        built.append(QuoteLineItem(
            sort_order=index,
            item_type=item_type,
            name=name,
            description=item.get("description"),
            quantity=amount.quantity,
            unit_price=amount.unit_price,
            total_price=amount.total,
            is_taxable=amount.is_taxable,
            is_optional=bool(item.get("is_optional", False)),
        ))
    return built


def _apply_totals(quote: Quote, items, tax_rate, discount_amount) -> None:
    totals = compute_totals(items, tax_rate, discount_amount)
    quote.subtotal = totals.subtotal
    quote.tax_amount = totals.tax_amount
    quote.discount_amount = totals.discount_amount
    quote.total = totals.total


def _validity_days() -> int:
    return int(current_app.config.get("QUOTE_VALIDITY_DAYS", DEFAULT_VALIDITY_DAYS))


def _check_dates(quote_date, expiry_date) -> None:
    if expiry_date is not None and quote_date is not None and expiry_date < quote_date:
        raise ValidationError("expiry_date cannot be before quote_date",
                              details={"expiry_date": expiry_date.isoformat()})


# ── Reads ────────────────────────────────────────────────────────────────────


def get_quote(tenant_id: int, quote_id: int, *, for_update: bool = False) -> Quote:
    return get_scoped(Quote, quote_id, tenant_id=tenant_id, for_update=for_update)


def list_quotes(
    tenant_id: int,
    *,
    status: str | None = None,
    client_id: int | None = None,
    limit: int | None = None,
    offset: int = 0,
) -> tuple[list[Quote], int]:
    stmt = select(Quote).where(Quote.tenant_id == tenant_id, Quote.deleted_at.is_(None))
    if status:
        if status not in QUOTE_STATUSES:
            raise ValidationError(f"Invalid status filter: {status}", details={"status": status})
        stmt = stmt.where(Quote.status == status)
    if client_id:
        stmt = stmt.where(Quote.client_id == client_id)
    quotes = list(db.session.execute(stmt.order_by(Quote.id.desc())).scalars())
    end = None if limit is None else offset + limit
    return quotes[offset:end], len(quotes)


# ── Create / edit / delete ───────────────────────────────────────────────────


def create_quote(tenant_id: int, user_id: int | None, data: dict) -> Quote:
    title = (data.get("title") or "").strip()
    if not title:
        raise ValidationError("title is required", details={"title": "required"})
    client = job_lifecycle.require_reference(Client, data.get("client_id"), tenant_id, "client_id")
    address_id = job_lifecycle.validate_address(client, data.get("address_id"))

    items = _build_line_items(data.get("line_items"))
    quote_date = clock.parse_date(data.get("quote_date"), "quote_date") or clock.today()
    expiry_date = clock.parse_date(data.get("expiry_date"), "expiry_date")
    if expiry_date is None:
        expiry_date = quote_date + timedelta(days=_validity_days())
    _check_dates(quote_date, expiry_date)

    quote = Quote(
        tenant_id=tenant_id,
        client_id=client.id,
        address_id=address_id,
        title=title,
        description=data.get("description") or "",
        status=QuoteStatus.DRAFT.value,
        quote_date=quote_date,
        expiry_date=expiry_date,
        terms=data.get("terms"),
        notes=data.get("notes"),
        created_by=user_id,
    )
    _apply_totals(quote, items, data.get("tax_rate"), data.get("discount_amount"))
    quote.tax_rate = tax_rate_value(data.get("tax_rate"))

    number = None
    try:
        number = quote.quote_number = sequence_service.allocate_number(tenant_id, "quote")
        quote.line_items = items
        db.session.add(quote)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        logger.warning("Quote number %s already taken", number, extra={"tenant_id": tenant_id})
        raise ConflictError("Quote", "quote_number", number) from None
    except Exception:
        db.session.rollback()
        raise
    logger.info("Quote %s created (total=%s)", quote.quote_number, quote.total,
                extra={"tenant_id": tenant_id, "quote_id": quote.id})
    return quote


def update_quote(tenant_id: int, quote_id: int, data: dict) -> Quote:
    """Edit a quote that the client has not accepted yet.

    ``line_items`` in *data* replaces the whole set; tax or discount changes
    alone are recomputed against the existing items.
    """
    quote = get_quote(tenant_id, quote_id, for_update=True)
    try:
        if quote.status in _LOCKED_FOR_EDIT:
            raise InvalidTransitionError("Quote", quote.status, "update",
                                         message=f"Cannot edit a {quote.status} quote")

        if "title" in data:
            title = (data.get("title") or "").strip()
            if not title:
                raise ValidationError("title is required", details={"title": "required"})
            quote.title = title
        for field in ("description", "terms", "notes"):
            if field in data:
                setattr(quote, field, data[field])
        if "address_id" in data:
            client = job_lifecycle.require_reference(Client, quote.client_id, tenant_id, "client_id")
            quote.address_id = job_lifecycle.validate_address(client, data["address_id"])
        if "expiry_date" in data:
            quote.expiry_date = clock.parse_date(data["expiry_date"], "expiry_date")
            _check_dates(quote.quote_date, quote.expiry_date)

        tax_rate = data["tax_rate"] if "tax_rate" in data else quote.tax_rate
        discount = data["discount_amount"] if "discount_amount" in data else quote.discount_amount

        if "line_items" in data:
            if data["line_items"] is None:
                raise ValidationError("line_items must be a list",
                                      details={"line_items": "must be a list; send [] to remove all items"})
            items = _build_line_items(data["line_items"])
            _apply_totals(quote, items, tax_rate, discount)
            quote.line_items = items
        elif "tax_rate" in data or "discount_amount" in data:
            _apply_totals(quote, list(quote.line_items), tax_rate, discount)
        quote.tax_rate = tax_rate_value(tax_rate)

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info("Quote %s updated", quote.quote_number, extra={"tenant_id": tenant_id, "quote_id": quote.id})
    return quote


def delete_quote(tenant_id: int, quote_id: int) -> None:
    quote = get_quote(tenant_id, quote_id, for_update=True)
    if quote.status != QuoteStatus.DRAFT:
        db.session.rollback()
        raise InvalidTransitionError("Quote", quote.status, "deleted",
                                     message="Only draft quotes can be deleted")
    quote.soft_delete()
    db.session.commit()
    logger.info("Quote %s deleted", quote.quote_number, extra={"tenant_id": tenant_id, "quote_id": quote.id})


# ── Client response ──────────────────────────────────────────────────────────


def send_quote(tenant_id: int, quote_id: int) -> Quote:
    """Mark a draft (or re-send a sent) quote as sent to the client."""
    quote = get_quote(tenant_id, quote_id, for_update=True)
    if not validate_quote_transition(quote.status, QuoteStatus.SENT.value):
        db.session.rollback()
        raise InvalidTransitionError("Quote", quote.status, QuoteStatus.SENT.value,
                                     message=f"Cannot send a {quote.status} quote")
    quote.status = QuoteStatus.SENT.value
    quote.sent_at = clock.utcnow()
    db.session.commit()
    logger.info("Quote %s sent", quote.quote_number, extra={"tenant_id": tenant_id, "quote_id": quote.id})
    return quote


def approve_quote(
    tenant_id: int,
    quote_id: int,
    *,
    signature: str | None = None,
    ip_address: str | None = None,
) -> Quote:
    quote = get_quote(tenant_id, quote_id, for_update=True)
    if quote.status in (QuoteStatus.APPROVED, QuoteStatus.CONVERTED):
        db.session.rollback()
        raise AlreadyProcessedError("Quote", quote.id, f"Quote {quote.quote_number} is already approved")
    if not validate_quote_transition(quote.status, QuoteStatus.APPROVED.value):
        db.session.rollback()
        raise InvalidTransitionError("Quote", quote.status, QuoteStatus.APPROVED.value,
                                     message=f"Cannot approve a {quote.status} quote")

    quote.status = QuoteStatus.APPROVED.value
    quote.approved_at = clock.utcnow()
    quote.signature_data = signature
    quote.signature_ip = ip_address
    db.session.commit()
    logger.info("Quote %s approved", quote.quote_number, extra={"tenant_id": tenant_id, "quote_id": quote.id})
    return quote


def decline_quote(tenant_id: int, quote_id: int, *, reason: str | None = None) -> Quote:
    quote = get_quote(tenant_id, quote_id, for_update=True)
    if quote.status == QuoteStatus.DECLINED:
        db.session.rollback()
        raise AlreadyProcessedError("Quote", quote.id, f"Quote {quote.quote_number} is already declined")
    if not validate_quote_transition(quote.status, QuoteStatus.DECLINED.value):
        db.session.rollback()
        raise InvalidTransitionError("Quote", quote.status, QuoteStatus.DECLINED.value,
                                     message=f"Cannot decline a {quote.status} quote")

    quote.status = QuoteStatus.DECLINED.value
    quote.declined_at = clock.utcnow()
    quote.decline_reason = reason
    db.session.commit()
    logger.info("Quote %s declined", quote.quote_number, extra={"tenant_id": tenant_id, "quote_id": quote.id})
    return quote


# ── Conversion ───────────────────────────────────────────────────────────────


def convert_to_job(tenant_id: int, quote_id: int, user_id: int | None = None) -> Job:
    """Create the job for an approved quote and mark the quote converted.

    Both writes share one transaction: if job creation fails the quote is
    left exactly as it was.
    """
    quote = get_quote(tenant_id, quote_id, for_update=True)
    try:
        if quote.converted_to_job_id is not None:
            raise AlreadyProcessedError(
                "Quote", quote.id,
                f"Quote {quote.quote_number} was already converted to job {quote.converted_to_job_id}",
            )
        if not validate_quote_transition(quote.status, QuoteStatus.CONVERTED.value):
            raise InvalidTransitionError("Quote", quote.status, QuoteStatus.CONVERTED.value,
                                         message="Only approved quotes can be converted")

        job = job_lifecycle.insert_job(tenant_id, user_id or quote.created_by, {
            "client_id": quote.client_id,
            "address_id": quote.address_id,
            "quote_id": quote.id,
            "title": quote.title,
            "description": quote.description,
            "estimated_value": quote.total,
        })
        quote.status = QuoteStatus.CONVERTED.value
        quote.converted_to_job_id = job.id
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info("Quote %s converted to job %s", quote.quote_number, job.job_number,
                extra={"tenant_id": tenant_id, "quote_id": quote.id, "job_id": job.id})
    return job


# ── Expiry sweep ─────────────────────────────────────────────────────────────


def expire_quotes(today=None, *, tenant_id: int | None = None) -> dict:
    """Expire every sent quote whose expiry date is strictly before *today*.

    Each quote is flipped with ``UPDATE ... WHERE status = 'sent'`` so an
    approval committed after the candidate scan is never overwritten.
    Idempotent: a second run finds nothing to do.
    """
    today = today or clock.today()
    stmt = select(Quote.id, Quote.quote_number, Quote.tenant_id).where(
        Quote.status == QuoteStatus.SENT.value,
        Quote.deleted_at.is_(None),
        Quote.expiry_date.isnot(None),
        Quote.expiry_date < today,
    )
    if tenant_id is not None:
        stmt = stmt.where(Quote.tenant_id == tenant_id)

    expired = []
    try:
        for row in db.session.execute(stmt.order_by(Quote.id)).all():
            result = db.session.execute(
                update(Quote)
                .where(Quote.id == row.id, Quote.status == QuoteStatus.SENT.value)
                .values(status=QuoteStatus.EXPIRED.value)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount:
                expired.append(row.quote_number)
                logger.info("Quote %s expired", row.quote_number,
                            extra={"tenant_id": row.tenant_id, "quote_id": row.id})
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    db.session.expire_all()
    return {"expired": len(expired), "quote_numbers": expired, "as_of": today.isoformat()}
