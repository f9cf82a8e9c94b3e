"""
Clock and datetime coercion helpers.

Services never call ``datetime.now`` directly; they call ``clock.utcnow()``
so tests can pin time with ``monkeypatch.setattr(clock, "utcnow", ...)``.

SQLite hands timezone-aware columns back as naive values, so every
comparison goes through ``as_utc`` first.
"""

from datetime import date, datetime, timezone

from fieldops.core.exceptions import ValidationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def today() -> date:
    return utcnow().date()


def as_utc(value: datetime | None) -> datetime | None:
    """Return *value* as an aware UTC datetime (naive values are assumed UTC)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(value, field: str) -> datetime | None:
    """Accept a datetime or ISO-8601 string; raise ValidationError otherwise."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, str):
        try:
            return as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError:
            pass
    raise ValidationError(f"{field} must be an ISO-8601 datetime", details={field: value})


def parse_date(value, field: str) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value)
        except ValueError:
            pass
        # full timestamps are accepted too; their date part is kept
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
        except ValueError:
            pass
    raise ValidationError(f"{field} must be an ISO-8601 date", details={field: value})


def minutes_between(start: datetime, end: datetime) -> int:
    """Whole elapsed minutes, floored."""
    delta = as_utc(end) - as_utc(start)
    return int(delta.total_seconds() // 60)
