"""Shared utility functions used by models, services and blueprints.

new_id:          opaque string identifier for every entity
utcnow / as_utc: timezone-aware timestamps (SQLite returns naive values)
parse_datetime:  ISO-8601 date or datetime input → aware UTC datetime
clean_text / clean_id: JSON input shape checks that raise ValidationError
"""
import uuid
from datetime import UTC, date, datetime, time

from teamflow.core.exceptions import ValidationError


def new_id() -> str:
    """Generate a new opaque identifier (UUID4 text)."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to a naive datetime; convert an aware one to UTC.

    SQLite drops tzinfo on ``DateTime(timezone=True)`` columns, so every
    comparison against a stored timestamp goes through this.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def isoformat(value: datetime | None) -> str | None:
    value = as_utc(value)
    return value.isoformat() if value else None


def parse_datetime(value):
    """Parse an ISO-8601 date or datetime string to an aware UTC datetime.

    A bare date (``YYYY-MM-DD``) means the end of that day in UTC, so a task
    due "today" is not overdue until the day is over.

    Raises ValueError on bad input; returns None for empty input.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, time.max, tzinfo=UTC)
    text = str(value).strip()
    if len(text) == 10:
        try:
            return datetime.combine(date.fromisoformat(text), time.max, tzinfo=UTC)
        except ValueError as exc:
            raise ValueError("Invalid date format. Use YYYY-MM-DD or ISO-8601 datetime.") from exc
    try:
        return as_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError as exc:
        raise ValueError("Invalid date format. Use YYYY-MM-DD or ISO-8601 datetime.") from exc


def clean_text(value, field: str) -> str | None:
    """Strip a free-text input.  None passes through; other non-strings are rejected."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", details={field: "not_a_string"})
    return value.strip()


def clean_id(value, field: str, *, required: bool = True) -> str | None:
    """Normalise an identifier given as a string or integer to its text form."""
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} is required", details={field: "required"})
        return None
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise ValidationError(f"{field} must be a string or integer", details={field: "invalid_type"})
    text = str(value).strip()
    if not text and required:
        raise ValidationError(f"{field} is required", details={field: "required"})
    return text or None
