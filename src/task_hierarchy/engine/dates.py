"""Date coercion and day arithmetic for scheduling."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

from .errors import InvalidDateError


def now_timestamp() -> str:
    """Current UTC time in the stored ISO-8601 form."""
    return datetime.now(timezone.utc).isoformat()


def parse_timestamp(text: str) -> Optional[datetime]:
    """Parse a stored timestamp, or ``None`` when it is not ISO-8601.

    A trailing ``Z`` and date-only values (``2024-01-01``) are accepted;
    values without an offset are read as UTC.
    """
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def coerce_date(value: Any) -> datetime:
    """Return *value* as an aware UTC ``datetime``.

    Accepts ``datetime`` (naive values are taken as UTC), ``date`` (midnight
    UTC) and ISO-8601 strings.  Anything else raises :class:`InvalidDateError`.
    """
    if isinstance(value, datetime):
        dt = value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, str) and value.strip():
        dt = parse_timestamp(value.strip())
        if dt is not None:
            return dt.astimezone(timezone.utc)
    raise InvalidDateError(f"Invalid date: {value!r}")


def optional_date(value: Any) -> Optional[datetime]:
    """Like :func:`coerce_date` but ``None``/empty stays ``None``."""
    if value is None or value == "":
        return None
    return coerce_date(value)


def format_date(value: datetime) -> str:
    return coerce_date(value).isoformat()


def add_days(value: Any, days: int) -> datetime:
    return coerce_date(value) + timedelta(days=days)


def days_between(start: Any, end: Any) -> int:
    """Whole days from *start* to *end* (negative when *end* is earlier)."""
    delta = coerce_date(end) - coerce_date(start)
    return delta.days
