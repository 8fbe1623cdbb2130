"""Instant parsing, canonical serialization and UTC day bucketing.

All day boundaries in the store are UTC days.  Timestamps are persisted as
``YYYY-MM-DDTHH:MM:SS.mmmZ`` strings, which sort lexicographically in time
order, so range filters can compare the stored text directly.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Any

from fitsync.storage.exceptions import RecordValidationError

ONE_DAY = timedelta(days=1)
ONE_MILLISECOND = timedelta(milliseconds=1)

_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_instant(value: Any) -> datetime:
    """Coerce a client-supplied timestamp into an aware UTC datetime.

    Accepts datetimes (naive ones are read as UTC), dates (midnight UTC),
    ISO-8601 strings with or without an offset, and epoch milliseconds.

    Raises:
        RecordValidationError: if the value is missing or cannot be coerced.
    """
    if value is None or value == "":
        raise RecordValidationError("timestamp is required")
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime.combine(value, time.min)
    elif isinstance(value, bool):
        raise RecordValidationError(f"Invalid timestamp: {value!r}")
    elif isinstance(value, (int, float)):
        try:
            dt = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as exc:
            raise RecordValidationError(f"Invalid timestamp: {value!r}") from exc
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError as exc:
            raise RecordValidationError(f"Invalid timestamp: {value!r}") from exc
    else:
        raise RecordValidationError(f"Invalid timestamp: {value!r}")

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_instant(dt: datetime) -> str:
    """Canonical storage form: UTC, millisecond precision, ``Z`` suffix."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    text = dt.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")


def parse_day(value: Any) -> date:
    """Coerce a calendar date (``YYYY-MM-DD``), datetime or instant string to a UTC date."""
    if isinstance(value, datetime):
        return parse_instant(value).date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and _DATE_ONLY.match(value.strip()):
        try:
            return date.fromisoformat(value.strip())
        except ValueError as exc:
            raise RecordValidationError(f"Invalid date format: {value!r}") from exc
    try:
        return parse_instant(value).date()
    except RecordValidationError as exc:
        raise RecordValidationError(f"Invalid date format: {value!r}") from exc


def calendar_date(instant: datetime) -> date:
    """The UTC day an instant falls in."""
    return parse_instant(instant).date()


def day_start(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """Half-open ``[start, end)`` bounds of a UTC day."""
    start = day_start(day)
    return start, start + ONE_DAY
