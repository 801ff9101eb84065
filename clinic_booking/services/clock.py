"""Wall-clock and calendar helpers.

Times of day are handled as integer minutes since midnight and dates as plain
calendar dates. The only place a time zone enters is "now"/"today", which is
always evaluated in the clinic's configured zone.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timezone

import pytz
from flask import current_app

from clinic_booking.services.errors import InvalidDateFormat, InvalidTimeFormat

_HHMM_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")
_DAY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
DEFAULT_TIMEZONE = "Asia/Kolkata"


def parse_hhmm(value: object) -> int:
    """Return minutes since midnight for an ``H:MM``/``HH:MM`` string."""

    if not isinstance(value, str):
        raise InvalidTimeFormat(f"invalid time: {value!r}")
    match = _HHMM_RE.match(value.strip())
    if not match:
        raise InvalidTimeFormat(f"invalid time: {value!r}")
    return int(match.group(1)) * 60 + int(match.group(2))


def format_minutes(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def normalize_hhmm(value: object) -> str:
    """Canonical zero-padded form, so ``9:00`` and ``09:00`` compare equal."""

    return format_minutes(parse_hhmm(value))


def parse_day(value: object) -> date:
    """Calendar date from ``YYYY-MM-DD`` or a full ISO timestamp."""

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise InvalidDateFormat(f"invalid date: {value!r}")
    text = value.strip()
    try:
        if _DAY_RE.match(text):
            return date.fromisoformat(text)
        if len(text) > 10 and text[10] in "T ":
            if text.endswith("Z"):
                text = text[:-1] + "+00:00"
            return datetime.fromisoformat(text).date()
    except ValueError as exc:
        raise InvalidDateFormat(f"invalid date: {value!r}") from exc
    raise InvalidDateFormat(f"invalid date: {value!r}")


def day_of_week(day: date) -> int:
    """0 = Sunday .. 6 = Saturday."""

    return int(day.strftime("%w"))


def clinic_timezone():
    name = current_app.config.get("CLINIC_TIMEZONE", DEFAULT_TIMEZONE)
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        current_app.logger.warning("Unknown CLINIC_TIMEZONE %r, using UTC", name)
        return pytz.UTC


def clinic_now() -> datetime:
    return datetime.now(timezone.utc).astimezone(clinic_timezone())


def clinic_today() -> date:
    return clinic_now().date()


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")
