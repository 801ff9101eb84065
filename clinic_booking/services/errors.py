"""Booking error taxonomy and lightweight error logging for diagnostics."""

from __future__ import annotations

from datetime import datetime, UTC
from pathlib import Path
import traceback
from typing import Iterable

from flask import current_app


class BookingError(Exception):
    """Base exception for scheduling and booking operations."""

    code = "booking_error"
    default_reason = "booking failed"

    def __init__(self, reason: str | None = None) -> None:
        self.reason = reason or self.default_reason
        super().__init__(self.reason)


class ScheduleConflict(BookingError):
    """Raised when the requested time cannot be booked."""

    code = "schedule_conflict"
    default_reason = "time slot is not available"


class InvalidTimeFormat(ScheduleConflict):
    """Raised for a malformed ``HH:MM`` value."""

    code = "invalid_time"
    default_reason = "invalid time"


class InvalidDateFormat(ScheduleConflict):
    """Raised for a malformed ``YYYY-MM-DD`` value."""

    code = "invalid_date"
    default_reason = "invalid date"


class MissingFields(BookingError):
    code = "missing_fields"
    default_reason = "missing required fields"

    def __init__(self, fields: Iterable[str]) -> None:
        self.fields = list(fields)
        super().__init__(f"missing required fields: {', '.join(self.fields)}")


class InvalidField(BookingError):
    """Raised when a booking field is present but malformed."""

    code = "invalid_field"
    default_reason = "invalid field"

    def __init__(self, field: str, reason: str) -> None:
        self.field = field
        super().__init__(f"{field}: {reason}")


class InvalidStatusTransition(BookingError):
    code = "invalid_transition"
    default_reason = "invalid status transition"


class InvalidTemplate(BookingError):
    code = "invalid_template"
    default_reason = "invalid schedule template"


class NotFound(BookingError):
    code = "not_found"
    default_reason = "not found"


class PersistenceError(BookingError):
    """Storage failure that is not a legitimate booking conflict."""

    code = "persistence_error"
    default_reason = "storage unavailable"


def record_exception(context: str, exc: BaseException) -> None:
    """Append exception details to data/logs/app_errors.log for offline inspection."""

    try:
        root = Path(current_app.config["DATA_ROOT"]) / "logs"
        root.mkdir(parents=True, exist_ok=True)
        log_path = root / "app_errors.log"
        with log_path.open("a", encoding="utf-8") as handle:
            handle.write(f"[{datetime.now(UTC).isoformat()}] {context}\n")
            handle.write("".join(traceback.format_exception(exc)))
            handle.write("\n")
    except Exception:
        # Diagnostics must not break the request.
        pass
