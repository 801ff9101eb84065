"""JSON error responses shared by the API blueprints."""

from __future__ import annotations

from flask import jsonify

from clinic_booking.services.errors import (
    BookingError,
    InvalidDateFormat,
    InvalidField,
    InvalidStatusTransition,
    InvalidTemplate,
    InvalidTimeFormat,
    MissingFields,
    NotFound,
    PersistenceError,
    ScheduleConflict,
    record_exception,
)

# First match wins, so subclasses come before their parents.
STATUS_CODES: tuple[tuple[type[BookingError], int], ...] = (
    (InvalidTimeFormat, 400),
    (InvalidDateFormat, 400),
    (MissingFields, 400),
    (InvalidField, 400),
    (InvalidStatusTransition, 400),
    (InvalidTemplate, 400),
    (ScheduleConflict, 409),
    (NotFound, 404),
    (PersistenceError, 503),
)


def status_for(exc: BookingError) -> int:
    for exc_type, status in STATUS_CODES:
        if isinstance(exc, exc_type):
            return status
    return 400


def error_response(exc: BookingError):
    body = {"success": False, "error": exc.reason, "code": exc.code}
    if isinstance(exc, MissingFields):
        body["fields"] = exc.fields
    elif isinstance(exc, InvalidField):
        body["field"] = exc.field
    return jsonify(body), status_for(exc)


def internal_error(context: str, exc: Exception):
    record_exception(context, exc)
    return jsonify({"success": False, "error": "Internal server error", "code": "internal_error"}), 500
