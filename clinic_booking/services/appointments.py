"""Booking transactions: create, update, status changes and queries."""

from __future__ import annotations

import re
import sqlite3
import uuid
from typing import Any, Mapping, Sequence

from flask import current_app

from clinic_booking.services.availability import is_available
from clinic_booking.services.clock import (
    day_of_week,
    format_minutes,
    normalize_hhmm,
    parse_day,
    parse_hhmm,
    utc_timestamp,
)
from clinic_booking.services.database import connection, db
from clinic_booking.services.doctors import get_doctor
from clinic_booking.services.errors import (
    BookingError,
    InvalidField,
    InvalidStatusTransition,
    MissingFields,
    NotFound,
    PersistenceError,
    ScheduleConflict,
)
from clinic_booking.services.notifications import notify
from clinic_booking.services.schedules import get_template

STATUSES = ("SCHEDULED", "CONFIRMED", "COMPLETED", "CANCELLED", "NO_SHOW")
INITIAL_STATUSES = frozenset({"SCHEDULED", "CONFIRMED"})
ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "SCHEDULED": frozenset({"CONFIRMED", "CANCELLED"}),
    "CONFIRMED": frozenset({"COMPLETED", "CANCELLED", "NO_SHOW"}),
    "COMPLETED": frozenset(),
    "CANCELLED": frozenset(),
    "NO_SHOW": frozenset(),
}

# (API key, column); the column name is accepted as an alias.
REQUIRED_FIELDS: tuple[tuple[str, str], ...] = (
    ("patientName", "patient_name"),
    ("email", "email"),
    ("phone", "phone"),
    ("date", "date"),
    ("time", "time"),
    ("status", "status"),
    ("doctorId", "doctor_id"),
)
OPTIONAL_FIELDS: tuple[tuple[str, str], ...] = (
    ("timeSlot", "time_slot"),
    ("customerId", "customer_id"),
    ("notes", "notes"),
)

# Columns the duplicate scan may group on.
GROUPABLE_COLUMNS = frozenset(
    {"patient_name", "doctor_id", "date", "time", "time_slot", "phone", "email", "status", "customer_id"}
)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_DOCTOR_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")
_NON_DIGITS_RE = re.compile(r"\D")
MIN_NAME_LENGTH = 2
MIN_PHONE_DIGITS = 10
# Keeps OFFSET inside SQLite's 64-bit integer range.
MAX_PAGE = 1_000_000
MAX_PAGE_SIZE = 500


def serialize(row: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "id": row["id"],
        "doctorId": row["doctor_id"],
        "patientName": row["patient_name"],
        "email": row["email"],
        "phone": row["phone"],
        "date": row["date"],
        "time": row["time"],
        "timeSlot": row["time_slot"],
        "status": row["status"],
        "customerId": row["customer_id"],
        "notes": row["notes"],
        "createdAt": row["created_at"],
        "updatedAt": row["updated_at"],
    }


def _pick(data: Mapping[str, Any], api_key: str, alias: str) -> Any:
    value = data.get(api_key)
    if value is None:
        value = data.get(alias)
    if isinstance(value, str):
        value = value.strip()
    return value


def _check_shape(fields: Mapping[str, Any]) -> None:
    """Reject malformed contact details before anything touches the database."""

    if len(fields["patient_name"]) < MIN_NAME_LENGTH:
        raise InvalidField("patientName", f"must be at least {MIN_NAME_LENGTH} characters")
    if not _EMAIL_RE.match(fields["email"]):
        raise InvalidField("email", "not a valid email address")
    if len(_NON_DIGITS_RE.sub("", fields["phone"])) < MIN_PHONE_DIGITS:
        raise InvalidField("phone", f"must have at least {MIN_PHONE_DIGITS} digits")
    if not _DOCTOR_ID_RE.match(fields["doctor_id"]):
        raise InvalidField("doctorId", "invalid doctor id")


def _clean_fields(data: Mapping[str, Any]) -> dict[str, Any]:
    """Validate presence and shape of booking fields; return column values."""

    fields: dict[str, Any] = {}
    missing: list[str] = []
    for api_key, column in REQUIRED_FIELDS:
        value = _pick(data, api_key, column)
        if value is None or value == "":
            missing.append(api_key)
        elif not isinstance(value, str):
            raise InvalidField(api_key, "must be a string")
        fields[column] = value
    if missing:
        raise MissingFields(missing)
    for api_key, column in OPTIONAL_FIELDS:
        value = _pick(data, api_key, column)
        if value not in ("", None) and not isinstance(value, str):
            raise InvalidField(api_key, "must be a string")
        fields[column] = value if value not in ("", None) else None

    _check_shape(fields)
    fields["date"] = parse_day(fields["date"]).isoformat()
    fields["time"] = normalize_hhmm(fields["time"])
    status = fields["status"].upper()
    if status not in STATUSES:
        raise InvalidStatusTransition(f"unknown status: {fields['status']}")
    fields["status"] = status
    return fields


def _default_time_slot(conn: sqlite3.Connection, doctor_id: str, day: str, time: str) -> str | None:
    template = get_template(doctor_id, day_of_week(parse_day(day)), conn=conn)
    if template is None or template.slot_duration <= 0:
        return None
    start = parse_hhmm(time)
    return f"{time} - {format_minutes(start + template.slot_duration)}"


def _ensure_bookable(
    conn: sqlite3.Connection, fields: Mapping[str, Any], *, exclude_id: str | None = None
) -> None:
    result = is_available(fields["doctor_id"], fields["date"], fields["time"], conn=conn)
    if not result.available:
        raise ScheduleConflict(result.reason)
    params: list[str] = [fields["doctor_id"], fields["date"], fields["time"]]
    sql = """
        SELECT id FROM appointments
        WHERE doctor_id=? AND date=? AND time=? AND status <> 'CANCELLED'
    """
    if exclude_id:
        sql += " AND id != ?"
        params.append(exclude_id)
    if conn.execute(sql, params).fetchone():
        raise ScheduleConflict("already booked")


def _check_transition(current: str, new: str) -> None:
    if current == new:
        return
    if new not in ALLOWED_TRANSITIONS.get(current, frozenset()):
        raise InvalidStatusTransition(f"cannot change status from {current} to {new}")


def _run_write(conn: sqlite3.Connection, work) -> Any:
    """Run ``work(conn)`` inside ``BEGIN IMMEDIATE`` and translate storage errors."""

    try:
        conn.execute("BEGIN IMMEDIATE")
        result = work(conn)
        conn.commit()
        return result
    except sqlite3.IntegrityError as exc:
        conn.rollback()
        current_app.logger.info("Slot uniqueness rejected booking: %s", exc)
        raise ScheduleConflict("already booked") from exc
    except sqlite3.DatabaseError as exc:
        conn.rollback()
        current_app.logger.error("Booking write failed: %s", exc)
        raise PersistenceError(f"storage error: {exc}") from exc
    except Exception:
        conn.rollback()
        raise


def _notification_payload(appointment: dict[str, Any]) -> dict[str, Any]:
    payload = dict(appointment)
    try:
        doctor = get_doctor(appointment["doctorId"])
    except NotFound:
        return payload
    payload.update(
        {"doctorName": doctor.name, "doctorSpeciality": doctor.speciality, "doctorFee": doctor.fee}
    )
    return payload


def _notify_created(appointment: dict[str, Any]) -> None:
    try:
        notify("booking.created", _notification_payload(appointment))
    except Exception as exc:
        current_app.logger.warning("Booking notification for %s failed: %s", appointment["id"], exc)


def create_appointment(data: Mapping[str, Any]) -> dict[str, Any]:
    """Validate and store a new booking, then notify the webhook."""

    fields = _clean_fields(data)
    if fields["status"] not in INITIAL_STATUSES:
        raise InvalidStatusTransition(f"new appointments cannot start as {fields['status']}")

    def work(conn: sqlite3.Connection) -> dict[str, Any]:
        _ensure_bookable(conn, fields)
        now = utc_timestamp()
        row = {
            **fields,
            "id": str(uuid.uuid4()),
            "time_slot": fields["time_slot"]
            or _default_time_slot(conn, fields["doctor_id"], fields["date"], fields["time"]),
            "created_at": now,
            "updated_at": now,
        }
        conn.execute(
            """
            INSERT INTO appointments(
                id, doctor_id, patient_name, email, phone, date, time, time_slot,
                status, customer_id, notes, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                row["id"],
                row["doctor_id"],
                row["patient_name"],
                row["email"],
                row["phone"],
                row["date"],
                row["time"],
                row["time_slot"],
                row["status"],
                row["customer_id"],
                row["notes"],
                row["created_at"],
                row["updated_at"],
            ),
        )
        return serialize(row)

    conn = db()
    try:
        appointment = _run_write(conn, work)
    finally:
        conn.close()
    current_app.logger.info(
        "Booked %s for doctor %s on %s %s",
        appointment["id"],
        appointment["doctorId"],
        appointment["date"],
        appointment["time"],
    )
    _notify_created(appointment)
    return appointment


def update_appointment(appt_id: str, data: Mapping[str, Any]) -> dict[str, Any]:
    """Replace the booking fields of ``appt_id``.

    The new doctor/date/time is checked like a fresh booking; the appointment
    only ignores its own row when looking for a clash.
    """

    fields = _clean_fields(data)

    def work(conn: sqlite3.Connection) -> dict[str, Any]:
        existing = conn.execute("SELECT * FROM appointments WHERE id=?", (appt_id,)).fetchone()
        if not existing:
            raise NotFound(f"appointment {appt_id} not found")
        _check_transition(existing["status"], fields["status"])
        if fields["status"] != "CANCELLED":
            _ensure_bookable(conn, fields, exclude_id=appt_id)
        moved = (existing["doctor_id"], existing["date"], existing["time"]) != (
            fields["doctor_id"],
            fields["date"],
            fields["time"],
        )
        time_slot = fields["time_slot"]
        if not time_slot:
            time_slot = (
                _default_time_slot(conn, fields["doctor_id"], fields["date"], fields["time"])
                if moved
                else existing["time_slot"]
            )
        row = {
            **dict(existing),
            **fields,
            "time_slot": time_slot,
            "updated_at": utc_timestamp(),
        }
        conn.execute(
            """
            UPDATE appointments
            SET doctor_id=?,
                patient_name=?,
                email=?,
                phone=?,
                date=?,
                time=?,
                time_slot=?,
                status=?,
                customer_id=?,
                notes=?,
                updated_at=?
            WHERE id=?
            """,
            (
                row["doctor_id"],
                row["patient_name"],
                row["email"],
                row["phone"],
                row["date"],
                row["time"],
                row["time_slot"],
                row["status"],
                row["customer_id"],
                row["notes"],
                row["updated_at"],
                appt_id,
            ),
        )
        return serialize(row)

    conn = db()
    try:
        appointment = _run_write(conn, work)
    finally:
        conn.close()
    current_app.logger.info("Updated appointment %s", appt_id)
    return appointment


def update_status(appt_id: str, status: str) -> dict[str, Any]:
    new_status = (status or "").strip().upper()
    if new_status not in STATUSES:
        raise InvalidStatusTransition(f"unknown status: {status}")

    def work(conn: sqlite3.Connection) -> dict[str, Any]:
        existing = conn.execute("SELECT * FROM appointments WHERE id=?", (appt_id,)).fetchone()
        if not existing:
            raise NotFound(f"appointment {appt_id} not found")
        _check_transition(existing["status"], new_status)
        updated_at = utc_timestamp()
        conn.execute(
            "UPDATE appointments SET status=?, updated_at=? WHERE id=?",
            (new_status, updated_at, appt_id),
        )
        return serialize({**dict(existing), "status": new_status, "updated_at": updated_at})

    conn = db()
    try:
        appointment = _run_write(conn, work)
    finally:
        conn.close()
    current_app.logger.info("Appointment %s status -> %s", appt_id, new_status)
    return appointment


def get_appointment(appt_id: str, *, conn: sqlite3.Connection | None = None) -> dict[str, Any]:
    with connection(conn) as c:
        row = c.execute("SELECT * FROM appointments WHERE id=?", (appt_id,)).fetchone()
    if not row:
        raise NotFound(f"appointment {appt_id} not found")
    return serialize(row)


def _filter_clause(filters: Mapping[str, Any] | None) -> tuple[str, list[Any]]:
    filters = filters or {}
    clauses: list[str] = []
    params: list[Any] = []
    if filters.get("doctor_id"):
        clauses.append("doctor_id = ?")
        params.append(filters["doctor_id"])
    if filters.get("date"):
        clauses.append("date = ?")
        params.append(parse_day(filters["date"]).isoformat())
    if filters.get("start_date"):
        clauses.append("date >= ?")
        params.append(parse_day(filters["start_date"]).isoformat())
    if filters.get("end_date"):
        clauses.append("date <= ?")
        params.append(parse_day(filters["end_date"]).isoformat())
    if filters.get("status"):
        clauses.append("status = ?")
        params.append(str(filters["status"]).upper())
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    return where, params


def list_appointments(
    filters: Mapping[str, Any] | None = None,
    *,
    page: int = 1,
    page_size: int = 50,
) -> list[dict[str, Any]]:
    """Appointments ordered by date, time and creation, one page at a time."""

    where, params = _filter_clause(filters)
    page = min(max(int(page), 1), MAX_PAGE)
    page_size = min(max(int(page_size), 1), MAX_PAGE_SIZE)
    with connection() as conn:
        rows = conn.execute(
            f"""
            SELECT * FROM appointments
            {where}
            ORDER BY date, time, created_at, id
            LIMIT ? OFFSET ?
            """,
            [*params, page_size, (page - 1) * page_size],
        ).fetchall()
    return [serialize(row) for row in rows]


def count_appointments(filters: Mapping[str, Any] | None = None) -> int:
    where, params = _filter_clause(filters)
    with connection() as conn:
        row = conn.execute(f"SELECT COUNT(*) AS n FROM appointments {where}", params).fetchone()
    return int(row["n"])


def count_grouped_by(
    fields: Sequence[str],
    *,
    active_only: bool = False,
    conn: sqlite3.Connection | None = None,
) -> list[dict[str, Any]]:
    """Groups over ``fields`` that hold more than one appointment.

    Each item is ``{"key": {column: value}, "count": n}``. NULLs group together.
    ``active_only`` leaves cancelled appointments out of the count.
    """

    unknown = [name for name in fields if name not in GROUPABLE_COLUMNS]
    if not fields or unknown:
        raise BookingError(f"cannot group by: {', '.join(unknown) or '(nothing)'}")
    columns = ", ".join(fields)
    where = "WHERE status <> 'CANCELLED'" if active_only else ""
    with connection(conn) as c:
        rows = c.execute(
            f"""
            SELECT {columns}, COUNT(*) AS n
            FROM appointments
            {where}
            GROUP BY {columns}
            HAVING COUNT(*) > 1
            ORDER BY {columns}
            """
        ).fetchall()
    return [{"key": {name: row[name] for name in fields}, "count": int(row["n"])} for row in rows]


def delete_appointment(appt_id: str) -> None:
    """Hard delete; reserved for duplicate reconciliation."""

    conn = db()
    try:
        try:
            cur = conn.execute("DELETE FROM appointments WHERE id=?", (appt_id,))
            conn.commit()
        except sqlite3.DatabaseError as exc:
            conn.rollback()
            raise PersistenceError(f"storage error: {exc}") from exc
        if not cur.rowcount:
            raise NotFound(f"appointment {appt_id} not found")
    finally:
        conn.close()


SLOT_GUARD_SQL = (
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_appointments_active_slot "
    "ON appointments(doctor_id, date, time) WHERE status <> 'CANCELLED'"
)


def ensure_slot_guard() -> bool:
    """Create the one-booking-per-slot index if the data allows it.

    Databases that predate the index can hold clashing bookings; the index
    is then left missing until duplicate cleanup has removed them.
    """

    conn = db()
    try:
        conn.execute(SLOT_GUARD_SQL)
        conn.commit()
        return True
    except sqlite3.IntegrityError as exc:
        conn.rollback()
        current_app.logger.warning("Slot guard index not created, clashing bookings remain: %s", exc)
        return False
    finally:
        conn.close()
