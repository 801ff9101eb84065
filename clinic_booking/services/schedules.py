"""Weekly schedule templates and calendar exceptions per doctor."""

from __future__ import annotations

import sqlite3
import uuid
from dataclasses import dataclass
from datetime import date

from clinic_booking.services.clock import normalize_hhmm, parse_day, parse_hhmm
from clinic_booking.services.database import connection
from clinic_booking.services.errors import InvalidTemplate, InvalidTimeFormat, NotFound

SPECIAL_DATE_TYPES = ("UNAVAILABLE", "HOLIDAY", "OTHER", "BREAK")
# A doctor-specific BREAK only adds a break window for the day.
NON_BLOCKING_TYPES = frozenset({"BREAK"})


@dataclass(frozen=True)
class ScheduleTemplate:
    doctor_id: str
    day_of_week: int
    is_active: bool
    start_time: str
    end_time: str
    slot_duration: int
    buffer_time: int = 0
    break_start: str | None = None
    break_end: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "doctorId": self.doctor_id,
            "dayOfWeek": self.day_of_week,
            "isActive": self.is_active,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "slotDuration": self.slot_duration,
            "bufferTime": self.buffer_time,
            "breakStart": self.break_start,
            "breakEnd": self.break_end,
        }


@dataclass(frozen=True)
class SpecialDate:
    id: str
    date: str
    doctor_id: str | None
    type: str
    name: str
    reason: str | None = None
    break_start: str | None = None
    break_end: str | None = None

    @property
    def is_global(self) -> bool:
        return self.doctor_id is None

    @property
    def blocks_day(self) -> bool:
        return self.is_global or self.type not in NON_BLOCKING_TYPES

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "date": self.date,
            "doctorId": self.doctor_id,
            "type": self.type,
            "name": self.name,
            "reason": self.reason,
            "breakStart": self.break_start,
            "breakEnd": self.break_end,
        }


def _row_to_template(row: sqlite3.Row) -> ScheduleTemplate:
    return ScheduleTemplate(
        doctor_id=row["doctor_id"],
        day_of_week=int(row["day_of_week"]),
        is_active=bool(row["is_active"]),
        start_time=row["start_time"],
        end_time=row["end_time"],
        slot_duration=int(row["slot_duration"] or 0),
        buffer_time=int(row["buffer_time"] or 0),
        break_start=row["break_start"] or None,
        break_end=row["break_end"] or None,
    )


def _row_to_special_date(row: sqlite3.Row) -> SpecialDate:
    return SpecialDate(
        id=row["id"],
        date=row["date"],
        doctor_id=row["doctor_id"],
        type=(row["type"] or "UNAVAILABLE").upper(),
        name=row["name"],
        reason=row["reason"],
        break_start=row["break_start"] or None,
        break_end=row["break_end"] or None,
    )


def get_template(
    doctor_id: str, dow: int, *, conn: sqlite3.Connection | None = None
) -> ScheduleTemplate | None:
    with connection(conn) as c:
        row = c.execute(
            "SELECT * FROM doctor_schedules WHERE doctor_id=? AND day_of_week=?",
            (doctor_id, dow),
        ).fetchone()
    return _row_to_template(row) if row else None


def get_weekly_template(doctor_id: str, *, conn: sqlite3.Connection | None = None) -> list[ScheduleTemplate]:
    """All weekday templates of a doctor, Sunday first. Missing days are simply absent."""

    with connection(conn) as c:
        rows = c.execute(
            "SELECT * FROM doctor_schedules WHERE doctor_id=? ORDER BY day_of_week",
            (doctor_id,),
        ).fetchall()
    return [_row_to_template(row) for row in rows]


def get_special_dates(
    doctor_id: str | None = None, *, conn: sqlite3.Connection | None = None
) -> list[SpecialDate]:
    """Clinic-wide dates, plus the doctor's own dates when ``doctor_id`` is given."""

    sql = "SELECT * FROM special_dates WHERE doctor_id IS NULL"
    params: list[str] = []
    if doctor_id:
        sql += " OR doctor_id = ?"
        params.append(doctor_id)
    sql += " ORDER BY date, created_at"
    with connection(conn) as c:
        rows = c.execute(sql, params).fetchall()
    return [_row_to_special_date(row) for row in rows]


def special_dates_on(
    doctor_id: str, day: date, *, conn: sqlite3.Connection | None = None
) -> list[SpecialDate]:
    with connection(conn) as c:
        rows = c.execute(
            """
            SELECT * FROM special_dates
            WHERE date = ? AND (doctor_id IS NULL OR doctor_id = ?)
            ORDER BY doctor_id IS NOT NULL, created_at
            """,
            (day.isoformat(), doctor_id),
        ).fetchall()
    return [_row_to_special_date(row) for row in rows]


def blocking_special_date(
    doctor_id: str, day: date, *, conn: sqlite3.Connection | None = None
) -> SpecialDate | None:
    for special in special_dates_on(doctor_id, day, conn=conn):
        if special.blocks_day:
            return special
    return None


def break_windows(special_dates: list[SpecialDate]) -> list[tuple[int, int]]:
    """Extra break windows contributed by doctor-specific BREAK dates."""

    windows: list[tuple[int, int]] = []
    for special in special_dates:
        if special.blocks_day or not (special.break_start and special.break_end):
            continue
        try:
            start, end = parse_hhmm(special.break_start), parse_hhmm(special.break_end)
        except InvalidTimeFormat:
            continue
        if start < end:
            windows.append((start, end))
    return windows


def validate_template(template: ScheduleTemplate) -> None:
    if not 0 <= template.day_of_week <= 6:
        raise InvalidTemplate("dayOfWeek must be between 0 (Sunday) and 6 (Saturday)")
    try:
        start = parse_hhmm(template.start_time)
        end = parse_hhmm(template.end_time)
    except InvalidTimeFormat as exc:
        raise InvalidTemplate(exc.reason) from exc
    if template.buffer_time < 0:
        raise InvalidTemplate("bufferTime must not be negative")
    if not template.is_active:
        return
    if start >= end:
        raise InvalidTemplate("startTime must be before endTime")
    if template.slot_duration <= 0:
        raise InvalidTemplate("slotDuration must be positive")
    if bool(template.break_start) != bool(template.break_end):
        raise InvalidTemplate("breakStart and breakEnd must be set together")
    if template.break_start and template.break_end:
        try:
            b_start, b_end = parse_hhmm(template.break_start), parse_hhmm(template.break_end)
        except InvalidTimeFormat as exc:
            raise InvalidTemplate(exc.reason) from exc
        if not start <= b_start < b_end <= end:
            raise InvalidTemplate("break must lie inside working hours")


def upsert_template(template: ScheduleTemplate) -> ScheduleTemplate:
    """Create or replace the template for (doctor, weekday)."""

    validate_template(template)
    template = ScheduleTemplate(
        doctor_id=template.doctor_id,
        day_of_week=template.day_of_week,
        is_active=template.is_active,
        start_time=normalize_hhmm(template.start_time),
        end_time=normalize_hhmm(template.end_time),
        slot_duration=template.slot_duration,
        buffer_time=template.buffer_time,
        break_start=normalize_hhmm(template.break_start) if template.break_start else None,
        break_end=normalize_hhmm(template.break_end) if template.break_end else None,
    )
    with connection() as conn:
        conn.execute(
            """
            INSERT INTO doctor_schedules(
                id, doctor_id, day_of_week, is_active, start_time, end_time,
                slot_duration, buffer_time, break_start, break_end, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, datetime('now'))
            ON CONFLICT(doctor_id, day_of_week) DO UPDATE SET
                is_active=excluded.is_active,
                start_time=excluded.start_time,
                end_time=excluded.end_time,
                slot_duration=excluded.slot_duration,
                buffer_time=excluded.buffer_time,
                break_start=excluded.break_start,
                break_end=excluded.break_end,
                updated_at=excluded.updated_at
            """,
            (
                str(uuid.uuid4()),
                template.doctor_id,
                template.day_of_week,
                1 if template.is_active else 0,
                template.start_time,
                template.end_time,
                template.slot_duration,
                template.buffer_time,
                template.break_start,
                template.break_end,
            ),
        )
        conn.commit()
    return template


def add_special_date(
    day: date | str,
    *,
    name: str,
    doctor_id: str | None = None,
    type: str = "UNAVAILABLE",
    reason: str | None = None,
    break_start: str | None = None,
    break_end: str | None = None,
) -> SpecialDate:
    kind = (type or "UNAVAILABLE").upper()
    if kind not in SPECIAL_DATE_TYPES:
        raise InvalidTemplate(f"unknown special date type: {type}")
    if kind == "BREAK" and not (break_start and break_end):
        raise InvalidTemplate("BREAK special dates need breakStart and breakEnd")
    special = SpecialDate(
        id=str(uuid.uuid4()),
        date=parse_day(day).isoformat(),
        doctor_id=doctor_id or None,
        type=kind,
        name=name,
        reason=reason,
        break_start=normalize_hhmm(break_start) if break_start else None,
        break_end=normalize_hhmm(break_end) if break_end else None,
    )
    with connection() as conn:
        conn.execute(
            """
            INSERT INTO special_dates(id, date, doctor_id, type, name, reason, break_start, break_end)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                special.id,
                special.date,
                special.doctor_id,
                special.type,
                special.name,
                special.reason,
                special.break_start,
                special.break_end,
            ),
        )
        conn.commit()
    return special


def delete_special_date(special_id: str) -> None:
    with connection() as conn:
        cur = conn.execute("DELETE FROM special_dates WHERE id=?", (special_id,))
        conn.commit()
        if not cur.rowcount:
            raise NotFound(f"special date {special_id} not found")
