"""Slot generation from weekly templates, plus calendar views built on it."""

from __future__ import annotations

import sqlite3
from datetime import date, datetime, timedelta
from typing import Iterable

from flask import current_app

from clinic_booking.services.clock import (
    clinic_now,
    day_of_week,
    format_minutes,
    parse_day,
    parse_hhmm,
)
from clinic_booking.services.database import connection
from clinic_booking.services.errors import InvalidTimeFormat
from clinic_booking.services.schedules import (
    ScheduleTemplate,
    blocking_special_date,
    break_windows,
    get_template,
    special_dates_on,
)


def compute_slots(
    start_time: str,
    end_time: str,
    slot_duration: int,
    buffer_time: int = 0,
    breaks: Iterable[tuple[int, int]] = (),
) -> list[str]:
    """Return the ``HH:MM`` slot starts of one working day.

    A slot occupies ``[t, t + slot_duration)`` and must finish by ``end_time``.
    When a candidate slot touches a break, the cursor jumps to the end of that
    break without adding the buffer. Otherwise the next candidate starts
    ``slot_duration + buffer_time`` later.
    """

    start = parse_hhmm(start_time)
    end = parse_hhmm(end_time)
    if slot_duration <= 0 or start >= end:
        return []
    step = slot_duration + max(buffer_time, 0)
    windows = [(b_start, b_end) for b_start, b_end in breaks if b_start < b_end]

    slots: list[str] = []
    cursor = start
    while cursor + slot_duration <= end:
        slot_end = cursor + slot_duration
        hit = [b_end for b_start, b_end in windows if cursor < b_end and b_start < slot_end]
        if hit:
            cursor = max(hit)
            continue
        slots.append(format_minutes(cursor))
        cursor += step
    return slots


def template_breaks(template: ScheduleTemplate) -> list[tuple[int, int]]:
    if template.break_start and template.break_end:
        return [(parse_hhmm(template.break_start), parse_hhmm(template.break_end))]
    return []


def generate_slots_for_template(
    template: ScheduleTemplate, extra_breaks: Iterable[tuple[int, int]] = ()
) -> list[str]:
    if not template.is_active:
        return []
    return compute_slots(
        template.start_time,
        template.end_time,
        template.slot_duration,
        template.buffer_time,
        template_breaks(template) + list(extra_breaks),
    )


def generate_slots(
    doctor_id: str, day: date | str, *, conn: sqlite3.Connection | None = None
) -> list[str]:
    """Ordered slot starts for a doctor on a calendar day."""

    day = parse_day(day)
    with connection(conn) as c:
        template = get_template(doctor_id, day_of_week(day), conn=c)
        if template is None or not template.is_active:
            return []
        if blocking_special_date(doctor_id, day, conn=c) is not None:
            return []
        extra = break_windows(special_dates_on(doctor_id, day, conn=c))
    return generate_slots_for_template(template, extra)


def booked_times(
    doctor_id: str, day: date, *, conn: sqlite3.Connection | None = None
) -> set[str]:
    with connection(conn) as c:
        rows = c.execute(
            """
            SELECT time FROM appointments
            WHERE doctor_id=? AND date=? AND status <> 'CANCELLED'
            """,
            (doctor_id, day.isoformat()),
        ).fetchall()
    booked: set[str] = set()
    for row in rows:
        try:
            booked.add(format_minutes(parse_hhmm(row["time"])))
        except InvalidTimeFormat:
            current_app.logger.warning("Ignoring appointment with bad time %r", row["time"])
    return booked


def open_slots(doctor_id: str, day: date | str, *, now: datetime | None = None) -> list[str]:
    """Generated slots that are neither booked nor already past in clinic time."""

    day = parse_day(day)
    now = now or clinic_now()
    if day < now.date():
        return []
    with connection() as conn:
        generated = generate_slots(doctor_id, day, conn=conn)
        if not generated:
            return []
        taken = booked_times(doctor_id, day, conn=conn)
    cutoff = now.hour * 60 + now.minute if day == now.date() else -1
    return [slot for slot in generated if slot not in taken and parse_hhmm(slot) > cutoff]


def disabled_dates(
    doctor_id: str, start: date | str | None = None, days: int | None = None
) -> list[str]:
    """Dates in ``[start, start + days)`` on which the doctor has no slots at all."""

    start = parse_day(start) if start is not None else clinic_now().date()
    if days is None:
        days = int(current_app.config.get("AVAILABILITY_WINDOW_DAYS", 60))
    disabled: list[str] = []
    with connection() as conn:
        for offset in range(days):
            day = start + timedelta(days=offset)
            if not generate_slots(doctor_id, day, conn=conn):
                disabled.append(day.isoformat())
    return disabled


def next_available_date(
    doctor_id: str,
    start: date | str | None = None,
    days: int | None = None,
    *,
    now: datetime | None = None,
) -> str | None:
    now = now or clinic_now()
    start = parse_day(start) if start is not None else now.date()
    if days is None:
        days = int(current_app.config.get("NEXT_AVAILABLE_SEARCH_DAYS", 30))
    for offset in range(days):
        day = start + timedelta(days=offset)
        if open_slots(doctor_id, day, now=now):
            return day.isoformat()
    return None
