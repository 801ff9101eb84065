"""Decide whether a requested (doctor, date, time) is a bookable slot."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import date

from clinic_booking.services.clock import day_of_week, format_minutes, parse_day, parse_hhmm
from clinic_booking.services.database import connection
from clinic_booking.services.schedules import (
    blocking_special_date,
    break_windows,
    get_template,
    special_dates_on,
)
from clinic_booking.services.slots import generate_slots_for_template, template_breaks


@dataclass(frozen=True)
class Availability:
    available: bool
    reason: str | None = None

    def __bool__(self) -> bool:
        return self.available


def is_available(
    doctor_id: str,
    day: date | str,
    time: str,
    *,
    conn: sqlite3.Connection | None = None,
) -> Availability:
    """Check ``time`` against the doctor's generated slots for ``day``.

    Existing bookings are not considered here; the booking transaction does
    that under its write lock.

    Raises:
        InvalidTimeFormat: ``time`` is not ``HH:MM``.
        InvalidDateFormat: ``day`` is not a calendar date.
    """

    day = parse_day(day)
    with connection(conn) as c:
        template = get_template(doctor_id, day_of_week(day), conn=c)
        if template is None:
            return Availability(False, "not scheduled this day")
        if not template.is_active:
            return Availability(False, "inactive")
        blocker = blocking_special_date(doctor_id, day, conn=c)
        if blocker is not None:
            return Availability(False, f"unavailable: {blocker.name}")
        extra = break_windows(special_dates_on(doctor_id, day, conn=c))

    minutes = parse_hhmm(time)
    start = parse_hhmm(template.start_time)
    end = parse_hhmm(template.end_time)
    if not start <= minutes < end:
        return Availability(False, "outside working hours")

    if format_minutes(minutes) in generate_slots_for_template(template, extra):
        return Availability(True)
    for b_start, b_end in template_breaks(template) + extra:
        if b_start <= minutes < b_end:
            return Availability(False, "inside break")
    return Availability(False, "not a slot start")
