from datetime import datetime

import pytest

from conftest import MONDAY, SUNDAY, TUESDAY
from clinic_booking.services.clock import parse_hhmm
from clinic_booking.services.slots import (
    compute_slots,
    disabled_dates,
    generate_slots,
    next_available_date,
    open_slots,
)


def test_morning_template_without_break():
    assert compute_slots("09:00", "12:00", 30, 10) == ["09:00", "09:40", "10:20", "11:00"]


def test_break_pushes_cursor_to_break_end():
    slots = compute_slots("09:00", "12:00", 30, 10, [(parse_hhmm("10:00"), parse_hhmm("10:30"))])
    assert slots == ["09:00", "10:30", "11:10"]


@pytest.mark.parametrize(
    "start,end,duration",
    [("09:00", "12:00", 0), ("09:00", "12:00", -15), ("12:00", "12:00", 30), ("13:00", "09:00", 30)],
)
def test_degenerate_templates_yield_nothing(start, end, duration):
    assert compute_slots(start, end, duration, 5) == []


@pytest.mark.parametrize(
    "start,end,duration,buffer,breaks",
    [
        ("08:00", "17:00", 20, 5, [("12:00", "13:00")]),
        ("09:30", "14:15", 45, 0, [("11:00", "11:20")]),
        ("07:00", "19:00", 15, 15, [("10:00", "10:45"), ("15:00", "15:30")]),
    ],
)
def test_slots_respect_breaks_and_cadence(start, end, duration, buffer, breaks):
    windows = [(parse_hhmm(a), parse_hhmm(b)) for a, b in breaks]
    slots = [parse_hhmm(s) for s in compute_slots(start, end, duration, buffer, windows)]
    assert slots == sorted(slots)
    for slot in slots:
        assert slot + duration <= parse_hhmm(end)
        for b_start, b_end in windows:
            assert not (slot < b_end and b_start < slot + duration)
    for previous, current in zip(slots, slots[1:]):
        crossed_break = any(previous < b_end <= current for _, b_end in windows)
        if not crossed_break:
            assert current - previous == duration + buffer


def test_generate_slots_uses_weekday_template(ctx, add_schedule):
    add_schedule(day_of_week=1)
    assert generate_slots("dr-lina", MONDAY) == ["09:00", "09:40", "10:20", "11:00"]
    assert generate_slots("dr-lina", TUESDAY) == []
    assert generate_slots("dr-omar", MONDAY) == []


def test_generate_slots_is_deterministic(ctx, add_schedule):
    add_schedule(day_of_week=1, break_start="10:00", break_end="10:30")
    first = generate_slots("dr-lina", MONDAY)
    assert first == ["09:00", "10:30", "11:10"]
    assert generate_slots("dr-lina", MONDAY) == first


def test_inactive_template_yields_nothing(ctx, add_schedule):
    add_schedule(day_of_week=1, active=False)
    assert generate_slots("dr-lina", MONDAY) == []


def test_clinic_holiday_blocks_every_doctor(ctx, add_schedule, add_special):
    add_schedule(doctor_id="dr-lina", day_of_week=1)
    add_schedule(doctor_id="dr-omar", day_of_week=1)
    add_special(MONDAY, kind="HOLIDAY", name="New Year")
    assert generate_slots("dr-lina", MONDAY) == []
    assert generate_slots("dr-omar", MONDAY) == []


def test_doctor_leave_blocks_only_that_doctor(ctx, add_schedule, add_special):
    add_schedule(doctor_id="dr-lina", day_of_week=1)
    add_schedule(doctor_id="dr-omar", day_of_week=1)
    add_special(MONDAY, doctor_id="dr-lina", kind="UNAVAILABLE", name="Conference")
    assert generate_slots("dr-lina", MONDAY) == []
    assert generate_slots("dr-omar", MONDAY) == ["09:00", "09:40", "10:20", "11:00"]


def test_doctor_break_date_adds_break_window(ctx, add_schedule, add_special):
    add_schedule(day_of_week=1)
    add_special(MONDAY, doctor_id="dr-lina", kind="BREAK", name="Staff meeting", break_start="10:00", break_end="10:30")
    assert generate_slots("dr-lina", MONDAY) == ["09:00", "10:30", "11:10"]


def test_open_slots_hide_booked_and_past_times(ctx, add_schedule, add_appointment):
    add_schedule(day_of_week=1)
    add_appointment(time="09:40")
    add_appointment(time="10:20", patient_name="Cancelled Patient", status="CANCELLED")
    before = datetime(2030, 1, 1, 8, 0)
    assert open_slots("dr-lina", MONDAY, now=before) == ["09:00", "10:20", "11:00"]

    same_day = datetime(2030, 1, 7, 10, 20)
    assert open_slots("dr-lina", MONDAY, now=same_day) == ["11:00"]

    after = datetime(2030, 1, 8, 8, 0)
    assert open_slots("dr-lina", MONDAY, now=after) == []


def test_disabled_dates_cover_unscheduled_and_blocked_days(ctx, add_schedule, add_special):
    add_schedule(day_of_week=1)
    add_schedule(day_of_week=2)
    add_special(TUESDAY, name="Clinic closed")
    disabled = disabled_dates("dr-lina", SUNDAY, 7)
    assert disabled == [
        "2030-01-06",
        "2030-01-08",
        "2030-01-09",
        "2030-01-10",
        "2030-01-11",
        "2030-01-12",
    ]


def test_next_available_date_skips_full_days(ctx, add_schedule, add_appointment):
    add_schedule(day_of_week=1, start="09:00", end="09:30", slot=30, buffer=0)
    add_appointment(time="09:00")
    now = datetime(2030, 1, 1, 8, 0)
    assert next_available_date("dr-lina", MONDAY, 10, now=now) == "2030-01-14"
    assert next_available_date("dr-lina", MONDAY, 3, now=now) is None
