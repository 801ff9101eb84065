import pytest

from conftest import MONDAY, SUNDAY
from clinic_booking.services.availability import is_available
from clinic_booking.services.clock import format_minutes, parse_day
from clinic_booking.services.errors import InvalidDateFormat, InvalidTimeFormat, ScheduleConflict
from clinic_booking.services.slots import generate_slots


def test_every_generated_slot_is_available_and_nothing_else(ctx, add_schedule):
    add_schedule(day_of_week=1, break_start="10:00", break_end="10:30")
    slots = set(generate_slots("dr-lina", MONDAY))
    for minutes in range(7 * 60, 13 * 60, 5):
        time = format_minutes(minutes)
        assert is_available("dr-lina", MONDAY, time).available == (time in slots), time


def test_day_without_template(ctx, add_schedule):
    add_schedule(day_of_week=1)
    result = is_available("dr-lina", SUNDAY, "09:00")
    assert not result.available
    assert result.reason == "not scheduled this day"


def test_inactive_day(ctx, add_schedule):
    add_schedule(day_of_week=1, active=False)
    result = is_available("dr-lina", MONDAY, "09:00")
    assert result.reason == "inactive"
    assert not result


def test_blocking_special_date_names_the_closure(ctx, add_schedule, add_special):
    add_schedule(day_of_week=1)
    add_special(MONDAY, kind="HOLIDAY", name="Founders Day")
    result = is_available("dr-lina", MONDAY, "09:00")
    assert result.reason == "unavailable: Founders Day"


@pytest.mark.parametrize(
    "time,reason",
    [
        ("08:30", "outside working hours"),
        ("12:00", "outside working hours"),
        ("10:10", "inside break"),
        ("09:10", "not a slot start"),
    ],
)
def test_rejection_reasons(ctx, add_schedule, time, reason):
    add_schedule(day_of_week=1, break_start="10:00", break_end="10:30")
    result = is_available("dr-lina", MONDAY, time)
    assert not result.available
    assert result.reason == reason


def test_single_digit_hour_is_accepted(ctx, add_schedule):
    add_schedule(day_of_week=1)
    assert is_available("dr-lina", MONDAY, "9:00").available


@pytest.mark.parametrize("bad", ["9am", "25:00", "09:60", "", "0900"])
def test_malformed_time_raises(ctx, add_schedule, bad):
    add_schedule(day_of_week=1)
    with pytest.raises(InvalidTimeFormat) as excinfo:
        is_available("dr-lina", MONDAY, bad)
    assert isinstance(excinfo.value, ScheduleConflict)
    assert excinfo.value.code == "invalid_time"


@pytest.mark.parametrize("good", [MONDAY, " 2030-01-07 ", "2030-01-07T10:00:00Z", "2030-01-07 23:59:00+05:30"])
def test_day_accepts_date_or_full_timestamp(good):
    assert parse_day(good).isoformat() == MONDAY


@pytest.mark.parametrize("bad", ["2030-01-07garbage", "2030-01-07T99:99", "20300107", "2030-1-7", "07/01/2030", ""])
def test_malformed_day_raises(bad):
    with pytest.raises(InvalidDateFormat) as excinfo:
        parse_day(bad)
    assert excinfo.value.code == "invalid_date"


def test_trailing_garbage_after_date_is_not_available(ctx, add_schedule):
    add_schedule(day_of_week=1)
    with pytest.raises(InvalidDateFormat):
        is_available("dr-lina", "2030-01-07garbage", "09:00")
