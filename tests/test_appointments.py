import sqlite3
import threading

import pytest

from conftest import MONDAY, TUESDAY
from clinic_booking.services import appointments as appointments_service
from clinic_booking.services.appointments import (
    count_grouped_by,
    create_appointment,
    delete_appointment,
    get_appointment,
    list_appointments,
    update_appointment,
    update_status,
)
from clinic_booking.services.errors import (
    InvalidField,
    InvalidStatusTransition,
    MissingFields,
    NotFound,
    PersistenceError,
    ScheduleConflict,
)


@pytest.fixture
def monday(ctx, add_schedule):
    add_schedule(day_of_week=1)
    return ctx


def test_create_fills_slot_label_and_timestamps(monday, booking):
    appt = create_appointment(booking())
    assert appt["status"] == "SCHEDULED"
    assert appt["timeSlot"] == "09:00 - 09:30"
    assert appt["createdAt"] == appt["updatedAt"]
    assert get_appointment(appt["id"])["patientName"] == "Jane Roe"


def test_create_accepts_snake_case_and_normalises_time(monday):
    appt = create_appointment(
        {
            "patient_name": "  Omar Ali ",
            "email": "omar@example.com",
            "phone": "0111 222 333",
            "date": MONDAY,
            "time": "9:40",
            "status": "confirmed",
            "doctor_id": "dr-lina",
        }
    )
    assert appt["patientName"] == "Omar Ali"
    assert appt["time"] == "09:40"
    assert appt["status"] == "CONFIRMED"


def test_missing_fields_are_listed(monday, booking):
    payload = booking()
    del payload["email"]
    payload["phone"] = "  "
    with pytest.raises(MissingFields) as excinfo:
        create_appointment(payload)
    assert excinfo.value.fields == ["email", "phone"]


def test_non_string_field_is_rejected_before_storage(monday, booking):
    with pytest.raises(InvalidField) as excinfo:
        create_appointment(booking(patientName=["Jane", "Roe"]))
    assert excinfo.value.field == "patientName"
    assert list_appointments({}) == []


@pytest.mark.parametrize(
    "overrides,field",
    [
        ({"patientName": "J"}, "patientName"),
        ({"email": "jane.example.com"}, "email"),
        ({"email": "jane@example"}, "email"),
        ({"phone": "0100 000"}, "phone"),
        ({"doctorId": "dr lina!"}, "doctorId"),
    ],
)
def test_malformed_fields_are_rejected(monday, booking, overrides, field):
    with pytest.raises(InvalidField) as excinfo:
        create_appointment(booking(**overrides))
    assert excinfo.value.field == field


def test_update_requires_the_same_fields(monday, booking):
    appt = create_appointment(booking())
    payload = booking()
    del payload["phone"]
    with pytest.raises(MissingFields):
        update_appointment(appt["id"], payload)


def test_unscheduled_day_is_a_conflict(monday, booking):
    with pytest.raises(ScheduleConflict) as excinfo:
        create_appointment(booking(date=TUESDAY))
    assert excinfo.value.reason == "not scheduled this day"


def test_off_cadence_time_is_a_conflict(monday, booking):
    with pytest.raises(ScheduleConflict) as excinfo:
        create_appointment(booking(time="09:15"))
    assert excinfo.value.reason == "not a slot start"


def test_new_booking_cannot_start_completed(monday, booking):
    with pytest.raises(InvalidStatusTransition):
        create_appointment(booking(status="COMPLETED"))


def test_second_booking_for_taken_slot_is_rejected(monday, booking):
    create_appointment(booking())
    with pytest.raises(ScheduleConflict) as excinfo:
        create_appointment(booking(patientName="Someone Else", phone="0222333444"))
    assert excinfo.value.reason == "already booked"


def test_cancelled_booking_releases_slot(monday, booking):
    first = create_appointment(booking())
    update_status(first["id"], "CANCELLED")
    second = create_appointment(booking(patientName="Next Patient"))
    assert second["id"] != first["id"]


def test_concurrent_bookings_for_one_slot(app, add_schedule, booking):
    add_schedule(day_of_week=1)
    attempts = 8
    barrier = threading.Barrier(attempts)
    results: list[str] = []
    lock = threading.Lock()

    def worker(index: int) -> None:
        with app.app_context():
            barrier.wait()
            try:
                create_appointment(booking(patientName=f"Patient {index}"))
                outcome = "ok"
            except ScheduleConflict:
                outcome = "conflict"
        with lock:
            results.append(outcome)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(attempts)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert results.count("ok") == 1
    assert results.count("conflict") == attempts - 1
    with app.app_context():
        assert len(list_appointments({"date": MONDAY})) == 1


def test_update_moves_to_a_free_slot(monday, booking):
    appt = create_appointment(booking())
    moved = update_appointment(appt["id"], booking(time="10:20"))
    assert moved["time"] == "10:20"
    assert moved["timeSlot"] == "10:20 - 10:50"
    assert moved["createdAt"] == appt["createdAt"]


def test_update_in_place_does_not_clash_with_itself(monday, booking):
    appt = create_appointment(booking())
    updated = update_appointment(appt["id"], booking(patientName="Jane Roe-Smith"))
    assert updated["patientName"] == "Jane Roe-Smith"
    assert updated["timeSlot"] == "09:00 - 09:30"


def test_update_into_taken_slot_is_rejected(monday, booking):
    create_appointment(booking(time="09:40", patientName="Early Bird", phone="0333444555"))
    appt = create_appointment(booking())
    with pytest.raises(ScheduleConflict):
        update_appointment(appt["id"], booking(time="09:40"))
    assert get_appointment(appt["id"])["time"] == "09:00"


def test_update_unknown_appointment(monday, booking):
    with pytest.raises(NotFound):
        update_appointment("missing", booking())


def test_update_checks_status_graph(monday, booking):
    appt = create_appointment(booking())
    with pytest.raises(InvalidStatusTransition):
        update_appointment(appt["id"], booking(status="COMPLETED"))


def test_status_walks_the_allowed_graph(monday, booking):
    appt = create_appointment(booking())
    assert update_status(appt["id"], "CONFIRMED")["status"] == "CONFIRMED"
    assert update_status(appt["id"], "completed")["status"] == "COMPLETED"


@pytest.mark.parametrize(
    "path,attempt",
    [
        ([], "COMPLETED"),
        ([], "NO_SHOW"),
        (["CONFIRMED"], "SCHEDULED"),
        (["CONFIRMED", "COMPLETED"], "CONFIRMED"),
        (["CANCELLED"], "SCHEDULED"),
        (["CONFIRMED", "NO_SHOW"], "COMPLETED"),
    ],
)
def test_disallowed_transitions_leave_status_unchanged(monday, booking, path, attempt):
    appt = create_appointment(booking())
    for status in path:
        update_status(appt["id"], status)
    before = get_appointment(appt["id"])["status"]
    with pytest.raises(InvalidStatusTransition):
        update_status(appt["id"], attempt)
    assert get_appointment(appt["id"])["status"] == before


def test_notification_failure_does_not_undo_booking(monday, booking, monkeypatch):
    def broken_notify(event, payload):
        raise RuntimeError("sink down")

    monkeypatch.setattr(appointments_service, "notify", broken_notify)
    appt = create_appointment(booking())
    assert get_appointment(appt["id"])["id"] == appt["id"]


def test_booking_notifies_with_doctor_details(monday, booking, add_doctor_row, monkeypatch):
    add_doctor_row()
    sent = []
    monkeypatch.setattr(appointments_service, "notify", lambda event, payload: sent.append((event, payload)))
    appt = create_appointment(booking())
    assert len(sent) == 1
    event, payload = sent[0]
    assert event == "booking.created"
    assert payload["id"] == appt["id"]
    assert payload["doctorName"] == "Dr. Lina"
    assert payload["doctorFee"] == 300


def test_storage_failure_is_a_persistence_error(monday, booking, monkeypatch):
    def locked(*args, **kwargs):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(appointments_service, "is_available", locked)
    with pytest.raises(PersistenceError):
        create_appointment(booking())


def test_list_filters_and_pages(monday, booking):
    for time in ("09:00", "09:40", "10:20", "11:00"):
        create_appointment(booking(time=time, patientName=f"P {time}"))
    first_page = list_appointments({"doctor_id": "dr-lina", "date": MONDAY}, page=1, page_size=3)
    second_page = list_appointments({"doctor_id": "dr-lina", "date": MONDAY}, page=2, page_size=3)
    assert [a["time"] for a in first_page] == ["09:00", "09:40", "10:20"]
    assert [a["time"] for a in second_page] == ["11:00"]
    assert list_appointments({"status": "CONFIRMED"}) == []
    assert len(list_appointments({"start_date": MONDAY, "end_date": MONDAY})) == 4


def test_count_grouped_by_reports_only_repeats(ctx, legacy_db, add_appointment):
    add_appointment(patient_name="A")
    add_appointment(patient_name="A", created_at="2029-12-01T09:00:00.000000+00:00")
    add_appointment(patient_name="B", time="10:00")
    groups = count_grouped_by(["patient_name", "time"])
    assert groups == [{"key": {"patient_name": "A", "time": "09:00"}, "count": 2}]


def test_delete_unknown_appointment(ctx):
    with pytest.raises(NotFound):
        delete_appointment("missing")
