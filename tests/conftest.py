import os
import pathlib
import shutil
import sys
import uuid

import pytest

root = pathlib.Path(__file__).resolve().parents[1]
if str(root) not in sys.path:
    sys.path.insert(0, str(root))

from clinic_booking import create_app
from clinic_booking.services.database import db as raw_db

# 2030-01-07 is a Monday (day_of_week 1).
MONDAY = "2030-01-07"
TUESDAY = "2030-01-08"
SUNDAY = "2030-01-06"


@pytest.fixture(scope="session")
def _template_db(tmp_path_factory):
    """Build a fully-migrated DB once per test session.

    Every function-scoped ``app`` fixture copies this file instead of
    running the Alembic migrations again.
    """
    db_path = tmp_path_factory.mktemp("template") / "app.db"
    old_db = os.environ.get("CLINIC_DB_PATH")
    old_key = os.environ.get("CLINIC_SECRET_KEY")
    os.environ["CLINIC_DB_PATH"] = str(db_path)
    os.environ["CLINIC_SECRET_KEY"] = "test-secret"
    try:
        _app = create_app()
        with _app.app_context():
            pass
    finally:
        if old_db is None:
            os.environ.pop("CLINIC_DB_PATH", None)
        else:
            os.environ["CLINIC_DB_PATH"] = old_db
        if old_key is None:
            os.environ.pop("CLINIC_SECRET_KEY", None)
        else:
            os.environ["CLINIC_SECRET_KEY"] = old_key
    return db_path


@pytest.fixture
def app(tmp_path, monkeypatch, _template_db):
    db_path = tmp_path / "app.db"
    shutil.copy2(_template_db, db_path)
    monkeypatch.setenv("CLINIC_DB_PATH", str(db_path))
    monkeypatch.setenv("CLINIC_SECRET_KEY", "test-secret")
    monkeypatch.setenv("CLINIC_AUTO_MIGRATE", "0")  # Already migrated
    monkeypatch.setenv("CLINIC_TIMEZONE", "UTC")
    monkeypatch.setenv("RATELIMIT_ENABLED", "0")
    monkeypatch.delenv("WEBHOOK_URL", raising=False)
    monkeypatch.delenv("CLINIC_DOCTORS", raising=False)
    app = create_app()
    app.config.update(TESTING=True)
    yield app


@pytest.fixture
def ctx(app):
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


def _insert(sql: str, params: tuple) -> None:
    conn = raw_db()
    try:
        conn.execute(sql, params)
        conn.commit()
    finally:
        conn.close()


@pytest.fixture
def add_doctor_row(app):
    def _add(doctor_id="dr-lina", name="Dr. Lina", speciality="Dermatology", fee=300):
        _insert(
            "INSERT INTO doctors(id, name, speciality, fee, is_active) VALUES (?, ?, ?, ?, 1)",
            (doctor_id, name, speciality, fee),
        )
        return doctor_id

    return _add


@pytest.fixture
def add_schedule(app):
    """Insert a weekday template directly, bypassing validation."""

    def _add(
        doctor_id="dr-lina",
        day_of_week=1,
        start="09:00",
        end="12:00",
        slot=30,
        buffer=10,
        break_start=None,
        break_end=None,
        active=True,
    ):
        _insert(
            """
            INSERT INTO doctor_schedules(
                id, doctor_id, day_of_week, is_active, start_time, end_time,
                slot_duration, buffer_time, break_start, break_end
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                str(uuid.uuid4()),
                doctor_id,
                day_of_week,
                1 if active else 0,
                start,
                end,
                slot,
                buffer,
                break_start,
                break_end,
            ),
        )

    return _add


@pytest.fixture
def add_special(app):
    def _add(day, *, doctor_id=None, kind="UNAVAILABLE", name="Closed", break_start=None, break_end=None):
        special_id = str(uuid.uuid4())
        _insert(
            """
            INSERT INTO special_dates(id, date, doctor_id, type, name, break_start, break_end)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (special_id, day, doctor_id, kind, name, break_start, break_end),
        )
        return special_id

    return _add


@pytest.fixture
def add_appointment(app):
    """Insert an appointment row as legacy data would hold it."""

    def _add(
        *,
        patient_name="Jane Roe",
        doctor_id="dr-lina",
        day=MONDAY,
        time="09:00",
        time_slot="09:00 - 09:30",
        phone="0100000000",
        email="jane@example.com",
        status="SCHEDULED",
        created_at="2029-12-01T08:00:00.000000+00:00",
    ):
        appt_id = f"appt-{uuid.uuid4()}"
        _insert(
            """
            INSERT INTO appointments(
                id, doctor_id, patient_name, email, phone, date, time, time_slot,
                status, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                appt_id,
                doctor_id,
                patient_name,
                email,
                phone,
                day,
                time,
                time_slot,
                status,
                created_at,
                created_at,
            ),
        )
        return appt_id

    return _add


@pytest.fixture
def legacy_db(app):
    """Drop the slot guard so clashing rows from older databases can be inserted."""
    conn = raw_db()
    try:
        conn.execute("DROP INDEX IF EXISTS idx_appointments_active_slot")
        conn.commit()
    finally:
        conn.close()
    return app


@pytest.fixture
def booking():
    def _payload(**overrides):
        payload = {
            "patientName": "Jane Roe",
            "email": "jane@example.com",
            "phone": "0100000000",
            "date": MONDAY,
            "time": "09:00",
            "status": "SCHEDULED",
            "doctorId": "dr-lina",
        }
        payload.update(overrides)
        return payload

    return _payload
