"""Doctor directory: the ``doctors`` table, with a config-based fallback."""

from __future__ import annotations

import sqlite3
from dataclasses import asdict, dataclass

from flask import current_app

from clinic_booking.services.data_source import DataSource
from clinic_booking.services.database import connection
from clinic_booking.services.errors import NotFound, PersistenceError


@dataclass(frozen=True)
class Doctor:
    id: str
    name: str
    speciality: str = "General"
    fee: int = 0
    is_active: bool = True

    def to_dict(self) -> dict[str, object]:
        return asdict(self)


def slugify(label: str) -> str:
    keep = []
    for ch in label.lower():
        if ch.isalnum():
            keep.append(ch)
        elif ch in {" ", "-", "_"}:
            keep.append("-")
    slug = "".join(keep).strip("-")
    return slug or "doctor"


def _row_to_doctor(row: sqlite3.Row) -> Doctor:
    return Doctor(
        id=row["id"],
        name=row["name"],
        speciality=row["speciality"] or "General",
        fee=int(row["fee"] or 0),
        is_active=bool(row["is_active"]),
    )


class TableDirectory:
    """Doctors stored in the database."""

    def list(self) -> list[Doctor]:
        with connection() as conn:
            rows = conn.execute(
                "SELECT * FROM doctors WHERE is_active=1 ORDER BY name COLLATE NOCASE"
            ).fetchall()
        return [_row_to_doctor(row) for row in rows]

    def get(self, doctor_id: str) -> Doctor | None:
        with connection() as conn:
            row = conn.execute("SELECT * FROM doctors WHERE id=?", (doctor_id,)).fetchone()
        return _row_to_doctor(row) if row else None


class ConfigDirectory:
    """Doctors named in ``FALLBACK_DOCTORS``."""

    def list(self) -> list[Doctor]:
        names = current_app.config.get("FALLBACK_DOCTORS") or ["On Call"]
        return [Doctor(id=slugify(name), name=name) for name in names]

    def get(self, doctor_id: str) -> Doctor | None:
        return next((doc for doc in self.list() if doc.id == doctor_id), None)


def _table_has_doctors() -> bool:
    try:
        with connection() as conn:
            return conn.execute("SELECT 1 FROM doctors LIMIT 1").fetchone() is not None
    except (sqlite3.Error, PersistenceError):
        return False


def directory() -> TableDirectory | ConfigDirectory:
    source = DataSource(
        primary=TableDirectory(),
        fallback=ConfigDirectory(),
        health_check=_table_has_doctors,
        name="doctor directory",
    )
    return source.resolve()


def list_doctors() -> list[Doctor]:
    return directory().list()


def get_doctor(doctor_id: str) -> Doctor:
    doctor = directory().get(doctor_id)
    if doctor is None:
        raise NotFound(f"doctor {doctor_id} not found")
    return doctor


def add_doctor(
    doctor_id: str,
    name: str,
    *,
    speciality: str = "General",
    fee: int = 0,
) -> Doctor:
    doctor = Doctor(id=doctor_id or slugify(name), name=name, speciality=speciality, fee=fee)
    with connection() as conn:
        conn.execute(
            """
            INSERT INTO doctors(id, name, speciality, fee, is_active)
            VALUES (?, ?, ?, ?, 1)
            ON CONFLICT(id) DO UPDATE SET
                name=excluded.name, speciality=excluded.speciality, fee=excluded.fee, is_active=1
            """,
            (doctor.id, doctor.name, doctor.speciality, doctor.fee),
        )
        conn.commit()
    return doctor
