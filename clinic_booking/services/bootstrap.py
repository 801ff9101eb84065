"""Bootstrap helper to ensure critical tables exist for first-time runs."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Iterable


def _execute_statements(conn: sqlite3.Connection, statements: Iterable[str]) -> None:
    for stmt in statements:
        conn.execute(stmt)


def ensure_base_tables(db_path: Path) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)
    conn.execute("PRAGMA foreign_keys=ON")
    try:
        _execute_statements(
            conn,
            [
                """
                CREATE TABLE IF NOT EXISTS doctors (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    speciality TEXT,
                    fee INTEGER NOT NULL DEFAULT 0,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL DEFAULT (datetime('now'))
                )
                """,
                """
                CREATE TABLE IF NOT EXISTS doctor_schedules (
                    id TEXT PRIMARY KEY,
                    doctor_id TEXT NOT NULL,
                    day_of_week INTEGER NOT NULL,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    start_time TEXT NOT NULL,
                    end_time TEXT NOT NULL,
                    slot_duration INTEGER NOT NULL DEFAULT 30,
                    buffer_time INTEGER NOT NULL DEFAULT 0,
                    break_start TEXT,
                    break_end TEXT,
                    updated_at TEXT NOT NULL DEFAULT (datetime('now')),
                    CHECK(day_of_week BETWEEN 0 AND 6)
                )
                """,
                """
                CREATE UNIQUE INDEX IF NOT EXISTS idx_doctor_schedules_doctor_day
                ON doctor_schedules(doctor_id, day_of_week)
                """,
                """
                CREATE TABLE IF NOT EXISTS special_dates (
                    id TEXT PRIMARY KEY,
                    date TEXT NOT NULL,
                    doctor_id TEXT,
                    type TEXT NOT NULL DEFAULT 'UNAVAILABLE',
                    name TEXT NOT NULL,
                    reason TEXT,
                    break_start TEXT,
                    break_end TEXT,
                    created_at TEXT NOT NULL DEFAULT (datetime('now'))
                )
                """,
                """
                CREATE INDEX IF NOT EXISTS idx_special_dates_date ON special_dates(date)
                """,
            ],
        )
        _execute_statements(
            conn,
            [
                """
                CREATE TABLE IF NOT EXISTS appointments (
                    id TEXT PRIMARY KEY,
                    doctor_id TEXT NOT NULL,
                    patient_name TEXT NOT NULL,
                    email TEXT,
                    phone TEXT,
                    date TEXT NOT NULL,
                    time TEXT NOT NULL,
                    time_slot TEXT,
                    status TEXT NOT NULL DEFAULT 'SCHEDULED',
                    customer_id TEXT,
                    notes TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    CHECK(status IN ('SCHEDULED','CONFIRMED','COMPLETED','CANCELLED','NO_SHOW'))
                )
                """,
                """
                CREATE INDEX IF NOT EXISTS idx_appointments_doctor_date
                ON appointments(doctor_id, date)
                """,
                """
                CREATE INDEX IF NOT EXISTS idx_appointments_status ON appointments(status)
                """,
                """
                CREATE TABLE IF NOT EXISTS reconciliation_audit (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    pass_name TEXT NOT NULL,
                    group_key TEXT NOT NULL,
                    kept_id TEXT,
                    deleted_ids_json TEXT NOT NULL DEFAULT '[]',
                    reason TEXT NOT NULL,
                    ts TEXT NOT NULL
                )
                """,
            ],
        )
        try:
            conn.execute(
                """
                CREATE UNIQUE INDEX IF NOT EXISTS idx_appointments_active_slot
                ON appointments(doctor_id, date, time) WHERE status <> 'CANCELLED'
                """
            )
        except sqlite3.IntegrityError:
            # Clashing legacy bookings; `flask fix-duplicates` restores the index.
            pass
        conn.commit()
    finally:
        conn.close()
