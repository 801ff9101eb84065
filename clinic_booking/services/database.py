"""Database helpers backed by SQLAlchemy."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from typing import Iterator

from clinic_booking.extensions import db as sa_db
from clinic_booking.services.errors import PersistenceError


def db() -> sqlite3.Connection:
    """Return a raw sqlite3 connection with PRAGMAs applied."""

    try:
        return sa_db.raw_connection()
    except sqlite3.Error as exc:
        raise PersistenceError(f"database unavailable: {exc}") from exc


@contextmanager
def connection(conn: sqlite3.Connection | None = None) -> Iterator[sqlite3.Connection]:
    """Yield ``conn`` when given, otherwise a fresh connection closed on exit."""

    if conn is not None:
        yield conn
        return
    owned = db()
    try:
        yield owned
    finally:
        owned.close()

