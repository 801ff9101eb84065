"""Application extensions: the booking database engine and the rate limiter."""

from __future__ import annotations

import os
import sqlite3
from typing import Any, Callable

from flask import Flask
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import scoped_session, sessionmaker


class BookingDatabase:
    """SQLite engine shared by the raw-connection services and the audit log.

    Every pooled connection gets WAL journaling, a busy timeout and foreign
    keys, so concurrent ``BEGIN IMMEDIATE`` writers queue instead of failing.
    """

    def __init__(self) -> None:
        self._engine: Engine | None = None
        self._session_factory: Callable[[], Any] | None = None

    def init_app(self, app: Flask) -> None:
        uri = app.config["SQLALCHEMY_DATABASE_URI"]
        engine_options = app.config.get("SQLALCHEMY_ENGINE_OPTIONS", {})
        busy_timeout = int(app.config.get("SQLITE_BUSY_TIMEOUT_MS", 5000))
        self._engine = create_engine(uri, future=True, **engine_options)
        app.extensions["booking_db"] = self

        @event.listens_for(self._engine, "connect")
        def _configure_sqlite(dbapi_connection, connection_record) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute(f"PRAGMA busy_timeout={busy_timeout}")
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        self._session_factory = scoped_session(
            sessionmaker(bind=self._engine, autoflush=False, future=True)
        )

        @app.teardown_appcontext
        def remove_session(exception: BaseException | None) -> None:
            if self._session_factory:
                self._session_factory.remove()

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("booking database is not initialised")
        return self._engine

    def session(self):
        if self._session_factory is None:
            raise RuntimeError("booking database session factory is not initialised")
        return self._session_factory()

    def raw_connection(self) -> sqlite3.Connection:
        """Pooled DB-API connection returning ``sqlite3.Row`` rows; close it to return it."""
        raw = self.engine.raw_connection()
        driver_conn = getattr(raw, "driver_connection", None) or raw.dbapi_connection
        driver_conn.row_factory = sqlite3.Row
        return raw


db = BookingDatabase()
# Only the booking endpoint carries a limit; reads stay unthrottled.
limiter = Limiter(
    get_remote_address,
    default_limits=[],
    storage_uri=os.getenv("RATELIMIT_STORAGE_URI", "memory://"),
)


def init_extensions(app: Flask) -> None:
    db.init_app(app)
    limiter.init_app(app)
