"""Clinic booking package exposing the Flask application factory."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from flask import Flask, jsonify

from .blueprints import register_blueprints
from .blueprints.responses import error_response
from .extensions import init_extensions
from .services.auto_migrate import auto_upgrade
from .services.bootstrap import ensure_base_tables
from .services.errors import BookingError
from .cli import register_cli

APP_HOST = "127.0.0.1"
APP_PORT = 8080


def _data_root(base_dir: Path, override: Path | None = None) -> Path:
    root = override if override else base_dir / "data"
    root.mkdir(parents=True, exist_ok=True)
    for sub in ("logs", "backups"):
        (root / sub).mkdir(parents=True, exist_ok=True)
    return root


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


def create_app() -> Flask:
    repo_root = Path(__file__).resolve().parent.parent
    db_override = os.getenv("CLINIC_DB_PATH")
    data_root = _data_root(repo_root, Path(db_override).parent if db_override else None)
    db_path = Path(db_override) if db_override else data_root / "app.db"

    app = Flask(__name__)

    secret_key = os.getenv("CLINIC_SECRET_KEY")
    if not secret_key:
        secret_key = os.urandom(32)

    doctor_list = [
        doc.strip()
        for doc in os.getenv("CLINIC_DOCTORS", "Dr. Lina,Dr. Omar").split(",")
        if doc.strip()
    ]
    if not doctor_list:
        doctor_list = ["On Call"]

    app.config.update(
        SECRET_KEY=secret_key,
        JSON_SORT_KEYS=False,
        SQLALCHEMY_DATABASE_URI=f"sqlite:///{db_path}",
        SQLALCHEMY_ENGINE_OPTIONS={"connect_args": {"check_same_thread": False}},
        SQLITE_BUSY_TIMEOUT_MS=_env_int("SQLITE_BUSY_TIMEOUT_MS", 5000),
        RATELIMIT_STORAGE_URI=os.getenv("RATELIMIT_STORAGE_URI", "memory://"),
        RATELIMIT_ENABLED=os.getenv("RATELIMIT_ENABLED", "1") == "1",
        DATA_ROOT=str(data_root),
        CLINIC_DB=str(db_path),
        CLINIC_TIMEZONE=os.getenv("CLINIC_TIMEZONE", "Asia/Kolkata"),
        FALLBACK_DOCTORS=doctor_list,
        WEBHOOK_URL=os.getenv("WEBHOOK_URL", ""),
        WEBHOOK_TIMEOUT_SECONDS=_env_float("WEBHOOK_TIMEOUT_SECONDS", 5.0),
        WEBHOOK_MAX_RETRIES=_env_int("WEBHOOK_MAX_RETRIES", 3),
        WEBHOOK_RETRY_DELAY_SECONDS=_env_float("WEBHOOK_RETRY_DELAY_SECONDS", 1.0),
        BOOKING_RATE_LIMIT=os.getenv("BOOKING_RATE_LIMIT", "30 per minute"),
        AVAILABILITY_WINDOW_DAYS=_env_int("AVAILABILITY_WINDOW_DAYS", 60),
        NEXT_AVAILABLE_SEARCH_DAYS=_env_int("NEXT_AVAILABLE_SEARCH_DAYS", 30),
    )

    level = logging.getLevelName(os.getenv("CLINIC_LOG_LEVEL", "INFO").upper())
    app.logger.setLevel(level if isinstance(level, int) else logging.INFO)

    init_extensions(app)
    register_blueprints(app)
    auto_upgrade(app)
    ensure_base_tables(Path(app.config["CLINIC_DB"]))
    register_cli(app)

    @app.errorhandler(BookingError)
    def handle_booking_error(exc: BookingError):
        return error_response(exc)

    @app.errorhandler(404)
    def handle_not_found(e):
        return jsonify({"success": False, "error": "Not found", "code": "not_found"}), 404

    @app.errorhandler(405)
    def handle_method_not_allowed(e):
        return jsonify({"success": False, "error": "Method not allowed", "code": "method_not_allowed"}), 405

    @app.errorhandler(429)
    def handle_rate_limited(e):
        return (
            jsonify({"success": False, "error": f"Too many requests: {e.description}", "code": "rate_limited"}),
            429,
        )

    return app


__all__ = ["create_app", "APP_HOST", "APP_PORT"]
