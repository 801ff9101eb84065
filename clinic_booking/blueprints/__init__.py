"""Blueprint registration."""

from __future__ import annotations

from flask import Flask


def register_blueprints(app: Flask) -> None:
    from .appointments.routes import bp as appointments_bp
    from .schedules.routes import bp as schedules_bp

    app.register_blueprint(appointments_bp)
    app.register_blueprint(schedules_bp)
