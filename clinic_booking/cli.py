"""Flask CLI commands for migrations, schedule administration and duplicate cleanup."""

from __future__ import annotations

import logging
import sqlite3
import sys
from datetime import datetime, timezone
from pathlib import Path

import click
from alembic import command
from flask import current_app
from flask.cli import AppGroup, with_appcontext

from clinic_booking.services.appointments import ensure_slot_guard
from clinic_booking.services.auto_migrate import alembic_config
from clinic_booking.services.doctors import add_doctor
from clinic_booking.services.duplicates import run_reconciliation
from clinic_booking.services.errors import BookingError, PersistenceError
from clinic_booking.services.schedules import (
    SPECIAL_DATE_TYPES,
    ScheduleTemplate,
    add_special_date,
    delete_special_date,
    upsert_template,
)

DAY_NAMES = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")


def _parse_day_of_week(value: str) -> int:
    text = value.strip().lower()
    if text.isdigit() and 0 <= int(text) <= 6:
        return int(text)
    for index, name in enumerate(DAY_NAMES):
        if text.startswith(name):
            return index
    raise click.BadParameter(f"{value!r} is not a weekday (0=Sunday..6 or a day name)")


def _run_log_handler() -> tuple[logging.Handler, Path]:
    log_dir = Path(current_app.config["DATA_ROOT"]) / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    log_path = log_dir / f"fix-duplicates-{stamp}.log"
    handler = logging.FileHandler(log_path, encoding="utf-8")
    handler.setFormatter(logging.Formatter("[%(asctime)s] %(message)s"))
    return handler, log_path


def register_cli(app) -> None:
    db_group = AppGroup("db")

    @db_group.command("upgrade")
    @with_appcontext
    def upgrade() -> None:
        cfg = alembic_config(current_app)
        if cfg is None:
            raise click.ClickException("alembic.ini or migrations/ not found")
        command.upgrade(cfg, "head")

    app.cli.add_command(db_group)

    @app.cli.command("fix-duplicates")
    @click.option("--dry-run", is_flag=True, default=False, help="Report decisions without deleting.")
    @with_appcontext
    def fix_duplicates(dry_run: bool) -> None:
        logger = current_app.logger
        handler, log_path = _run_log_handler()
        logger.addHandler(handler)
        previous_level = logger.level
        logger.setLevel(logging.INFO)
        try:
            summary = run_reconciliation(dry_run=dry_run)
        except (PersistenceError, sqlite3.Error, OSError) as exc:
            logger.error("Duplicate reconciliation aborted: %s", exc)
            click.echo(f"Error: {exc}", err=True)
            sys.exit(1)
        finally:
            logger.removeHandler(handler)
            handler.close()
            logger.setLevel(previous_level)

        verb = "Would remove" if dry_run else "Removed"
        click.echo("Duplicate cleanup summary:")
        click.echo(f"  - Exact duplicates: {summary.exact}")
        click.echo(f"  - Similar name duplicates: {summary.similar}")
        click.echo(f"  - Overlapping appointments: {summary.overlapping}")
        click.echo(f"{verb} {summary.total} appointment(s) in total.")
        if not dry_run:
            if ensure_slot_guard():
                click.echo("Slot guard index is in place.")
            else:
                click.echo("Slot guard index missing: clashing bookings for different patients remain.")
        click.echo(f"Log written to {log_path}")

    schedule_group = AppGroup("schedule", help="Weekly schedule templates.")

    @schedule_group.command("set")
    @click.argument("doctor_id")
    @click.argument("day")
    @click.option("--start", "start_time", required=True, help="HH:MM")
    @click.option("--end", "end_time", required=True, help="HH:MM")
    @click.option("--slot", "slot_duration", type=int, default=30, show_default=True)
    @click.option("--buffer", "buffer_time", type=int, default=0, show_default=True)
    @click.option("--break-start", default=None)
    @click.option("--break-end", default=None)
    @click.option("--inactive", is_flag=True, default=False)
    @with_appcontext
    def set_schedule(
        doctor_id: str,
        day: str,
        start_time: str,
        end_time: str,
        slot_duration: int,
        buffer_time: int,
        break_start: str | None,
        break_end: str | None,
        inactive: bool,
    ) -> None:
        template = ScheduleTemplate(
            doctor_id=doctor_id,
            day_of_week=_parse_day_of_week(day),
            is_active=not inactive,
            start_time=start_time,
            end_time=end_time,
            slot_duration=slot_duration,
            buffer_time=buffer_time,
            break_start=break_start,
            break_end=break_end,
        )
        try:
            saved = upsert_template(template)
        except BookingError as exc:
            raise click.ClickException(exc.reason) from exc
        click.echo(
            f"Saved {doctor_id} {DAY_NAMES[saved.day_of_week]}: "
            f"{saved.start_time}-{saved.end_time} every {saved.slot_duration}+{saved.buffer_time} min"
        )

    app.cli.add_command(schedule_group)

    special_group = AppGroup("special-date", help="Holidays and doctor unavailability.")

    @special_group.command("add")
    @click.argument("day")
    @click.option("--doctor", "doctor_id", default=None, help="Omit for a clinic-wide date.")
    @click.option(
        "--type",
        "kind",
        type=click.Choice(SPECIAL_DATE_TYPES, case_sensitive=False),
        default="UNAVAILABLE",
        show_default=True,
    )
    @click.option("--name", required=True)
    @click.option("--reason", default=None)
    @click.option("--break-start", default=None)
    @click.option("--break-end", default=None)
    @with_appcontext
    def add_special(
        day: str,
        doctor_id: str | None,
        kind: str,
        name: str,
        reason: str | None,
        break_start: str | None,
        break_end: str | None,
    ) -> None:
        try:
            special = add_special_date(
                day,
                name=name,
                doctor_id=doctor_id,
                type=kind,
                reason=reason,
                break_start=break_start,
                break_end=break_end,
            )
        except BookingError as exc:
            raise click.ClickException(exc.reason) from exc
        scope = special.doctor_id or "all doctors"
        click.echo(f"Added {special.type} on {special.date} for {scope} ({special.id})")

    @special_group.command("remove")
    @click.argument("special_id")
    @with_appcontext
    def remove_special(special_id: str) -> None:
        try:
            delete_special_date(special_id)
        except BookingError as exc:
            raise click.ClickException(exc.reason) from exc
        click.echo(f"Removed special date {special_id}")

    app.cli.add_command(special_group)

    doctor_group = AppGroup("doctor", help="Doctor directory.")

    @doctor_group.command("add")
    @click.argument("doctor_id")
    @click.argument("name")
    @click.option("--speciality", default="General", show_default=True)
    @click.option("--fee", type=int, default=0, show_default=True)
    @with_appcontext
    def add_doctor_cmd(doctor_id: str, name: str, speciality: str, fee: int) -> None:
        doctor = add_doctor(doctor_id, name, speciality=speciality, fee=fee)
        click.echo(f"Saved doctor {doctor.id}: {doctor.name}")

    app.cli.add_command(doctor_group)
