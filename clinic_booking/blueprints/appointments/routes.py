"""Appointment booking API."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from clinic_booking.blueprints.responses import error_response, internal_error
from clinic_booking.extensions import limiter
from clinic_booking.services.appointments import (
    MAX_PAGE,
    MAX_PAGE_SIZE,
    count_appointments,
    create_appointment,
    get_appointment,
    list_appointments,
    update_appointment,
    update_status,
)
from clinic_booking.services.errors import BookingError, MissingFields

bp = Blueprint("appointments", __name__, url_prefix="/api/appointments")


def _booking_limit() -> str:
    return current_app.config.get("BOOKING_RATE_LIMIT", "30 per minute")


def _int_arg(name: str, default: int) -> int:
    try:
        return int(request.args.get(name, default))
    except (TypeError, ValueError):
        return default


@bp.route("", methods=["POST"])
@limiter.limit(_booking_limit, methods=["POST"])
def create():
    payload = request.get_json(silent=True) or {}
    try:
        appointment = create_appointment(payload)
    except BookingError as exc:
        return error_response(exc)
    except Exception as exc:  # pragma: no cover
        return internal_error("appointments.create", exc)
    return jsonify({"success": True, "appointment": appointment}), 201


@bp.route("/<appt_id>", methods=["PUT"])
def update(appt_id: str):
    payload = request.get_json(silent=True) or {}
    try:
        appointment = update_appointment(appt_id, payload)
    except BookingError as exc:
        return error_response(exc)
    except Exception as exc:  # pragma: no cover
        return internal_error("appointments.update", exc)
    return jsonify({"success": True, "appointment": appointment})


@bp.route("", methods=["PATCH"])
def change_status():
    payload = request.get_json(silent=True) or {}
    appt_id = str(payload.get("appointmentId") or payload.get("appointment_id") or "").strip()
    status = str(payload.get("status") or "").strip()
    missing = [name for name, value in (("appointmentId", appt_id), ("status", status)) if not value]
    try:
        if missing:
            raise MissingFields(missing)
        appointment = update_status(appt_id, status)
    except BookingError as exc:
        return error_response(exc)
    except Exception as exc:  # pragma: no cover
        return internal_error("appointments.status", exc)
    return jsonify({"success": True, "appointment": appointment})


@bp.route("", methods=["GET"])
def index():
    filters = {
        "doctor_id": request.args.get("doctorId"),
        "date": request.args.get("date"),
        "status": request.args.get("status"),
        "start_date": request.args.get("startDate"),
        "end_date": request.args.get("endDate"),
    }
    page = min(max(_int_arg("page", 1), 1), MAX_PAGE)
    page_size = min(max(_int_arg("pageSize", 50), 1), MAX_PAGE_SIZE)
    try:
        items = list_appointments(filters, page=page, page_size=page_size)
        total = count_appointments(filters)
    except BookingError as exc:
        return error_response(exc)
    except Exception as exc:  # pragma: no cover
        return internal_error("appointments.index", exc)
    return jsonify(
        {
            "success": True,
            "appointments": items,
            "page": page,
            "pageSize": page_size,
            "total": total,
        }
    )


@bp.route("/<appt_id>", methods=["GET"])
def show(appt_id: str):
    try:
        appointment = get_appointment(appt_id)
    except BookingError as exc:
        return error_response(exc)
    except Exception as exc:  # pragma: no cover
        return internal_error("appointments.show", exc)
    return jsonify({"success": True, "appointment": appointment})
