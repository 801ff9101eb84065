"""Doctor directory, schedules and slot availability API."""

from __future__ import annotations

from flask import Blueprint, jsonify, request

from clinic_booking.blueprints.responses import error_response, internal_error
from clinic_booking.services.clock import clinic_today, parse_day
from clinic_booking.services.doctors import get_doctor, list_doctors
from clinic_booking.services.errors import BookingError, MissingFields
from clinic_booking.services.schedules import get_special_dates, get_weekly_template
from clinic_booking.services.slots import disabled_dates, next_available_date, open_slots

bp = Blueprint("schedules", __name__, url_prefix="/api")


@bp.route("/available-slots", methods=["GET"])
def available_slots():
    """Open slots for ``date``; without a date, the disabled dates ahead."""

    doctor_id = (request.args.get("doctorId") or "").strip()
    day = (request.args.get("date") or "").strip()
    try:
        if not doctor_id:
            raise MissingFields(["doctorId"])
        if day:
            slots = open_slots(doctor_id, parse_day(day))
            return jsonify({"success": True, "doctorId": doctor_id, "date": day, "slots": slots})
        start = clinic_today()
        return jsonify(
            {
                "success": True,
                "doctorId": doctor_id,
                "startDate": start.isoformat(),
                "disabledDates": disabled_dates(doctor_id, start),
            }
        )
    except BookingError as exc:
        return error_response(exc)
    except Exception as exc:  # pragma: no cover
        return internal_error("schedules.available_slots", exc)


@bp.route("/doctors", methods=["GET"])
def doctors():
    try:
        listing = [doc.to_dict() for doc in list_doctors()]
    except BookingError as exc:
        return error_response(exc)
    except Exception as exc:  # pragma: no cover
        return internal_error("schedules.doctors", exc)
    return jsonify({"success": True, "doctors": listing})


@bp.route("/doctors/<doctor_id>/schedule", methods=["GET"])
def doctor_schedule(doctor_id: str):
    try:
        doctor = get_doctor(doctor_id)
        weekly = [tpl.to_dict() for tpl in get_weekly_template(doctor_id)]
        specials = [sd.to_dict() for sd in get_special_dates(doctor_id)]
    except BookingError as exc:
        return error_response(exc)
    except Exception as exc:  # pragma: no cover
        return internal_error("schedules.doctor_schedule", exc)
    return jsonify(
        {
            "success": True,
            "doctor": doctor.to_dict(),
            "weeklyTemplate": weekly,
            "specialDates": specials,
        }
    )


@bp.route("/doctors/<doctor_id>/next-available", methods=["GET"])
def doctor_next_available(doctor_id: str):
    try:
        start = request.args.get("from")
        found = next_available_date(doctor_id, parse_day(start) if start else None)
    except BookingError as exc:
        return error_response(exc)
    except Exception as exc:  # pragma: no cover
        return internal_error("schedules.next_available", exc)
    return jsonify({"success": True, "doctorId": doctor_id, "nextAvailableDate": found})
