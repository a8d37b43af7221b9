# backend/lotto_recon/routes/readings.py
"""
Ticket reading API routes.

A reading that trips a data check is still a success (201); the anomalies
raised against it come back in the same response.
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_identity, require_store_scope
from ..extensions import db
from ..services import pack_service, reading_service
from ..services.concurrency import commit_or_conflict
from ..time_utils import parse_iso_datetime
from ..validation import ValidationError
from .errors import DOMAIN_ERRORS, json_error, route_date


readings_bp = Blueprint("readings", __name__, url_prefix="/api/lottery")


@readings_bp.route("/stores/<int:store_id>/readings", methods=["POST"])
@require_identity
@require_store_scope
def record_reading(store_id: int):
    """
    Record a ticket-count observation.

    Request body:
    {
        "pack_number": str,
        "box_label": str,
        "ticket_number": int,
        "source": str,          // "manual" (default), "scan" or "ocr"
        "device_id": str (optional),
        "note": str (optional),
        "captured_at": ISO-8601 (optional, defaults to now)
    }

    Returns:
        201: Reading recorded (anomalies listed, possibly empty)
        400: Invalid request
        404: Store or pack not found
        409: Pack closed, or concurrent reading for the same pack
        422: Ticket number outside the pack range (nothing recorded)
    """
    data = request.get_json(silent=True) or {}

    try:
        try:
            captured_at = parse_iso_datetime(data.get("captured_at"))
        except (AttributeError, TypeError, ValueError):
            raise ValidationError("captured_at must be an ISO-8601 datetime")

        result = reading_service.record_reading(
            store_id,
            data.get("pack_number"),
            data.get("box_label"),
            data.get("ticket_number"),
            data.get("source", reading_service.SOURCE_MANUAL),
            g.user_id,
            device_id=data.get("device_id"),
            note=data.get("note"),
            captured_at=captured_at,
        )
        payload = result.to_dict()

        commit_or_conflict(description="record reading")

        return jsonify(payload), 201

    except DOMAIN_ERRORS as e:
        db.session.rollback()
        return json_error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to record reading")
        return jsonify({"error": "Internal server error"}), 500


@readings_bp.route("/stores/<int:store_id>/readings", methods=["GET"])
@require_identity
@require_store_scope
def list_readings(store_id: int):
    """
    List readings newest first.

    Query params:
        date: business date (YYYY-MM-DD)
        pack_number: restrict to one pack
    """
    try:
        pack_service.get_store(store_id)
        business_date = route_date(request.args["date"]) if request.args.get("date") else None

        pack_id = None
        if request.args.get("pack_number"):
            pack_id = pack_service.get_pack(store_id, request.args["pack_number"]).id

        readings = reading_service.list_readings(store_id, business_date=business_date, pack_id=pack_id)
        return jsonify({"readings": [r.to_dict() for r in readings], "count": len(readings)}), 200

    except DOMAIN_ERRORS as e:
        return json_error(e)
