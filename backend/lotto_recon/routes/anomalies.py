# backend/lotto_recon/routes/anomalies.py
"""
Anomaly review API routes.

Resolving needs a note; acknowledging does not. Both are one-way.
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_identity, require_store_scope
from ..extensions import db
from ..services import anomaly_service, pack_service
from ..services.concurrency import commit_or_conflict
from ..validation import coerce_int
from .errors import DOMAIN_ERRORS, json_error, route_date


anomalies_bp = Blueprint("anomalies", __name__, url_prefix="/api/lottery")


def _check_scope(anomaly):
    """403 response if the caller is scoped to a different store, else None."""
    if g.store_id is not None and anomaly.store_id != g.store_id:
        return jsonify({"error": "Access denied for this store"}), 403
    return None


@anomalies_bp.route("/stores/<int:store_id>/anomalies", methods=["GET"])
@require_identity
@require_store_scope
def list_anomalies(store_id: int):
    """
    List anomalies for a store.

    Query params:
        status, type, severity: exact filters
        date_from, date_to: business date range (YYYY-MM-DD, inclusive)
        pack_number: restrict to one pack
        limit: max rows (default 500)
    """
    try:
        pack_service.get_store(store_id)
        args = request.args

        pack_id = None
        if args.get("pack_number"):
            pack_id = pack_service.get_pack(store_id, args["pack_number"]).id

        anomalies = anomaly_service.list_anomalies(
            store_id,
            status=args.get("status"),
            anomaly_type=args.get("type"),
            severity=args.get("severity"),
            date_from=route_date(args["date_from"]) if args.get("date_from") else None,
            date_to=route_date(args["date_to"]) if args.get("date_to") else None,
            pack_id=pack_id,
            limit=coerce_int(args.get("limit", 500), "limit", minimum=1, maximum=5000),
        )
        return jsonify({"anomalies": [a.to_dict() for a in anomalies], "count": len(anomalies)}), 200

    except DOMAIN_ERRORS as e:
        return json_error(e)


@anomalies_bp.route("/anomalies/<int:anomaly_id>/resolve", methods=["POST"])
@require_identity
def resolve_anomaly(anomaly_id: int):
    """
    Resolve an open anomaly.

    Request body:
    {
        "note": str   // required, explains the resolution
    }

    Returns:
        200: Anomaly resolved
        400: Missing note
        404: Anomaly not found
        409: Anomaly already acknowledged or resolved
    """
    data = request.get_json(silent=True) or {}

    try:
        denied = _check_scope(anomaly_service.get_anomaly(anomaly_id))
        if denied:
            return denied

        anomaly = anomaly_service.resolve_anomaly(anomaly_id, data.get("note"), g.user_id)
        payload = anomaly.to_dict()

        commit_or_conflict(description="resolve anomaly")

        return jsonify({"anomaly": payload}), 200

    except DOMAIN_ERRORS as e:
        db.session.rollback()
        return json_error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to resolve anomaly")
        return jsonify({"error": "Internal server error"}), 500


@anomalies_bp.route("/anomalies/<int:anomaly_id>/acknowledge", methods=["POST"])
@require_identity
def acknowledge_anomaly(anomaly_id: int):
    """
    Acknowledge an open anomaly.

    Returns:
        200: Anomaly acknowledged
        404: Anomaly not found
        409: Anomaly already acknowledged or resolved
    """
    try:
        denied = _check_scope(anomaly_service.get_anomaly(anomaly_id))
        if denied:
            return denied

        anomaly = anomaly_service.acknowledge_anomaly(anomaly_id, g.user_id)
        payload = anomaly.to_dict()

        commit_or_conflict(description="acknowledge anomaly")

        return jsonify({"anomaly": payload}), 200

    except DOMAIN_ERRORS as e:
        db.session.rollback()
        return json_error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to acknowledge anomaly")
        return jsonify({"error": "Internal server error"}), 500
