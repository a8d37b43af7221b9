# backend/lotto_recon/routes/dayclose.py
"""
Day-close API routes: draw entry, preview, and the General Ledger post.

The preview is advisory. The post recomputes the verdict server-side and
refuses with 409 (listing the blocking anomalies) regardless of what a
client previewed.
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_identity, require_store_scope
from ..extensions import db
from ..services import dayclose_service, pack_service, posting_service
from ..services.concurrency import commit_or_conflict
from .errors import DOMAIN_ERRORS, json_error, route_date


dayclose_bp = Blueprint("dayclose", __name__, url_prefix="/api/lottery")


@dayclose_bp.route("/stores/<int:store_id>/draw-days/<day>", methods=["PUT"])
@require_identity
@require_store_scope
def save_draw_day(store_id: int, day: str):
    """
    Create or replace the draw/online totals for a date.

    Request body:
    {
        "total_sales_cents": int,
        "total_cashed_cents": int (optional),
        "adjustments_cents": int (optional, may be negative),
        "commission_source": "manual" | "statement" | "rate" (optional),
        "commission_amount_cents": int (optional; omit to use the draw rate),
        "notes": str (optional)
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        draw_day = dayclose_service.save_draw_day(
            store_id,
            route_date(day),
            total_sales_cents=data.get("total_sales_cents"),
            total_cashed_cents=data.get("total_cashed_cents", 0),
            adjustments_cents=data.get("adjustments_cents", 0),
            commission_source=data.get("commission_source"),
            commission_amount_cents=data.get("commission_amount_cents"),
            notes=data.get("notes"),
            user_id=g.user_id,
        )
        payload = draw_day.to_dict()

        commit_or_conflict(description="save draw day")

        return jsonify({"draw_day": payload}), 200

    except DOMAIN_ERRORS as e:
        db.session.rollback()
        return json_error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to save draw day")
        return jsonify({"error": "Internal server error"}), 500


@dayclose_bp.route("/stores/<int:store_id>/draw-days/<day>", methods=["GET"])
@require_identity
@require_store_scope
def get_draw_day(store_id: int, day: str):
    try:
        pack_service.get_store(store_id)
        draw_day = dayclose_service.get_draw_day(store_id, route_date(day))
        if draw_day is None:
            return jsonify({"error": f"No draw entry for {day}"}), 404
        return jsonify({"draw_day": draw_day.to_dict()}), 200

    except DOMAIN_ERRORS as e:
        return json_error(e)


@dayclose_bp.route("/stores/<int:store_id>/day-close/<day>", methods=["GET"])
@require_identity
@require_store_scope
def preview_day_close(store_id: int, day: str):
    """
    Day-close summary: commissions, anomalies, warnings and can_post.

    Returns:
        200: Summary
        400: Bad date
        404: Store not found
    """
    try:
        summary = dayclose_service.preview_day_close(store_id, route_date(day))
        return jsonify(summary.to_dict()), 200

    except DOMAIN_ERRORS as e:
        return json_error(e)
    except Exception:
        current_app.logger.exception("Failed to preview day close")
        return jsonify({"error": "Internal server error"}), 500


@dayclose_bp.route("/stores/<int:store_id>/day-close/<day>/post", methods=["POST"])
@require_identity
@require_store_scope
def post_day_close(store_id: int, day: str):
    """
    Post the lottery day to the General Ledger.

    Returns:
        200: Posted (superseded=true when an earlier posting was replaced)
        400: Bad date
        404: Store not found
        409: Blocked by open high-severity anomalies / missing draw entry,
             or the day changed concurrently (retryable)
    """
    try:
        result = posting_service.post_day_close(store_id, route_date(day), g.user_id)
        payload = result.to_dict()

        commit_or_conflict(description="post lottery day")

        return jsonify(payload), 200

    except DOMAIN_ERRORS as e:
        db.session.rollback()
        return json_error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to post lottery day")
        return jsonify({"error": "Internal server error"}), 500
