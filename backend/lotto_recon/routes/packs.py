# backend/lotto_recon/routes/packs.py
"""
Pack, box and game API routes.
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_identity, require_store_scope
from ..extensions import db
from ..models import LotteryGame
from ..services import pack_service
from ..services.concurrency import commit_or_conflict
from ..validation import require_choice
from .errors import DOMAIN_ERRORS, json_error


packs_bp = Blueprint("packs", __name__, url_prefix="/api/lottery")


@packs_bp.route("/stores/<int:store_id>/packs/activate", methods=["POST"])
@require_identity
@require_store_scope
def activate_pack(store_id: int):
    """
    Activate a pack and place it in a box.

    Request body:
    {
        "pack_number": str,
        "game_code": str,
        "box_label": str,
        "start_ticket": int (optional, default 0),
        "retire_previous": bool (optional) // displace a still-active pack
    }

    Returns:
        201: Pack active (warnings list a displaced pack)
        400: Invalid request
        404: Store, game or box not found
        409: Box occupied, pack already active or closed
    """
    data = request.get_json(silent=True) or {}

    try:
        assignment = pack_service.activate_pack(
            store_id,
            data.get("pack_number"),
            data.get("game_code"),
            data.get("box_label"),
            start_ticket=data.get("start_ticket", 0),
            actor_user_id=g.user_id,
            retire_previous=data.get("retire_previous") is True,
        )
        payload = assignment.to_dict()

        commit_or_conflict(description="activate pack")

        return jsonify(payload), 201

    except DOMAIN_ERRORS as e:
        db.session.rollback()
        return json_error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to activate pack")
        return jsonify({"error": "Internal server error"}), 500


@packs_bp.route("/stores/<int:store_id>/packs/<pack_number>/return", methods=["POST"])
@require_identity
@require_store_scope
def return_pack(store_id: int, pack_number: str):
    """
    Return an active pack's unsold remainder to the lottery.

    Returns:
        200: Pack returned
        404: Pack not found
        409: Pack already sold out or returned
    """
    try:
        pack = pack_service.return_pack(store_id, pack_number, actor_user_id=g.user_id)
        payload = pack.to_dict()

        commit_or_conflict(description="return pack")

        return jsonify({"pack": payload}), 200

    except DOMAIN_ERRORS as e:
        db.session.rollback()
        return json_error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to return pack")
        return jsonify({"error": "Internal server error"}), 500


@packs_bp.route("/stores/<int:store_id>/packs", methods=["GET"])
@require_identity
@require_store_scope
def list_packs(store_id: int):
    """
    List packs for a store.

    Query params:
        status: active, sold_out or returned
        box_label: packs currently in this box
    """
    try:
        pack_service.get_store(store_id)
        status = request.args.get("status")
        if status:
            require_choice(status, "status", pack_service.PACK_STATUSES)
        packs = pack_service.list_packs(store_id, status=status, box_label=request.args.get("box_label"))
        return jsonify({"packs": [p.to_dict() for p in packs], "count": len(packs)}), 200

    except DOMAIN_ERRORS as e:
        return json_error(e)


@packs_bp.route("/stores/<int:store_id>/boxes", methods=["GET"])
@require_identity
@require_store_scope
def list_boxes(store_id: int):
    """List boxes with the active pack each one holds."""
    try:
        pack_service.get_store(store_id)
        active_only = request.args.get("active_only", "false").lower() in ("1", "true", "yes")
        items = []
        for box in pack_service.list_boxes(store_id, active_only=active_only):
            current = pack_service.current_pack_for_box(box)
            items.append({**box.to_dict(), "current_pack": current.to_dict() if current else None})
        return jsonify({"boxes": items, "count": len(items)}), 200

    except DOMAIN_ERRORS as e:
        return json_error(e)


@packs_bp.route("/games", methods=["GET"])
@require_identity
def list_games():
    games = db.session.query(LotteryGame).order_by(LotteryGame.game_code.asc()).all()
    return jsonify({"games": [game.to_dict() for game in games], "count": len(games)}), 200
