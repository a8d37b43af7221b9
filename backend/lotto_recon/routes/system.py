# backend/lotto_recon/routes/system.py
"""
System health endpoint.
"""

import time
from flask import Blueprint, current_app, jsonify
from ..extensions import db
from ..models import LotteryGame, Store
from lotto_recon.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity with a couple of cheap counts.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        store_count = db.session.query(Store).count()
        game_count = db.session.query(LotteryGame).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "stores": store_count,
                "games": game_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


@system_bp.get("/health")
def health():
    database = check_database_health()
    healthy = database["status"] == "healthy"
    body = {
        "status": "ok" if healthy else "degraded",
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database},
    }
    return jsonify(body), 200 if healthy else 503
