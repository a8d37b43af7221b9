# Overview: Domain error -> JSON response translation shared by the lottery blueprints.

from __future__ import annotations

from flask import current_app, jsonify

from ..services.anomaly_service import StateError
from ..services.concurrency import ConcurrencyConflictError
from ..services.posting_service import PostingBlockedError
from ..services.reading_service import OutOfRangeError
from ..services.settings_service import SettingsError
from ..time_utils import parse_business_date
from ..validation import ConflictError, NotFoundError, ValidationError


DOMAIN_ERRORS = (
    ValidationError,
    NotFoundError,
    ConflictError,
    StateError,
    PostingBlockedError,
    ConcurrencyConflictError,
    SettingsError,
)


def json_error(exc: Exception):
    # OutOfRangeError subclasses ValidationError; check it first
    if isinstance(exc, OutOfRangeError):
        return jsonify({"error": str(exc), "details": exc.details, "anomaly": exc.anomaly}), 422
    if isinstance(exc, ValidationError):
        return jsonify({"error": str(exc), "details": exc.details}), 400
    if isinstance(exc, NotFoundError):
        return jsonify({"error": str(exc)}), 404
    if isinstance(exc, PostingBlockedError):
        return jsonify({
            "error": str(exc),
            "blocking_anomalies": exc.blocking_anomalies,
            "reasons": exc.reasons,
        }), 409
    if isinstance(exc, ConcurrencyConflictError):
        return jsonify({"error": str(exc), "details": exc.details, "retryable": True}), 409
    if isinstance(exc, ConflictError):
        return jsonify({"error": str(exc), "details": exc.details}), 409
    if isinstance(exc, StateError):
        return jsonify({"error": str(exc)}), 409
    if isinstance(exc, SettingsError):
        # Bad store_configs row; the request was fine
        current_app.logger.error("Store settings error: %s", exc)
        return jsonify({"error": f"Store configuration error: {exc}"}), 500
    return jsonify({"error": "Internal server error"}), 500


def route_date(value: str):
    """Business date from a URL segment or query arg; 400 on anything but YYYY-MM-DD."""
    try:
        return parse_business_date(value)
    except ValueError:
        raise ValidationError(f"Invalid date '{value}'. Expected YYYY-MM-DD")
