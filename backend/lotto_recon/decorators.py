# Overview: Request identity decorators for API routes.

from functools import wraps
from flask import request, jsonify, g


def _header_int(name: str):
    raw = request.headers.get(name)
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw.strip())
    except ValueError:
        return False


def require_identity(f):
    """
    Require the upstream gateway's identity headers.

    Authentication happens upstream; this service only trusts and records
    what the gateway forwards. Sets the following Flask g attributes:
    - g.user_id: acting employee (X-User-Id) - REQUIRED
    - g.store_id: store scope (X-Store-Id), None for unscoped callers
    - g.role: role label (X-Role), recorded only

    Returns 401 if X-User-Id is missing or malformed.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user_id = _header_int("X-User-Id")
        if user_id is None:
            return jsonify({"error": "Authentication required"}), 401
        if user_id is False or user_id < 1:
            return jsonify({"error": "Invalid X-User-Id header"}), 401

        store_id = _header_int("X-Store-Id")
        if store_id is False:
            return jsonify({"error": "Invalid X-Store-Id header"}), 401

        g.user_id = user_id
        g.store_id = store_id
        g.role = (request.headers.get("X-Role") or "").strip() or None

        return f(*args, **kwargs)

    return decorated_function


def require_store_scope(f):
    """
    Reject requests scoped to one store that address another.

    Must be stacked under require_identity; the route takes store_id.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        store_id = kwargs.get("store_id")
        if g.store_id is not None and store_id is not None and g.store_id != store_id:
            return jsonify({"error": "Access denied for this store"}), 403
        return f(*args, **kwargs)

    return decorated_function
