# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g


ACTOR_HEADER = "X-User-Id"


def require_actor(f):
    """
    Require the acting staff member on every mutating request.

    Authentication happens upstream (clinic gateway); this layer only needs
    to know WHO acts so requests, approvals and payments can be attributed.

    Sets:
    - g.actor_id: integer user id taken from the X-User-Id header

    Returns 401 when the header is missing or not a positive integer.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = (request.headers.get(ACTOR_HEADER) or "").strip()
        if not raw.isdigit() or int(raw) < 1:
            return jsonify({"error": f"{ACTOR_HEADER} header required"}), 401

        g.actor_id = int(raw)
        return f(*args, **kwargs)

    return decorated_function
