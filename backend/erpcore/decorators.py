# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g


ACTOR_HEADER = "X-Actor-Id"


def require_actor(f):
    """
    Require the caller to identify who is making the change.

    Sets g.actor_id from the X-Actor-Id header. The id is opaque: it is
    recorded on ledger rows and audit events, never checked for permissions.
    Returns 400 if the header is missing or blank.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor_id = (request.headers.get(ACTOR_HEADER) or "").strip()
        if not actor_id:
            return jsonify({"error": f"{ACTOR_HEADER} header required", "code": "VALIDATION", "details": {}}), 400
        if len(actor_id) > 64:
            return jsonify({"error": f"{ACTOR_HEADER} exceeds max length 64", "code": "VALIDATION", "details": {}}), 400

        g.actor_id = actor_id
        return f(*args, **kwargs)

    return decorated_function
