# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g


ACTOR_HEADER = "X-User-Id"


def with_actor(f):
    """
    Read the caller identity into g.actor_user_id.

    Authentication happens upstream; this layer only carries the id through to
    the services so movements, documents, and audit rows are attributed.
    A missing header is allowed (system actions); a blank one is not.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get(ACTOR_HEADER)
        if raw is not None and not raw.strip():
            return jsonify({"error": "VALIDATION_ERROR", "message": f"{ACTOR_HEADER} cannot be blank"}), 400
        g.actor_user_id = raw.strip()[:36] if raw else None
        return f(*args, **kwargs)

    return decorated_function


def current_actor():
    return getattr(g, "actor_user_id", None)


def json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}
