"""General helper utilities."""
from __future__ import annotations

from datetime import datetime, timezone
from functools import wraps
from typing import Any, Callable

from flask import jsonify
from flask_login import current_user

JsonView = Callable[..., Any]


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how DateTime columns are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def json_response(payload: Any, status: int = 200):
    """Return a JSON response with status code."""
    return jsonify(payload), status


def role_required(*roles):
    """Restrict a route to one or more roles."""
    def decorator(view_func: JsonView) -> JsonView:
        @wraps(view_func)
        def wrapped(*args, **kwargs):
            if not current_user.is_authenticated:
                return json_response({"error": "Authentication required.", "code": "NOT_AUTHORIZED"}, status=401)
            if current_user.role not in roles:
                return json_response({"error": "Insufficient permissions.", "code": "NOT_AUTHORIZED"}, status=403)
            return view_func(*args, **kwargs)

        return wrapped

    return decorator
