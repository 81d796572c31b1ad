"""Request helpers shared by the JSON blueprints."""
from __future__ import annotations

from functools import wraps
from typing import Any, Callable, Dict

from flask import jsonify, request
from flask_login import current_user

from app import login_manager
from app.errors import AuthorizationError
from app.models import UserRole
from app.services.actor import ActingUser

JsonView = Callable[..., Any]


def json_response(payload: Any, status: int = 200):
    """Return a JSON response with status code."""
    return jsonify(payload), status


def json_payload() -> Dict[str, Any]:
    """Return the request's JSON body, or an empty dict."""
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def acting_user() -> ActingUser:
    """Snapshot the logged-in user for the service layer."""
    return ActingUser.from_user(current_user)


def role_required(*roles: UserRole):
    """Restrict a view to ``roles``.

    Anonymous callers go through the login manager's unauthorized handler;
    other roles get an ``AuthorizationError``.
    """
    allowed = frozenset(roles)
    names = ", ".join(sorted(role.value for role in allowed))

    def decorator(view_func: JsonView) -> JsonView:
        @wraps(view_func)
        def wrapped(*args, **kwargs):
            if not current_user.is_authenticated:
                return login_manager.unauthorized()
            if current_user.role not in allowed:
                raise AuthorizationError(f"This action requires one of the roles: {names}.")
            return view_func(*args, **kwargs)

        return wrapped

    return decorator
