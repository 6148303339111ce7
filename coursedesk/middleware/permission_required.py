"""
Role Decorators — JWT-aware role checks for route protection.

Usage:
    @vehicles_bp.route("/vehicles/<int:vehicle_id>", methods=["PUT"])
    @require_role("superadmin", "admin")
    def update_vehicle(vehicle_id):
        ...

When no JWT user is present, these decorators pass through; field-level
rules (sensitive vehicle fields, closure submit) are enforced by the
services with the role from ``current_actor()``.
"""

import functools
import logging

from flask import g, jsonify

logger = logging.getLogger(__name__)


def current_actor() -> tuple[int | None, str | None]:
    """(user_id, role) of the authenticated caller, or (None, None)."""
    return getattr(g, "jwt_user_id", None), getattr(g, "jwt_role", None)


def require_role(*roles: str):
    """
    Decorator: require the JWT user to hold one of ``roles``.
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            user_id, role = current_actor()
            if user_id is None:
                return f(*args, **kwargs)

            if role not in roles:
                logger.warning(
                    "User %d denied: role '%s' not in %s on %s",
                    user_id, role, roles, f.__name__,
                    extra={"user_id": user_id},
                )
                return jsonify({
                    "error": "Permission denied",
                    "required_any": sorted(roles),
                }), 403

            return f(*args, **kwargs)
        return decorated
    return decorator
