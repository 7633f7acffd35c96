"""
Permission Decorators — role-based route protection.

Usage:
    @bp.route("/projects", methods=["POST"])
    @require_permission("project:create")
    def create_project():
        ...

    @bp.route("/users/<uid>/roles", methods=["POST"])
    @require_min_role(Role.ADMIN)
    def assign_role(uid):
        ...

Anonymous callers:
    API_AUTH_ENABLED true   → 401
    API_AUTH_ENABLED false  → pass through (development / tests)

Authenticated callers are always checked, whatever API_AUTH_ENABLED says.
"""

import functools
import logging

from flask import current_app, g

from siteworks.services.permission_registry import format_permission_error
from siteworks.services.permission_service import get_registry
from siteworks.services.roles import has_min_role, parse_role
from siteworks.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def auth_enabled() -> bool:
    value = current_app.config.get("API_AUTH_ENABLED", "true")
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _anonymous_response():
    """None when anonymous access is allowed, else a 401 response."""
    if auth_enabled():
        return api_error(E.UNAUTHORIZED, "Authentication required")
    return None


def _guard(check):
    """Build a decorator from ``check(uid, roles) -> error response | None``."""
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            uid = getattr(g, "jwt_uid", None)
            if uid is None:
                err = _anonymous_response()
                if err:
                    return err
                return f(*args, **kwargs)
            err = check(uid, getattr(g, "jwt_roles", ()), f.__name__)
            if err:
                return err
            return f(*args, **kwargs)
        return decorated
    return decorator


def _denied(result, uid, required, endpoint):
    logger.warning(
        "User %s denied (%s): %s on %s", uid, result.reason, required, endpoint,
        extra={"permission_id": required if isinstance(required, str) else None},
    )
    return api_error(
        E.FORBIDDEN, format_permission_error(result),
        details={"required": required, "reason": result.reason},
    )


def require_permission(permission_id: str):
    """Require the caller's roles to satisfy ``permission_id`` in the registry."""
    def check(uid, roles, endpoint):
        result = get_registry().check_permission(roles, permission_id)
        if result.has_permission:
            return None
        return _denied(result, uid, permission_id, endpoint)
    return _guard(check)


def require_any_permission(*permission_ids: str):
    def check(uid, roles, endpoint):
        result = get_registry().check_any_permission(roles, permission_ids)
        if result.has_permission:
            return None
        return _denied(result, uid, list(permission_ids), endpoint)
    return _guard(check)


def require_all_permissions(*permission_ids: str):
    def check(uid, roles, endpoint):
        result = get_registry().check_all_permissions(roles, permission_ids)
        if result.has_permission:
            return None
        return _denied(result, uid, list(permission_ids), endpoint)
    return _guard(check)


def require_min_role(min_role):
    """Require the caller's strongest role to be at least ``min_role``."""
    required = parse_role(min_role)
    if required is None:
        raise ValueError(f"Unknown role: {min_role!r}")

    def check(uid, roles, endpoint):
        if has_min_role(roles, required):
            return None
        logger.warning("User %s denied: below %s on %s", uid, required.value, endpoint)
        return api_error(
            E.FORBIDDEN, "Insufficient privilege for this operation",
            details={"required_role": required.value, "reason": "denied"},
        )
    return _guard(check)
