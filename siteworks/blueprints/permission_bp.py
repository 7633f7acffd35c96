"""
Roles, permissions and user-role API.

Endpoints:
    GET    /api/v1/roles                        — hierarchy table
    GET    /api/v1/permissions                  — catalog (?category=, ?type=)
    GET    /api/v1/permissions/<id>
    PUT    /api/v1/permissions/<id>             — system:admin
    DELETE /api/v1/permissions/<id>             — system:admin
    POST   /api/v1/permissions/check            — evaluate one or many ids
    GET    /api/v1/me/permissions               — caller's roles and grants
    POST   /api/v1/users                        — profile upsert for the token uid
    GET    /api/v1/users/<uid>/roles            — user:read
    POST   /api/v1/users/<uid>/roles            — admin and above
    DELETE /api/v1/users/<uid>/roles/<role>     — admin and above
"""

import logging

from flask import Blueprint, g, jsonify, request

from siteworks.core.exceptions import NotFoundError, ValidationError
from siteworks.middleware.permission_required import require_min_role, require_permission
from siteworks.services import permission_service
from siteworks.services.permission_registry import PERMISSION_TYPES
from siteworks.services.roles import (
    ROLE_LABELS,
    Role,
    effective_level,
    hierarchy_table,
    parse_role,
    role_level,
)
from siteworks.utils.dates import parse_datetime
from siteworks.utils.errors import E, api_error

logger = logging.getLogger(__name__)

permission_bp = Blueprint("permission_bp", __name__, url_prefix="/api/v1")


# ═══════════════════════════════════════════════════════════════════════════
#  ROLES & PERMISSIONS
# ═══════════════════════════════════════════════════════════════════════════

@permission_bp.route("/roles", methods=["GET"])
def list_roles():
    return jsonify({"roles": hierarchy_table()}), 200


@permission_bp.route("/permissions", methods=["GET"])
def list_permissions():
    """Permission catalog, optionally filtered by category and type."""
    category = request.args.get("category")
    ptype = request.args.get("type")
    if ptype and ptype not in PERMISSION_TYPES:
        return api_error(E.VALIDATION_INVALID, f"type must be one of {sorted(PERMISSION_TYPES)}")

    registry = permission_service.get_registry()
    items = registry.get_permissions_by_category(category) if category else registry.all()
    if ptype:
        items = [p for p in items if p.type == ptype]
    return jsonify({"items": [p.to_dict() for p in items], "total": len(items)}), 200


@permission_bp.route("/permissions/<permission_id>", methods=["GET"])
def get_permission(permission_id):
    permission = permission_service.get_registry().get(permission_id)
    if permission is None:
        return api_error(E.NOT_FOUND, "Permission not found")
    return jsonify(permission.to_dict()), 200


@permission_bp.route("/permissions/<permission_id>", methods=["PUT"])
@require_permission("system:admin")
def put_permission(permission_id):
    data = request.get_json(silent=True) or {}
    try:
        permission = permission_service.upsert_permission(permission_id, data)
    except ValidationError as e:
        return api_error(E.VALIDATION_INVALID, str(e), details=e.details)
    return jsonify(permission.to_dict()), 200


@permission_bp.route("/permissions/<permission_id>", methods=["DELETE"])
@require_permission("system:admin")
def delete_permission(permission_id):
    try:
        permission_service.delete_permission(permission_id)
    except NotFoundError:
        return api_error(E.NOT_FOUND, "Permission not found")
    return jsonify({"message": "Permission deleted", "id": permission_id}), 200


@permission_bp.route("/permissions/check", methods=["POST"])
def check_permissions():
    """
    Evaluate permissions for the caller (or for an explicit ``roles`` list).

    Body:
        {"permission_id": "project:write"}
        {"permission_ids": ["a", "b"], "mode": "all" | "any"}
        optional "roles": ["manager"]
    """
    data = request.get_json(silent=True) or {}
    roles = data["roles"] if "roles" in data else getattr(g, "jwt_roles", ())
    registry = permission_service.get_registry()

    if data.get("permission_id"):
        result = registry.check_permission(roles, str(data["permission_id"]))
        return jsonify({"permission_id": data["permission_id"], **result.to_dict()}), 200

    ids = data.get("permission_ids")
    if not isinstance(ids, list) or not ids:
        return api_error(E.VALIDATION_REQUIRED, "permission_id or permission_ids is required")
    mode = data.get("mode", "all")
    if mode not in ("all", "any"):
        return api_error(E.VALIDATION_INVALID, "mode must be 'all' or 'any'")

    ids = [str(i) for i in ids]
    if mode == "all":
        result = registry.check_all_permissions(roles, ids)
    else:
        result = registry.check_any_permission(roles, ids)
    return jsonify({
        "permission_ids": ids,
        "mode": mode,
        **result.to_dict(),
        "results": {pid: registry.check_permission(roles, pid).has_permission for pid in ids},
    }), 200


@permission_bp.route("/me/permissions", methods=["GET"])
def my_permissions():
    roles = getattr(g, "jwt_roles", ())
    registry = permission_service.get_registry()
    return jsonify({
        "uid": getattr(g, "jwt_uid", None),
        "roles": list(roles),
        "effective_level": effective_level(roles),
        "permissions": sorted(registry.permission_ids_for_roles(roles)),
        "navigation": [p.to_dict() for p in registry.get_navigation_permissions(roles)],
    }), 200


# ═══════════════════════════════════════════════════════════════════════════
#  USERS & ROLE ASSIGNMENTS
# ═══════════════════════════════════════════════════════════════════════════

@permission_bp.route("/users", methods=["POST"])
def upsert_user():
    """Create or refresh the profile of the authenticated user (called after sign-in)."""
    uid = getattr(g, "jwt_uid", None)
    if uid is None:
        return api_error(E.UNAUTHORIZED, "Authentication required")

    data = request.get_json(silent=True) or {}
    try:
        user, created = permission_service.create_or_update_user(
            uid,
            email=data.get("email") or getattr(g, "jwt_email", None),
            display_name=data.get("display_name"),
            photo_url=data.get("photo_url"),
        )
    except ValidationError as e:
        return api_error(E.VALIDATION_INVALID, str(e), details=e.details)
    return jsonify(user.to_dict(include_roles=True)), 201 if created else 200


@permission_bp.route("/users/<uid>/roles", methods=["GET"])
@require_permission("user:read")
def get_user_roles(uid):
    roles = permission_service.get_user_roles(uid)
    return jsonify({
        "uid": uid,
        "roles": [
            {"role": r, "level": role_level(r), "label": ROLE_LABELS.get(parse_role(r), r)}
            for r in roles
        ],
        "effective_level": effective_level(roles),
    }), 200


def _above_caller(role):
    """True when an authenticated caller would act on a role stronger than their own."""
    if getattr(g, "jwt_uid", None) is None:
        return False
    return role_level(role) > effective_level(getattr(g, "jwt_roles", ()))


@permission_bp.route("/users/<uid>/roles", methods=["POST"])
@require_min_role(Role.ADMIN)
def assign_user_role(uid):
    data = request.get_json(silent=True) or {}
    role = parse_role(data.get("role"))
    if role is None:
        return api_error(E.VALIDATION_INVALID, "Unknown role", details={"role": data.get("role")})

    actor = getattr(g, "jwt_uid", None)
    if _above_caller(role):
        return api_error(E.FORBIDDEN, "Cannot grant a role above your own")

    expires_at = None
    if data.get("expires_at"):
        expires_at = parse_datetime(data["expires_at"])
        if expires_at is None:
            return api_error(E.VALIDATION_INVALID, "expires_at must be an ISO datetime")

    try:
        assignment = permission_service.assign_role(uid, role, assigned_by=actor, expires_at=expires_at)
    except NotFoundError:
        return api_error(E.NOT_FOUND, "User not found")
    return jsonify(assignment.to_dict()), 201


@permission_bp.route("/users/<uid>/roles/<role>", methods=["DELETE"])
@require_min_role(Role.ADMIN)
def revoke_user_role(uid, role):
    parsed = parse_role(role)
    if parsed is None:
        return api_error(E.VALIDATION_INVALID, "Unknown role", details={"role": role})
    if _above_caller(parsed):
        return api_error(E.FORBIDDEN, "Cannot revoke a role above your own")
    if not permission_service.revoke_role(uid, parsed):
        return api_error(E.NOT_FOUND, "Role assignment not found")
    return jsonify({"message": "Role revoked", "uid": uid, "role": parsed.value}), 200
