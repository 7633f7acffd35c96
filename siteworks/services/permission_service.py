"""
Permission Service — DB-backed role assignments and the permission registry.

The registry itself is pure (see ``permission_registry``); this module owns
everything that touches the database:
  - loading persisted permission definitions into a registry
  - seeding the default catalog on first start
  - role assignments per user (active, unexpired)
  - profile upsert on login

Role lookups are cached per uid for CACHE_TTL seconds; every role write
invalidates the uid's entry.
"""

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Optional

from email_validator import EmailNotValidError, validate_email
from flask import current_app

from siteworks.core.exceptions import NotFoundError, ValidationError
from siteworks.models import db
from siteworks.models.auth import PermissionDefinition, User, UserRole
from siteworks.services.permission_catalog import DEFAULT_PERMISSIONS
from siteworks.services.permission_registry import (
    PERMISSION_TYPES,
    Permission,
    PermissionCheckResult,
    PermissionRegistry,
)
from siteworks.services.roles import Role, parse_role

logger = logging.getLogger(__name__)

REGISTRY_EXTENSION_KEY = "permission_registry"
CACHE_TTL = 300  # 5 minutes

_role_cache: dict[str, tuple[float, tuple[str, ...]]] = {}
_cache_lock = threading.Lock()


def _get_cached(uid: str) -> Optional[tuple[str, ...]]:
    with _cache_lock:
        entry = _role_cache.get(uid)
        if entry is None:
            return None
        cached_at, roles = entry
        if time.time() - cached_at > CACHE_TTL:
            del _role_cache[uid]
            return None
        return roles


def _set_cached(uid: str, roles: tuple[str, ...]) -> None:
    with _cache_lock:
        _role_cache[uid] = (time.time(), roles)


def invalidate_cache(uid: str) -> None:
    with _cache_lock:
        _role_cache.pop(uid, None)


def invalidate_all_cache() -> None:
    with _cache_lock:
        _role_cache.clear()


# ═════════════════════════════════════════════════════════════════════════════
# Registry
# ═════════════════════════════════════════════════════════════════════════════

def get_registry(app=None) -> PermissionRegistry:
    """Return the registry bound to ``app`` (or the current app)."""
    app = app or current_app
    registry = app.extensions.get(REGISTRY_EXTENSION_KEY)
    if registry is None:
        registry = PermissionRegistry()
        app.extensions[REGISTRY_EXTENSION_KEY] = registry
    return registry


def seed_default_permissions() -> int:
    """Insert catalog entries that are not persisted yet. Returns the number added."""
    existing = {pid for (pid,) in db.session.query(PermissionDefinition.id).all()}
    added = 0
    for data in DEFAULT_PERMISSIONS:
        if data["id"] in existing:
            continue
        db.session.add(PermissionDefinition(
            id=data["id"],
            name=data["name"],
            description=data["description"],
            category=data["category"],
            type=data["type"],
            roles=list(data["roles"]),
        ))
        added += 1
    if added:
        db.session.commit()
        logger.info("Seeded %d default permission definitions", added)
    return added


def load_registry(app=None, seed: bool = True) -> PermissionRegistry:
    """Fill the app's registry from ``permission_definitions``.

    An empty table is seeded with the default catalog first.
    """
    registry = get_registry(app)
    if seed and db.session.query(PermissionDefinition.id).first() is None:
        seed_default_permissions()
    definitions = PermissionDefinition.query.order_by(PermissionDefinition.id).all()
    registry.initialize_permissions(d.to_permission() for d in definitions)
    logger.info("Permission registry ready: %d definitions", len(registry))
    return registry


def upsert_permission(permission_id: str, data: dict) -> Permission:
    """Create or replace a persisted definition and publish it to the registry.

    Raises:
        ValidationError: bad type or role list.
    """
    ptype = data.get("type", "feature")
    if ptype not in PERMISSION_TYPES:
        raise ValidationError(
            f"type must be one of {sorted(PERMISSION_TYPES)}", details={"type": ptype},
        )
    roles = data.get("roles")
    if roles is None or isinstance(roles, str) or not isinstance(roles, (list, tuple)):
        raise ValidationError("roles must be a list of role names")
    unknown = [r for r in roles if parse_role(r) is None]
    if unknown:
        raise ValidationError("Unknown role(s)", details={"roles": unknown})

    definition = db.session.get(PermissionDefinition, permission_id)
    if definition is None:
        definition = PermissionDefinition(id=permission_id)
        db.session.add(definition)
    definition.name = data.get("name") or definition.name or permission_id
    definition.description = data.get("description", definition.description or "")
    definition.category = data.get("category") or definition.category or permission_id.split(":", 1)[0]
    definition.type = ptype
    definition.roles = sorted({parse_role(r).value for r in roles})
    db.session.commit()

    permission = definition.to_permission()
    get_registry().initialize_permissions([permission])
    logger.info("Permission %s saved (roles=%s)", permission_id, definition.roles)
    return permission


def delete_permission(permission_id: str) -> None:
    """Delete a persisted definition and drop it from the registry.

    Raises:
        NotFoundError: no such definition.
    """
    definition = db.session.get(PermissionDefinition, permission_id)
    if definition is None:
        raise NotFoundError("Permission", permission_id)
    db.session.delete(definition)
    db.session.commit()
    get_registry().remove(permission_id)
    logger.info("Permission %s deleted", permission_id)


# ═════════════════════════════════════════════════════════════════════════════
# Role assignments
# ═════════════════════════════════════════════════════════════════════════════

def get_user_roles(uid: str) -> tuple[str, ...]:
    """Active, unexpired role values held by ``uid`` (strongest role first is not guaranteed)."""
    if not uid:
        return ()
    cached = _get_cached(uid)
    if cached is not None:
        return cached

    now = datetime.now(timezone.utc)
    rows = UserRole.query.filter_by(uid=uid, is_active=True).order_by(UserRole.role).all()
    roles = tuple(r.role for r in rows if not r.is_expired(now))
    _set_cached(uid, roles)
    return roles


def assign_role(uid: str, role, assigned_by: str | None = None, expires_at=None) -> UserRole:
    """Grant ``role`` to ``uid``; re-activates a revoked assignment.

    Raises:
        ValidationError: unknown role.
        NotFoundError: unknown user.
    """
    parsed = parse_role(role)
    if parsed is None:
        raise ValidationError("Unknown role", details={"role": role})
    if db.session.get(User, uid) is None:
        raise NotFoundError("User", uid)

    assignment = UserRole.query.filter_by(uid=uid, role=parsed.value).first()
    if assignment is None:
        assignment = UserRole(uid=uid, role=parsed.value)
        db.session.add(assignment)
    assignment.is_active = True
    assignment.assigned_by = assigned_by
    assignment.assigned_at = datetime.now(timezone.utc)
    assignment.expires_at = expires_at
    db.session.commit()
    invalidate_cache(uid)
    logger.info("Role %s assigned to %s by %s", parsed.value, uid, assigned_by)
    return assignment


def revoke_role(uid: str, role) -> bool:
    """Deactivate an assignment. Returns False when the user never held it."""
    parsed = parse_role(role)
    if parsed is None:
        return False
    assignment = UserRole.query.filter_by(uid=uid, role=parsed.value, is_active=True).first()
    if assignment is None:
        return False
    assignment.is_active = False
    db.session.commit()
    invalidate_cache(uid)
    logger.info("Role %s revoked from %s", parsed.value, uid)
    return True


def check_user_permission(uid: str, permission_id: str) -> PermissionCheckResult:
    return get_registry().check_permission(get_user_roles(uid), permission_id)


# ═════════════════════════════════════════════════════════════════════════════
# Profiles
# ═════════════════════════════════════════════════════════════════════════════

def _owner_uids() -> set[str]:
    raw = current_app.config.get("OWNER_UIDS", "") or ""
    if isinstance(raw, (list, tuple, set)):
        return {str(u).strip() for u in raw if str(u).strip()}
    return {u.strip() for u in raw.split(",") if u.strip()}


def _default_role() -> Role:
    return parse_role(current_app.config.get("DEFAULT_ROLE", "user")) or Role.USER


def create_or_update_user(uid: str, email=None, display_name=None, photo_url=None) -> tuple[User, bool]:
    """Upsert the profile for ``uid`` and record the login.

    The first login assigns ``owner`` when uid is listed in OWNER_UIDS,
    otherwise DEFAULT_ROLE. Returns (user, created).
    """
    if not uid:
        raise ValidationError("uid is required")
    if email is not None:
        try:
            email = validate_email(email, check_deliverability=False).normalized
        except EmailNotValidError as e:
            raise ValidationError(f"Invalid email: {e}", details={"email": email})

    now = datetime.now(timezone.utc)
    user = db.session.get(User, uid)
    created = user is None
    if created:
        user = User(uid=uid, login_count=0)
        db.session.add(user)

    if email is not None:
        user.email = email
    if display_name is not None:
        user.display_name = display_name
    if photo_url is not None:
        user.photo_url = photo_url
    user.login_count = (user.login_count or 0) + 1
    user.last_login_at = now

    if created:
        initial = Role.OWNER if uid in _owner_uids() else _default_role()
        user.roles.append(UserRole(role=initial.value, assigned_by="system", assigned_at=now))
        logger.info("New user %s registered with role %s", uid, initial.value)

    db.session.commit()
    invalidate_cache(uid)
    return user, created
