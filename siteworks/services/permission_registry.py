"""
Permission Registry — in-memory lookup of permission definitions.

A registry is an explicit object: the app factory builds one per process and
stores it on ``app.extensions``; tests build isolated instances. Nothing here
touches the database or Flask.

Evaluation is deny-by-default:
  - unknown permission id  → has_permission=False, reason="not_found"
  - no overlapping role    → has_permission=False, reason="denied"
  - overlapping role       → has_permission=True,  reason="granted"

Usage:
    registry = PermissionRegistry()
    registry.initialize_permissions(DEFAULT_PERMISSIONS)
    result = registry.check_permission(["manager"], "project:write")
    if not result.has_permission:
        return api_error(E.FORBIDDEN, result.message)
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from siteworks.services.roles import has_any_role, normalize_roles

logger = logging.getLogger(__name__)

PERMISSION_TYPES = {"feature", "navigation", "system"}

MSG_NOT_FOUND = "Permission not found"
MSG_DENIED = "Insufficient privilege for this operation"
MSG_DENIED_ALL = "Missing one or more permissions required for this operation"
MSG_DENIED_ANY = "None of the permissions required for this operation are held"
MSG_CHECK_FAILED = "Permission check failed"


@dataclass(frozen=True)
class Permission:
    """A named capability gated to a set of roles.

    An empty ``roles`` set can never be satisfied.
    """
    id: str
    name: str = ""
    description: str = ""
    category: str = ""
    type: str = "feature"
    roles: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def from_dict(cls, data: Mapping) -> "Permission":
        ptype = str(data.get("type") or "feature")
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or ""),
            description=str(data.get("description") or ""),
            category=str(data.get("category") or ""),
            type=ptype if ptype in PERMISSION_TYPES else "feature",
            roles=frozenset(str(r) for r in normalize_roles(data.get("roles"))),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "type": self.type,
            "roles": sorted(self.roles),
        }


@dataclass(frozen=True)
class PermissionCheckResult:
    has_permission: bool
    reason: str = "granted"
    message: str | None = None

    @property
    def not_found(self) -> bool:
        return self.reason == "not_found"

    def to_dict(self) -> dict:
        d = {"has_permission": self.has_permission, "reason": self.reason}
        if self.message is not None:
            d["message"] = self.message
        return d


_GRANTED = PermissionCheckResult(has_permission=True, reason="granted")


def format_permission_error(result: PermissionCheckResult) -> str:
    """User-facing message for a check result."""
    return result.message or MSG_CHECK_FAILED


class PermissionRegistry:
    """Append/replace-only map of permission id → ``Permission``."""

    def __init__(self, permissions: Iterable | None = None) -> None:
        self._permissions: dict[str, Permission] = {}
        self._lock = threading.Lock()
        if permissions is not None:
            self.initialize_permissions(permissions)

    # ── Loading ───────────────────────────────────────────────────────────

    def initialize_permissions(self, permissions: Iterable) -> None:
        """Upsert definitions by id. Last write wins on id collision."""
        parsed = [p if isinstance(p, Permission) else Permission.from_dict(p) for p in permissions]
        with self._lock:
            for perm in parsed:
                self._permissions[perm.id] = perm
        logger.debug("Permission registry loaded %d definitions (%d total)",
                     len(parsed), len(self._permissions))

    def remove(self, permission_id: str) -> bool:
        with self._lock:
            return self._permissions.pop(permission_id, None) is not None

    # ── Lookup ────────────────────────────────────────────────────────────

    def get(self, permission_id: str) -> Permission | None:
        return self._permissions.get(permission_id)

    def all(self) -> list[Permission]:
        with self._lock:
            snapshot = list(self._permissions.values())
        return sorted(snapshot, key=lambda p: p.id)

    def __contains__(self, permission_id) -> bool:
        return permission_id in self._permissions

    def __len__(self) -> int:
        return len(self._permissions)

    # ── Checks ────────────────────────────────────────────────────────────

    def check_permission(self, user_roles, permission_id: str) -> PermissionCheckResult:
        permission = self.get(permission_id)
        if permission is None:
            return PermissionCheckResult(False, reason="not_found", message=MSG_NOT_FOUND)
        if has_any_role(user_roles, permission.roles):
            return _GRANTED
        return PermissionCheckResult(False, reason="denied", message=MSG_DENIED)

    def check_all_permissions(self, user_roles, permission_ids: Iterable[str]) -> PermissionCheckResult:
        ids = list(permission_ids)
        if not ids:
            return PermissionCheckResult(False, reason="denied", message=MSG_DENIED_ALL)
        for pid in ids:
            result = self.check_permission(user_roles, pid)
            if not result.has_permission:
                if result.not_found:
                    return result
                return PermissionCheckResult(False, reason="denied", message=MSG_DENIED_ALL)
        return _GRANTED

    def check_any_permission(self, user_roles, permission_ids: Iterable[str]) -> PermissionCheckResult:
        ids = list(permission_ids)
        if any(self.check_permission(user_roles, pid).has_permission for pid in ids):
            return _GRANTED
        if ids and all(pid not in self for pid in ids):
            return PermissionCheckResult(False, reason="not_found", message=MSG_NOT_FOUND)
        return PermissionCheckResult(False, reason="denied", message=MSG_DENIED_ANY)

    # ── Role-scoped views ─────────────────────────────────────────────────

    def get_permissions_for_roles(self, roles) -> list[Permission]:
        held = normalize_roles(roles)
        return [p for p in self.all() if has_any_role(held, p.roles)]

    def permission_ids_for_roles(self, roles) -> set[str]:
        return {p.id for p in self.get_permissions_for_roles(roles)}

    def get_permissions_by_category(self, category: str, roles=None) -> list[Permission]:
        source = self.all() if roles is None else self.get_permissions_for_roles(roles)
        return [p for p in source if p.category == category]

    def get_navigation_permissions(self, roles) -> list[Permission]:
        return [p for p in self.get_permissions_for_roles(roles) if p.type == "navigation"]

    def get_system_permissions(self, roles) -> list[Permission]:
        return [p for p in self.get_permissions_for_roles(roles) if p.type == "system"]

    def get_feature_permissions(self, roles) -> list[Permission]:
        return [p for p in self.get_permissions_for_roles(roles) if p.type == "feature"]
