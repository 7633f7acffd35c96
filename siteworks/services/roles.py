"""
Role Hierarchy — closed role set with a total privilege order.

Each role maps to exactly one integer level; higher means more privileged.
Unknown identifiers resolve to level 0 so every check fails closed instead
of raising inside a request handler.

Usage:
    from siteworks.services.roles import Role, has_min_role

    if has_min_role(["foreman"], Role.COORD):
        ...
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum


class Role(str, Enum):
    TEMPORARY = "temporary"
    HELPER = "helper"
    USER = "user"
    COORD = "coord"
    SAFETY = "safety"
    FOREMAN = "foreman"
    VENDOR = "vendor"
    FINANCE = "finance"
    MANAGER = "manager"
    ADMIN = "admin"
    OWNER = "owner"


ROLE_HIERARCHY: dict[Role, int] = {
    Role.TEMPORARY: 1,
    Role.HELPER: 2,
    Role.USER: 3,
    Role.COORD: 4,
    Role.SAFETY: 5,
    Role.FOREMAN: 6,
    Role.VENDOR: 7,
    Role.FINANCE: 8,
    Role.MANAGER: 9,
    Role.ADMIN: 10,
    Role.OWNER: 11,
}

ROLE_LABELS: dict[Role, str] = {
    Role.TEMPORARY: "Temporary worker",
    Role.HELPER: "Assistant",
    Role.USER: "Staff",
    Role.COORD: "Coordinator",
    Role.SAFETY: "Safety officer",
    Role.FOREMAN: "Foreman",
    Role.VENDOR: "Vendor",
    Role.FINANCE: "Finance",
    Role.MANAGER: "Manager",
    Role.ADMIN: "Administrator",
    Role.OWNER: "Owner",
}

UNKNOWN_ROLE_LEVEL = 0


def parse_role(value) -> Role | None:
    """Return the matching ``Role`` or None for anything unrecognised."""
    if isinstance(value, Role):
        return value
    if not isinstance(value, str):
        return None
    try:
        return Role(value.strip().lower())
    except ValueError:
        return None


def role_level(role) -> int:
    """Hierarchy level of ``role``; 0 when the role is unknown."""
    parsed = parse_role(role)
    if parsed is None:
        return UNKNOWN_ROLE_LEVEL
    return ROLE_HIERARCHY[parsed]


def normalize_roles(roles) -> tuple:
    """Coerce a role argument into a tuple.

    None becomes an empty tuple and a lone role string becomes a singleton,
    so callers holding a single "current role" and callers holding a role
    list go through the same code path.
    """
    if roles is None:
        return ()
    if isinstance(roles, str):
        return (roles,)
    if isinstance(roles, Iterable):
        return tuple(roles)
    return ()


def effective_level(roles) -> int:
    """Maximum hierarchy level across the held roles (0 when none)."""
    return max((role_level(r) for r in normalize_roles(roles)), default=UNKNOWN_ROLE_LEVEL)


def has_min_role(user_roles, min_role) -> bool:
    """True iff the strongest held role is at least ``min_role``.

    Empty input is always denied. An unknown ``min_role`` has level 0, so
    any held role satisfies it.
    """
    held = normalize_roles(user_roles)
    if not held:
        return False
    return effective_level(held) >= role_level(min_role)


def has_any_role(user_roles, required_roles) -> bool:
    """Non-empty intersection test between held and required roles."""
    held = {r for r in (parse_role(x) for x in normalize_roles(user_roles)) if r is not None}
    required = {r for r in (parse_role(x) for x in normalize_roles(required_roles)) if r is not None}
    if not held or not required:
        return False
    return not held.isdisjoint(required)


def has_role(user_roles, role) -> bool:
    """Exact membership check for a single role."""
    return has_any_role(user_roles, [role])


def roles_at_least(min_role) -> list[str]:
    """All role values whose level is >= the level of ``min_role``, weakest first."""
    floor = role_level(min_role)
    if floor == UNKNOWN_ROLE_LEVEL:
        return []
    return [r.value for r, level in sorted(ROLE_HIERARCHY.items(), key=lambda kv: kv[1]) if level >= floor]


def hierarchy_table() -> list[dict]:
    """Serializable view of the hierarchy, strongest role first."""
    return [
        {"role": r.value, "level": level, "label": ROLE_LABELS[r]}
        for r, level in sorted(ROLE_HIERARCHY.items(), key=lambda kv: kv[1], reverse=True)
    ]
