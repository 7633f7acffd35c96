"""
Default permission catalog.

Seeded into ``permission_definitions`` on first start; administrators can
edit role sets afterwards through ``PUT /api/v1/permissions/<id>``.
"""

from __future__ import annotations

from siteworks.services.roles import Role, roles_at_least

_FINANCE = [Role.FINANCE.value, Role.ADMIN.value, Role.OWNER.value]
_ADMINS = [Role.ADMIN.value, Role.OWNER.value]
_OWNER = [Role.OWNER.value]


def _perm(pid: str, name: str, description: str, roles: list[str], *, ptype: str = "feature") -> dict:
    return {
        "id": pid,
        "name": name,
        "description": description,
        "category": pid.split(":", 1)[0],
        "type": ptype,
        "roles": roles,
    }


DEFAULT_PERMISSIONS: list[dict] = [
    # Finance: contracts, quotes, orders, expenses, invoices
    _perm("finance:read", "View finance", "View contracts, quotes, orders and invoices",
          _FINANCE + [Role.MANAGER.value]),
    _perm("finance:write", "Edit finance", "Create and edit finance documents",
          _FINANCE),
    _perm("finance:delete", "Delete finance", "Delete finance documents", _ADMINS),
    _perm("finance:admin", "Manage finance", "Full finance administration", _ADMINS),

    # Projects
    _perm("project:read", "View projects", "View project data", roles_at_least(Role.TEMPORARY)),
    _perm("project:write", "Edit projects", "Edit project data", roles_at_least(Role.MANAGER)),
    _perm("project:create", "Create projects", "Create new projects", roles_at_least(Role.MANAGER)),
    _perm("project:delete", "Delete projects", "Delete projects", _ADMINS),
    _perm("project:admin", "Manage projects", "Full project administration", _ADMINS),

    # Work packages
    _perm("project:package:read", "View work packages", "View work packages",
          roles_at_least(Role.TEMPORARY)),
    _perm("project:package:create", "Create work packages", "Create work packages",
          roles_at_least(Role.COORD)),
    _perm("project:package:write", "Edit work packages", "Edit work packages",
          roles_at_least(Role.COORD)),
    _perm("project:package:delete", "Delete work packages", "Delete work packages",
          roles_at_least(Role.MANAGER)),

    # Sub-work-packages (quantity reporting happens here)
    _perm("project:subpackage:read", "View sub-work-packages", "View sub-work-packages",
          roles_at_least(Role.TEMPORARY)),
    _perm("project:subpackage:create", "Create sub-work-packages", "Create sub-work-packages",
          roles_at_least(Role.COORD)),
    _perm("project:subpackage:write", "Report quantities", "Edit sub-work-packages and actual quantities",
          roles_at_least(Role.USER)),
    _perm("project:subpackage:delete", "Delete sub-work-packages", "Delete sub-work-packages",
          roles_at_least(Role.MANAGER)),

    # Risks and milestones
    _perm("project:risk:write", "Manage risks", "Register and update project risks",
          roles_at_least(Role.SAFETY)),
    _perm("project:milestone:write", "Manage milestones", "Create and update milestones",
          roles_at_least(Role.MANAGER)),

    # Users and roles
    _perm("user:read", "View users", "View user profiles", roles_at_least(Role.MANAGER)),
    _perm("user:write", "Edit users", "Edit user profiles and role assignments", _ADMINS),
    _perm("user:delete", "Delete users", "Delete user accounts", _OWNER),

    # Settings and system
    _perm("settings:read", "View settings", "View system settings", roles_at_least(Role.MANAGER),
          ptype="system"),
    _perm("settings:write", "Edit settings", "Edit system settings", _ADMINS, ptype="system"),
    _perm("system:read", "View system", "View system information", _ADMINS, ptype="system"),
    _perm("system:admin", "Administer system", "Edit permission definitions and system data",
          _ADMINS, ptype="system"),

    # Navigation entries
    _perm("navigation:home", "Home navigation", "Show the home entry",
          roles_at_least(Role.TEMPORARY), ptype="navigation"),
    _perm("navigation:project", "Project navigation", "Show the project entry",
          roles_at_least(Role.TEMPORARY), ptype="navigation"),
    _perm("navigation:finance", "Finance navigation", "Show the finance entry",
          _FINANCE + [Role.MANAGER.value], ptype="navigation"),
    _perm("navigation:account", "Account navigation", "Show the account entry",
          roles_at_least(Role.TEMPORARY), ptype="navigation"),
    _perm("navigation:settings", "Settings navigation", "Show the settings entry",
          _ADMINS, ptype="navigation"),

    # Dashboard
    _perm("dashboard:read", "View dashboard", "View the project dashboard", roles_at_least(Role.USER)),
    _perm("dashboard:analytics", "View analytics", "View health, risk and quality analytics",
          roles_at_least(Role.SAFETY)),

    # Notifications
    _perm("notification:read", "View notifications", "View personal notifications",
          roles_at_least(Role.TEMPORARY)),
    _perm("notification:send", "Send notifications", "Send push notifications to other users",
          roles_at_least(Role.FOREMAN)),
]
