"""Role and permission checks. Custom permissions from the identity provider override role defaults."""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Permission:
    resource: str
    action: str


DEFAULT_PERMISSIONS: dict[str, list[Permission]] = {
    "system_admin": [Permission("*", "manage")],
    "admin": [
        Permission("users", "manage"),
        Permission("equipment", "manage"),
        Permission("endmills", "manage"),
        Permission("inventory", "manage"),
        Permission("cam_sheets", "manage"),
        Permission("tool_changes", "manage"),
        Permission("reports", "read"),
        Permission("settings", "manage"),
        Permission("ai_insights", "use"),
    ],
    "user": [
        Permission("equipment", "read"),
        Permission("endmills", "read"),
        Permission("inventory", "read"),
        Permission("cam_sheets", "read"),
        Permission("tool_changes", "create"),
        Permission("tool_changes", "read"),
        Permission("reports", "read"),
    ],
}

ADMIN_ROLES = frozenset({"system_admin", "admin"})


def parse_permissions(matrix: Any) -> list[Permission]:
    """{resource: [actions]} -> [Permission]. Non-dict input yields []."""
    if not isinstance(matrix, dict):
        return []
    out: list[Permission] = []
    for resource, actions in matrix.items():
        if isinstance(actions, str):
            actions = [actions]
        if not isinstance(actions, (list, tuple)):
            continue
        out.extend(Permission(str(resource), str(a)) for a in actions)
    return out


def has_permission(
    role: str | None,
    resource: str,
    action: str,
    custom: list[Permission] | None = None,
) -> bool:
    """system_admin always passes. 'manage' on a resource (or '*') implies every action."""
    if role == "system_admin":
        return True
    permissions = list(DEFAULT_PERMISSIONS.get(role or "", []))
    if custom:
        permissions = custom + permissions
    for p in permissions:
        if p.resource == "*" and p.action == "manage":
            return True
        if p.resource == resource and p.action in ("manage", action):
            return True
    return False


def is_admin(role: str | None) -> bool:
    return role in ADMIN_ROLES
