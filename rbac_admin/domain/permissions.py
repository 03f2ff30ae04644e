from __future__ import annotations

from collections.abc import Collection, Iterable

PERM_ROOT_ALL = "root_all"

PERM_ROLE_READ = "role:read"
PERM_ROLE_CREATE = "role:create"
PERM_ROLE_UPDATE = "role:update"
PERM_ROLE_DELETE = "role:delete"

PERM_PERMISSION_READ = "permission:read"
PERM_PERMISSION_CREATE = "permission:create"
PERM_PERMISSION_UPDATE = "permission:update"
PERM_PERMISSION_DELETE = "permission:delete"

PERM_USER_READ = "user:read"
PERM_USER_CREATE = "user:create"
PERM_USER_UPDATE = "user:update"
PERM_USER_DELETE = "user:delete"

PERM_DEPARTMENT_READ = "department:read"
PERM_DEPARTMENT_CREATE = "department:create"
PERM_DEPARTMENT_UPDATE = "department:update"
PERM_DEPARTMENT_DELETE = "department:delete"

PERM_USER_ROLE_READ = "user-role:read"
PERM_USER_ROLE_CREATE = "user-role:create"
PERM_USER_ROLE_DELETE = "user-role:delete"

NO_PERMISSIONS_MESSAGE = "You do not have any permissions assigned"


def has_permission(granted: Collection[str], permission: str) -> bool:
    return permission in granted or PERM_ROOT_ALL in granted


def permission_denial(granted: Collection[str], required: Iterable[str]) -> str | None:
    """Return the reason a caller holding ``granted`` may not proceed, or None.

    Every required code must be held; ``root_all`` satisfies any requirement.
    """
    expected = [item for item in required if item]
    if not expected:
        return None
    if not granted:
        return NO_PERMISSIONS_MESSAGE
    missing = [item for item in expected if not has_permission(granted, item)]
    if missing:
        return f"You do not have the required permissions: {', '.join(missing)}"
    return None
