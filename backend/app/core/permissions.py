# app/core/permissions.py
"""
Permission model for role-based access control.

A role's permissions are plain data: a list of entries shaped like
``{"resource": "posts", "actions": ["create", "read"]}``. There is at most
one entry per resource, and the ``manage`` action grants every action on
its resource. All functions here are pure; persisting the result is the
caller's job.
"""
from __future__ import annotations

from enum import Enum
from typing import Iterable, Mapping, Sequence

from app.core.errors import validation


class Resource(str, Enum):
    USERS = "users"
    ROLES = "roles"
    POSTS = "posts"
    COMMENTS = "comments"
    SETTINGS = "settings"
    ANALYTICS = "analytics"
    REPORTS = "reports"
    FILES = "files"
    NOTIFICATIONS = "notifications"
    LOGS = "logs"


class Action(str, Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    MANAGE = "manage"


PermissionEntry = dict  # {"resource": str, "actions": list[str]}


def _value(item: str | Enum) -> str:
    return item.value if isinstance(item, Enum) else item


def _find(permissions: Iterable[Mapping], resource: str) -> Mapping | None:
    for entry in permissions:
        if entry.get("resource") == resource:
            return entry
    return None


def has_permission(permissions: Iterable[Mapping], resource: str | Resource, action: str | Action) -> bool:
    """True if an entry for `resource` holds `action` or the `manage` wildcard."""
    entry = _find(permissions, _value(resource))
    if entry is None:
        return False
    actions = entry.get("actions") or []
    return _value(action) in actions or Action.MANAGE.value in actions


def has_any_permission(permissions: Iterable[Mapping], required: Iterable[tuple]) -> bool:
    perms = list(permissions)
    return any(has_permission(perms, resource, action) for resource, action in required)


def has_all_permissions(permissions: Iterable[Mapping], required: Iterable[tuple]) -> bool:
    perms = list(permissions)
    return all(has_permission(perms, resource, action) for resource, action in required)


def missing_permissions(permissions: Iterable[Mapping], required: Iterable[tuple]) -> list[str]:
    perms = list(permissions)
    return [
        f"{_value(resource)}:{_value(action)}"
        for resource, action in required
        if not has_permission(perms, resource, action)
    ]


def add_permission(permissions: Sequence[Mapping], resource: str | Resource, action: str | Action) -> list[PermissionEntry]:
    """
    Return a copy of `permissions` with `action` granted on `resource`.
    Granting an action that is already present is a no-op.
    """
    resource, action = _parse_resource(resource), _parse_action(action)
    result = _copy(permissions)
    entry = _find(result, resource)
    if entry is None:
        result.append({"resource": resource, "actions": [action]})
    elif action not in entry["actions"]:
        entry["actions"].append(action)
    return result


def remove_permission(permissions: Sequence[Mapping], resource: str | Resource, action: str | Action) -> list[PermissionEntry]:
    """
    Return a copy of `permissions` without `action` on `resource`.
    Removing the last action of a resource drops the whole entry.
    """
    resource, action = _parse_resource(resource), _parse_action(action)
    result = _copy(permissions)
    entry = _find(result, resource)
    if entry is None:
        return result
    entry["actions"] = [a for a in entry["actions"] if a != action]
    if not entry["actions"]:
        result = [e for e in result if e["resource"] != resource]
    return result


def normalize_permissions(raw: Iterable[Mapping] | None) -> list[PermissionEntry]:
    """
    Validate resource/action names and merge repeated resources into one
    entry, keeping first-seen order for both resources and actions.
    """
    result: list[PermissionEntry] = []
    for item in raw or []:
        resource = _parse_resource(item.get("resource"))
        actions = item.get("actions") or []
        if not actions:
            raise validation("INVALID_PERMISSION", f"Permission for '{resource}' needs at least one action")
        for action in actions:
            result = add_permission(result, resource, action)
    return result


def _copy(permissions: Iterable[Mapping]) -> list[PermissionEntry]:
    return [{"resource": _value(e["resource"]), "actions": [_value(a) for a in e["actions"]]} for e in permissions]


def _parse_resource(resource) -> str:
    try:
        return Resource(_value(resource)).value
    except ValueError:
        raise validation("INVALID_RESOURCE", f"Unknown resource: {resource}")


def _parse_action(action) -> str:
    try:
        return Action(_value(action)).value
    except ValueError:
        raise validation("INVALID_ACTION", f"Unknown action: {action}")


# ------------------------------------------------------------------------------
# Canonical system roles created at bootstrap
# ------------------------------------------------------------------------------
def _grants(matrix: dict[Resource, Sequence[Action]]) -> list[PermissionEntry]:
    return [{"resource": r.value, "actions": [a.value for a in actions]} for r, actions in matrix.items()]


_CRUD = (Action.CREATE, Action.READ, Action.UPDATE, Action.DELETE)

CANONICAL_ROLES: list[dict] = [
    {
        "name": "superadmin",
        "display_name": "Super Administrator",
        "description": "Full system access with all permissions",
        "level": 10,
        "permissions": _grants({r: (Action.MANAGE,) for r in Resource}),
    },
    {
        "name": "admin",
        "display_name": "Administrator",
        "description": "Administrative access with most permissions",
        "level": 8,
        "permissions": _grants({
            Resource.USERS: _CRUD,
            Resource.POSTS: (Action.MANAGE,),
            Resource.COMMENTS: (Action.MANAGE,),
            Resource.SETTINGS: (Action.READ, Action.UPDATE),
            Resource.ANALYTICS: (Action.READ,),
            Resource.REPORTS: (Action.READ,),
            Resource.FILES: (Action.MANAGE,),
        }),
    },
    {
        "name": "moderator",
        "display_name": "Moderator",
        "description": "Content moderation and user management",
        "level": 5,
        "permissions": _grants({
            Resource.USERS: (Action.READ, Action.UPDATE),
            Resource.POSTS: (Action.READ, Action.UPDATE, Action.DELETE),
            Resource.COMMENTS: (Action.READ, Action.UPDATE, Action.DELETE),
            Resource.FILES: (Action.READ, Action.UPDATE, Action.DELETE),
        }),
    },
    {
        "name": "user",
        "display_name": "User",
        "description": "Standard user with basic permissions",
        "level": 3,
        "permissions": _grants({
            Resource.POSTS: (Action.CREATE, Action.READ, Action.UPDATE),
            Resource.COMMENTS: (Action.CREATE, Action.READ, Action.UPDATE),
            Resource.FILES: (Action.CREATE, Action.READ, Action.UPDATE),
        }),
    },
    {
        "name": "guest",
        "display_name": "Guest",
        "description": "Limited read-only access",
        "level": 1,
        "permissions": _grants({
            Resource.POSTS: (Action.READ,),
            Resource.COMMENTS: (Action.READ,),
        }),
    },
]

DEFAULT_ROLE_NAME = "user"
SUPERADMIN_ROLE_NAME = "superadmin"
# Roles allowed through owner-or-admin checks; both are system roles and cannot be renamed
ADMIN_ROLE_NAMES = ("admin", "superadmin")
# Minimum role level for system maintenance endpoints (the admin role's level)
ADMIN_LEVEL = 8
