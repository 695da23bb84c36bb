"""
Unit tests for core.permissions.
Permission checks, the manage wildcard, and pure grant/revoke edits.
"""
import pytest

from app.core.errors import AppError, ErrorKind
from app.core.permissions import (
    CANONICAL_ROLES,
    Action,
    Resource,
    add_permission,
    has_all_permissions,
    has_any_permission,
    has_permission,
    missing_permissions,
    normalize_permissions,
    remove_permission,
)

EDITOR = [
    {"resource": "posts", "actions": ["create", "read", "update"]},
    {"resource": "comments", "actions": ["manage"]},
]


def _role(name):
    return next(r for r in CANONICAL_ROLES if r["name"] == name)


class TestHasPermission:
    def test_granted_action(self):
        assert has_permission(EDITOR, "posts", "read") is True

    def test_missing_action(self):
        assert has_permission(EDITOR, "posts", "delete") is False

    def test_missing_resource(self):
        assert has_permission(EDITOR, "users", "read") is False

    def test_manage_grants_every_action(self):
        for action in Action:
            assert has_permission(EDITOR, "comments", action) is True

    def test_enum_arguments(self):
        assert has_permission(EDITOR, Resource.POSTS, Action.CREATE) is True

    def test_empty_permissions(self):
        assert has_permission([], "posts", "read") is False

    def test_any_and_all(self):
        assert has_any_permission(EDITOR, [("users", "read"), ("posts", "read")]) is True
        assert has_any_permission(EDITOR, [("users", "read"), ("logs", "read")]) is False
        assert has_all_permissions(EDITOR, [("posts", "read"), ("comments", "delete")]) is True
        assert has_all_permissions(EDITOR, [("posts", "read"), ("posts", "delete")]) is False

    def test_missing_permissions_lists_failures(self):
        assert missing_permissions(EDITOR, [("posts", "read"), ("posts", "delete"), ("users", "read")]) == [
            "posts:delete",
            "users:read",
        ]


class TestPermissionEdits:
    def test_add_new_resource(self):
        result = add_permission(EDITOR, "users", "read")
        assert {"resource": "users", "actions": ["read"]} in result

    def test_add_is_idempotent(self):
        once = add_permission(EDITOR, "posts", "delete")
        twice = add_permission(once, "posts", "delete")
        assert once == twice
        assert next(e for e in twice if e["resource"] == "posts")["actions"].count("delete") == 1

    def test_edits_do_not_mutate_input(self):
        before = [dict(e, actions=list(e["actions"])) for e in EDITOR]
        add_permission(EDITOR, "posts", "delete")
        remove_permission(EDITOR, "posts", "read")
        assert EDITOR == before

    def test_remove_action(self):
        result = remove_permission(EDITOR, "posts", "update")
        assert next(e for e in result if e["resource"] == "posts")["actions"] == ["create", "read"]

    def test_remove_last_action_drops_resource(self):
        result = remove_permission(EDITOR, "comments", "manage")
        assert all(e["resource"] != "comments" for e in result)

    def test_remove_from_missing_resource_is_noop(self):
        assert remove_permission(EDITOR, "users", "read") == EDITOR

    def test_unknown_resource_rejected(self):
        with pytest.raises(AppError) as excinfo:
            add_permission(EDITOR, "spaceships", "read")
        assert excinfo.value.code == "INVALID_RESOURCE"
        assert excinfo.value.kind is ErrorKind.VALIDATION

    def test_unknown_action_rejected(self):
        with pytest.raises(AppError) as excinfo:
            add_permission(EDITOR, "posts", "launch")
        assert excinfo.value.code == "INVALID_ACTION"


class TestNormalize:
    def test_merges_repeated_resources(self):
        result = normalize_permissions([
            {"resource": "posts", "actions": ["read"]},
            {"resource": "files", "actions": ["read"]},
            {"resource": "posts", "actions": ["update", "read"]},
        ])
        assert result == [
            {"resource": "posts", "actions": ["read", "update"]},
            {"resource": "files", "actions": ["read"]},
        ]

    def test_none_is_empty(self):
        assert normalize_permissions(None) == []

    def test_entry_without_actions_rejected(self):
        with pytest.raises(AppError) as excinfo:
            normalize_permissions([{"resource": "posts", "actions": []}])
        assert excinfo.value.code == "INVALID_PERMISSION"


class TestCanonicalRoles:
    def test_levels(self):
        levels = {r["name"]: r["level"] for r in CANONICAL_ROLES}
        assert levels == {"superadmin": 10, "admin": 8, "moderator": 5, "user": 3, "guest": 1}

    def test_superadmin_manages_everything(self):
        perms = _role("superadmin")["permissions"]
        assert all(has_permission(perms, r, Action.DELETE) for r in Resource)

    def test_admin_cannot_manage_roles(self):
        perms = _role("admin")["permissions"]
        assert has_permission(perms, "users", "delete") is True
        assert has_permission(perms, "roles", "read") is False

    def test_guest_is_read_only(self):
        perms = _role("guest")["permissions"]
        assert has_permission(perms, "posts", "read") is True
        assert has_permission(perms, "posts", "create") is False
