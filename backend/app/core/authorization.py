# app/core/authorization.py
"""
Route-level authorization checks.

The gate (app.services.gate) establishes *who* is calling and produces an
AuthContext. Routes then state *what* is required as an ordered list of
predicates. Each predicate looks at the context (and the request's path
parameters) and returns None to admit or an AppError to reject; evaluation
stops at the first rejection.

Prefer `min_level` over `role_in`: role names can be renamed, levels cannot
be bypassed that way. `role_in` is meant for system roles, whose names are
immutable.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence

from app.core.errors import AppError, forbidden
from app.core.permissions import (
    ADMIN_ROLE_NAMES,
    has_all_permissions,
    has_any_permission,
    has_permission,
    missing_permissions,
)
from app.models.role import Role
from app.models.user import User


@dataclass
class AuthContext:
    """Resolved identity attached to an authenticated request."""

    user: User
    role: Role
    claims: dict[str, Any] = field(default_factory=dict)

    @property
    def user_id(self) -> str:
        return str(self.user.id)

    @property
    def role_name(self) -> str:
        return self.role.name

    @property
    def level(self) -> int:
        return self.role.level

    @property
    def permissions(self) -> list:
        # An inactive role grants nothing
        return list(self.role.permissions or []) if self.role.is_active else []

    @property
    def is_admin(self) -> bool:
        return self.role_name in ADMIN_ROLE_NAMES


Predicate = Callable[[AuthContext, Mapping[str, Any]], Optional[AppError]]


# -------- predicates --------
def role_in(*names: str) -> Predicate:
    allowed = {n.lower() for n in names}

    def check(ctx: AuthContext, params: Mapping[str, Any]) -> Optional[AppError]:
        if ctx.role_name in allowed:
            return None
        return forbidden("INSUFFICIENT_ROLE", "You do not have the required role",
                         {"required": sorted(allowed), "current": ctx.role_name})

    check.__name__ = f"role_in({', '.join(sorted(allowed))})"
    return check


def permission(resource: str, action: str) -> Predicate:
    def check(ctx: AuthContext, params: Mapping[str, Any]) -> Optional[AppError]:
        if has_permission(ctx.permissions, resource, action):
            return None
        return forbidden("PERMISSION_DENIED", f"Permission denied: {action} on {resource}",
                         {"required": f"{resource}:{action}"})

    check.__name__ = f"permission({resource}:{action})"
    return check


def any_permission(*required: tuple[str, str]) -> Predicate:
    def check(ctx: AuthContext, params: Mapping[str, Any]) -> Optional[AppError]:
        if has_any_permission(ctx.permissions, required):
            return None
        return forbidden("PERMISSION_DENIED", "Permission denied",
                         {"anyOf": [f"{r}:{a}" for r, a in required]})

    check.__name__ = "any_permission"
    return check


def all_permissions(*required: tuple[str, str]) -> Predicate:
    def check(ctx: AuthContext, params: Mapping[str, Any]) -> Optional[AppError]:
        if has_all_permissions(ctx.permissions, required):
            return None
        return forbidden("PERMISSION_DENIED", "Permission denied",
                         {"missing": missing_permissions(ctx.permissions, required)})

    check.__name__ = "all_permissions"
    return check


def min_level(level: int) -> Predicate:
    def check(ctx: AuthContext, params: Mapping[str, Any]) -> Optional[AppError]:
        if ctx.level >= level:
            return None
        return forbidden("INSUFFICIENT_LEVEL", "Insufficient role level",
                         {"required": level, "current": ctx.level})

    check.__name__ = f"min_level({level})"
    return check


def owner_or_admin(owner_param: str = "user_id") -> Predicate:
    """Admit when the path parameter `owner_param` is the caller's id, or the caller is an admin."""

    def check(ctx: AuthContext, params: Mapping[str, Any]) -> Optional[AppError]:
        owner = params.get(owner_param)
        if owner is not None and str(owner) == ctx.user_id:
            return None
        if ctx.is_admin:
            return None
        return forbidden("NOT_RESOURCE_OWNER", "You can only access your own resources")

    check.__name__ = f"owner_or_admin({owner_param})"
    return check


def email_verified() -> Predicate:
    def check(ctx: AuthContext, params: Mapping[str, Any]) -> Optional[AppError]:
        if ctx.user.is_email_verified:
            return None
        return forbidden("EMAIL_NOT_VERIFIED", "Please verify your email address")

    check.__name__ = "email_verified"
    return check


# -------- pipeline --------
def evaluate(
    ctx: AuthContext,
    predicates: Sequence[Predicate],
    params: Optional[Mapping[str, Any]] = None,
) -> Optional[AppError]:
    """Run predicates in order; return the first rejection or None."""
    params = params or {}
    for predicate in predicates:
        rejection = predicate(ctx, params)
        if rejection is not None:
            return rejection
    return None


def enforce(
    ctx: AuthContext,
    predicates: Iterable[Predicate],
    params: Optional[Mapping[str, Any]] = None,
    logger: Optional[logging.Logger] = None,
) -> AuthContext:
    """
    Like `evaluate`, but raises the rejection.

    Raises:
        AppError (FORBIDDEN): first failing predicate
    """
    rejection = evaluate(ctx, list(predicates), params)
    if rejection is not None:
        (logger or logging.getLogger("uvicorn.error")).warning(
            "Authorization denied: user=%s role=%s code=%s", ctx.user_id, ctx.role_name, rejection.code)
        raise rejection
    return ctx
