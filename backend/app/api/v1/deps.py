# app/api/v1/deps.py
from typing import Optional

from fastapi import Depends, Header, Request

from app.core.authorization import (
    AuthContext,
    Predicate,
    enforce,
    min_level,
    permission,
    role_in,
)
from app.core.permissions import ADMIN_ROLE_NAMES
from app.core.rate_limit import get_client_ip
from app.core.errors import AppError
from app.services.container import Services
from app.services.gate import extract_token
from app.services.request_meta import RequestMeta


def get_services(request: Request) -> Services:
    """The service container built at startup (see app.main)."""
    return request.app.state.services


def get_request_meta(request: Request) -> RequestMeta:
    return RequestMeta.from_request(request)


async def get_auth_context(
    request: Request,
    authorization: str | None = Header(default=None),
    services: Services = Depends(get_services),
) -> AuthContext:
    """
    FastAPI dependency running the authorization gate.

    The token is taken from either:
    1. Authorization header (Bearer token) - preferred method
    2. HttpOnly cookie (accessToken) - fallback method

    Returns:
        AuthContext: the user (with role) and the token claims

    Raises:
        AppError (401): AUTH_REQUIRED, AUTH_TOKEN_EXPIRED, AUTH_INVALID_TOKEN,
            AUTH_USER_NOT_FOUND, AUTH_PASSWORD_CHANGED
        AppError (403): ACCOUNT_INACTIVE, ACCOUNT_LOCKED

    Usage:
        @router.get("/protected")
        async def protected_route(ctx: AuthContext = Depends(get_auth_context)):
            return {"user_id": ctx.user_id}
    """
    token = extract_token(authorization, request.cookies)
    ctx = await services.gate.authenticate(token)
    request.state.auth = ctx
    return ctx


async def get_optional_auth_context(
    request: Request,
    services: Services = Depends(get_services),
) -> Optional[AuthContext]:
    """Like get_auth_context, but anonymous or unusable credentials yield None instead of an error."""
    ctx = await services.gate.try_authenticate(request)
    if ctx is not None:
        request.state.auth = ctx
    return ctx


def authorize(*predicates: Predicate):
    """
    Build a dependency that authenticates the caller and then runs
    `predicates` in order, rejecting on the first failure. Path parameters
    are visible to the predicates (used by owner_or_admin).
    """

    async def dependency(
        request: Request,
        ctx: AuthContext = Depends(get_auth_context),
        services: Services = Depends(get_services),
    ) -> AuthContext:
        return enforce(ctx, predicates, request.path_params, services.logger)

    return dependency


def require_permission(resource: str, action: str):
    return authorize(permission(resource, action))


def require_min_level(level: int):
    return authorize(min_level(level))


def require_roles(*names: str):
    return authorize(role_in(*names))


# Admin and superadmin are system roles, so checking them by name is safe
require_admin = authorize(role_in(*ADMIN_ROLE_NAMES))


def rate_limit(scope: str, limit_setting: str = "rate_limit_default"):
    """
    Dependency counting an anonymous request against `scope`, keyed by client
    IP. The limit string is read from settings at request time.
    """

    async def dependency(request: Request, services: Services = Depends(get_services)) -> None:
        services.limiter.hit(getattr(services.settings, limit_setting), scope, f"ip:{get_client_ip(request)}")

    return dependency


def failed_attempts_limit(scope: str, limit_setting: str):
    """
    Like rate_limit, but only requests that end in an AppError use up the
    budget, so successful logins from a shared IP are never throttled.
    An exhausted budget still rejects up front.
    """

    async def dependency(request: Request, services: Services = Depends(get_services)):
        limit = getattr(services.settings, limit_setting)
        key = f"ip:{get_client_ip(request)}"
        services.limiter.check(limit, scope, key)
        try:
            yield
        except AppError:
            services.limiter.hit(limit, scope, key, raise_on_exceeded=False)
            raise

    return dependency


async def api_rate_limit(
    ctx: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
) -> None:
    """
    General budget (RATE_LIMIT_DEFAULT) for authenticated routes. The gate
    runs first, so callers are keyed by user id rather than by IP.
    """
    services.limiter.hit(services.settings.rate_limit_default, "api", f"user:{ctx.user_id}")
