"""
Authorization Gate

Turns a bearer credential into an AuthContext, or rejects the request.
Checks run in a fixed order:

1. token present (Authorization header, then the accessToken cookie)
2. signature and expiry (expired is reported separately so clients know to refresh)
3. user still exists (loaded together with its role)
4. account active
5. account not locked
6. token issued after the last password change
"""
import logging
from typing import Optional

import jwt
from starlette.requests import Request

from app.core.authorization import AuthContext
from app.core.errors import AppError, forbidden, unauthorized
from app.core.lockout import AccountLockoutPolicy
from app.core.security import decode_access_token
from app.models.user import User

ACCESS_TOKEN_COOKIE = "accessToken"
REFRESH_TOKEN_COOKIE = "refreshToken"


def extract_token(authorization: Optional[str], cookies: Optional[dict] = None) -> Optional[str]:
    """Bearer token from the Authorization header, falling back to the accessToken cookie."""
    token = None
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization.split(" ", 1)[1].strip()
    if not token and cookies:
        token = cookies.get(ACCESS_TOKEN_COOKIE)
    return token or None


class AuthGate:
    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("uvicorn.error")

    async def authenticate(self, token: Optional[str]) -> AuthContext:
        """
        Resolve an access token to an AuthContext.

        Raises:
            AppError (UNAUTHORIZED): AUTH_REQUIRED, AUTH_TOKEN_EXPIRED, AUTH_INVALID_TOKEN,
                AUTH_USER_NOT_FOUND, AUTH_PASSWORD_CHANGED
            AppError (FORBIDDEN): ACCOUNT_INACTIVE, ACCOUNT_LOCKED
        """
        if not token:
            raise unauthorized("AUTH_REQUIRED", "Authentication required")

        try:
            claims = decode_access_token(token)
        except jwt.ExpiredSignatureError:
            raise unauthorized("AUTH_TOKEN_EXPIRED", "Access token expired", {"refreshRequired": True})
        except jwt.InvalidTokenError:
            raise unauthorized("AUTH_INVALID_TOKEN", "Invalid access token")

        user = await User.filter(id=claims["sub"]).select_related("role").first()
        if user is None:
            raise unauthorized("AUTH_USER_NOT_FOUND", "User no longer exists")

        if not user.is_active:
            raise forbidden("ACCOUNT_INACTIVE", "Account is deactivated")

        if user.is_account_locked:
            raise forbidden("ACCOUNT_LOCKED", AccountLockoutPolicy.lockout_message(user),
                            {"lockUntil": user.lock_until.isoformat()})

        issued_at = claims.get("iat")
        if user.last_password_change and (
            issued_at is None or float(issued_at) < user.last_password_change.timestamp()
        ):
            raise unauthorized("AUTH_PASSWORD_CHANGED", "Password changed recently. Please log in again.")

        return AuthContext(user=user, role=user.role, claims=claims)

    async def try_authenticate(self, request: Request) -> Optional[AuthContext]:
        """Optional authentication: a missing or unusable credential yields None."""
        token = extract_token(request.headers.get("authorization"), request.cookies)
        if not token:
            return None
        try:
            return await self.authenticate(token)
        except AppError as exc:
            self.logger.debug("Optional authentication ignored: %s", exc)
            return None
