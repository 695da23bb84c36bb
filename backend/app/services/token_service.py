"""
Token Lifecycle Manager

Mints, refreshes, revokes and garbage-collects tokens.

- Access tokens are stateless JWTs and never persisted.
- Refresh tokens are JWTs whose SHA-256 hash is persisted as a Token row,
  together with the request metadata of the login that created them.

Refresh-token states: active -> revoked (reason), rotated (reason "rotated")
or expired. All of them are terminal.
"""
import datetime as dt
import logging
from dataclasses import dataclass
from typing import List, Optional

import jwt

from app.core.errors import not_found, unauthorized
from app.core.security import (
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
    utc_now,
)
from app.models.token import Token
from app.models.user import User
from app.services.request_meta import RequestMeta


class RevokeReason:
    LOGOUT = "logout"
    LOGOUT_ALL = "logout_all"
    PASSWORD_CHANGED = "password_changed"
    PASSWORD_RESET = "password_reset"
    ROLE_CHANGED = "role_changed"
    ACCOUNT_DEACTIVATED = "account_deactivated"
    ACCOUNT_DELETED = "account_deleted"
    USER_REVOCATION = "user_revocation"
    ROTATED = "rotated"
    MANUAL = "manual_revocation"


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str
    refresh_expires_at: dt.datetime
    session_id: str


@dataclass
class RefreshResult:
    access_token: str
    user: User
    # Only set when rotation is enabled
    refresh_token: Optional[str] = None


class TokenService:
    def __init__(self, settings, logger: Optional[logging.Logger] = None):
        self.settings = settings
        self.logger = logger or logging.getLogger("uvicorn.error")

    # -------- mint --------
    async def create_refresh_token(self, user: User, meta: Optional[RequestMeta] = None) -> tuple[str, Token]:
        meta = meta or RequestMeta()
        raw, expires_at = create_refresh_token(str(user.id))
        record = await Token.create(
            user_id=user.id,
            token_hash=Token.hash_token(raw),
            token_type="refresh",
            expires_at=expires_at,
            ip_address=meta.ip_address,
            user_agent=meta.user_agent,
            device_info=meta.device_info,
            last_used_at=utc_now(),
        )
        return raw, record

    async def mint(self, user: User, meta: Optional[RequestMeta] = None) -> TokenPair:
        """Sign an access token and persist a new refresh-token session."""
        access = create_access_token(str(user.id), user.email)
        raw, record = await self.create_refresh_token(user, meta)
        return TokenPair(
            access_token=access,
            refresh_token=raw,
            refresh_expires_at=record.expires_at,
            session_id=str(record.id),
        )

    # -------- validate / refresh --------
    async def validate_refresh_token(self, raw: str) -> Token:
        """
        Verify the JWT layer, then require an active persisted record.

        Raises:
            AppError (UNAUTHORIZED): expired, malformed, unknown or revoked token
        """
        try:
            claims = decode_refresh_token(raw)
        except jwt.ExpiredSignatureError:
            raise unauthorized("AUTH_REFRESH_EXPIRED", "Refresh token expired. Please log in again.")
        except jwt.InvalidTokenError:
            raise unauthorized("AUTH_INVALID_REFRESH_TOKEN", "Invalid refresh token")

        record = await Token.get_or_none(token_hash=Token.hash_token(raw))
        if record is None or record.is_revoked:
            raise unauthorized("AUTH_REFRESH_REVOKED", "Refresh token not found or revoked")
        if record.is_expired:
            raise unauthorized("AUTH_REFRESH_EXPIRED", "Refresh token expired. Please log in again.")
        if str(record.user_id) != str(claims["sub"]):
            raise unauthorized("AUTH_INVALID_REFRESH_TOKEN", "Invalid refresh token")
        return record

    async def refresh(self, raw: str, meta: Optional[RequestMeta] = None) -> RefreshResult:
        """
        Exchange a refresh token for a new access token.

        The refresh token is kept unless rotation is enabled, in which case the
        presented token is revoked with reason "rotated" and a new one is returned.
        """
        record = await self.validate_refresh_token(raw)
        user = await User.get_or_none(id=record.user_id)
        if user is None or not user.is_active:
            raise unauthorized("AUTH_USER_NOT_FOUND", "User not found or inactive")

        now = utc_now()
        await Token.filter(id=record.id).update(last_used_at=now)
        record.last_used_at = now

        new_refresh = None
        if self.settings.refresh_token_rotation:
            rotated = await Token.filter(id=record.id, is_revoked=False).update(
                is_revoked=True, revoked_at=now, revoked_reason=RevokeReason.ROTATED,
            )
            if not rotated:
                # Another request rotated this token first
                raise unauthorized("AUTH_REFRESH_REVOKED", "Refresh token not found or revoked")
            new_refresh, _ = await self.create_refresh_token(
                user, meta or RequestMeta(record.ip_address, record.user_agent, record.device_info or {}),
            )

        self.logger.debug("Token refreshed: %s", user.email)
        return RefreshResult(
            access_token=create_access_token(str(user.id), user.email),
            user=user,
            refresh_token=new_refresh,
        )

    # -------- revoke --------
    async def find_by_token(self, raw: str, user_id=None) -> Token:
        """Look up a session by its raw refresh token, optionally scoped to one user."""
        filters = {"token_hash": Token.hash_token(raw)}
        if user_id is not None:
            filters["user_id"] = user_id
        record = await Token.get_or_none(**filters)
        if record is None:
            raise not_found("TOKEN_NOT_FOUND", "Token not found")
        return record

    async def revoke_record(self, record: Token, reason: str = RevokeReason.MANUAL) -> None:
        """Mark a session revoked. Revoking an already revoked session is a no-op."""
        if record.is_revoked:
            return
        now = utc_now()
        updated = await Token.filter(id=record.id, is_revoked=False).update(
            is_revoked=True, revoked_at=now, revoked_reason=reason,
        )
        if updated:
            record.is_revoked = True
            record.revoked_at = now
            record.revoked_reason = reason
            self.logger.info("Token revoked: %s (%s)", record.id, reason)
        else:
            await record.refresh_from_db(fields=["is_revoked", "revoked_at", "revoked_reason"])

    async def revoke(self, raw: str, reason: str = RevokeReason.MANUAL, user_id=None) -> Token:
        record = await self.find_by_token(raw, user_id)
        await self.revoke_record(record, reason)
        return record

    async def revoke_all_for_user(self, user_id, reason: str) -> int:
        """Bulk-revoke every non-revoked session of a user; other users are untouched."""
        count = await Token.filter(user_id=user_id, is_revoked=False).update(
            is_revoked=True, revoked_at=utc_now(), revoked_reason=reason,
        )
        self.logger.info("All tokens revoked for %s: %d (%s)", user_id, count, reason)
        return count

    # -------- sessions --------
    async def list_active_sessions(self, user_id) -> List[Token]:
        return await Token.filter(
            user_id=user_id, is_revoked=False, expires_at__gt=utc_now(),
        ).order_by("-created_at")

    async def revoke_session(self, user_id, session_id) -> Token:
        record = await Token.get_or_none(id=session_id, user_id=user_id)
        if record is None:
            raise not_found("SESSION_NOT_FOUND", "Session not found")
        await self.revoke_record(record, RevokeReason.USER_REVOCATION)
        return record

    # -------- garbage collection --------
    async def cleanup_expired(self) -> int:
        """Delete sessions past their expiry, whatever their revocation state."""
        deleted = await Token.filter(expires_at__lt=utc_now()).delete()
        self.logger.info("Expired tokens cleaned: %d", deleted)
        return deleted

    async def cleanup_revoked(self) -> int:
        """Delete revoked sessions once they leave the audit retention window."""
        cutoff = utc_now() - dt.timedelta(days=self.settings.revoked_token_retention_days)
        deleted = await Token.filter(is_revoked=True, revoked_at__lt=cutoff).delete()
        self.logger.info("Revoked tokens cleaned: %d", deleted)
        return deleted

    async def statistics(self) -> dict:
        now = utc_now()
        return {
            "total": await Token.all().count(),
            "active": await Token.filter(is_revoked=False, expires_at__gt=now).count(),
            "expired": await Token.filter(expires_at__lte=now).count(),
            "revoked": await Token.filter(is_revoked=True).count(),
        }
