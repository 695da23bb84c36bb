"""
Service container.

Every collaborator (logger, notifier, rate limiter, lockout policy, OAuth
client) is constructed here once and passed into the services explicitly.
The app keeps the container on `app.state.services`; tests build their own
with a MemoryNotifier and a disabled limiter.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from app.core.lockout import AccountLockoutPolicy
from app.core.rate_limit import RequestRateLimiter
from app.services.auth_service import AuthService
from app.services.gate import AuthGate
from app.services.notifications import Notifier, build_notifier
from app.services.oauth_client import OAuthClient
from app.services.oauth_service import OAuthService
from app.services.role_service import RoleService
from app.services.token_service import TokenService
from app.services.user_service import UserService


@dataclass
class Services:
    settings: object
    logger: logging.Logger
    notifier: Notifier
    limiter: RequestRateLimiter
    lockout: AccountLockoutPolicy
    gate: AuthGate
    tokens: TokenService
    auth: AuthService
    roles: RoleService
    users: UserService
    oauth: OAuthService


def build_services(
    settings,
    logger: Optional[logging.Logger] = None,
    notifier: Optional[Notifier] = None,
    limiter: Optional[RequestRateLimiter] = None,
    oauth_client: Optional[OAuthClient] = None,
) -> Services:
    logger = logger or logging.getLogger("uvicorn.error")
    notifier = notifier or build_notifier(settings, logger)
    limiter = limiter or RequestRateLimiter(enabled=settings.rate_limit_enabled, logger=logger)
    lockout = AccountLockoutPolicy(settings.max_login_attempts, settings.lock_time_minutes)

    tokens = TokenService(settings, logger)
    auth = AuthService(settings, tokens, notifier, lockout, logger)
    return Services(
        settings=settings,
        logger=logger,
        notifier=notifier,
        limiter=limiter,
        lockout=lockout,
        gate=AuthGate(logger),
        tokens=tokens,
        auth=auth,
        roles=RoleService(logger),
        users=UserService(tokens, lockout, logger),
        oauth=OAuthService(tokens, auth, oauth_client or OAuthClient(settings, logger=logger), settings, logger),
    )


class TokenSweeper:
    """Background task running both token garbage-collection sweeps periodically."""

    def __init__(self, tokens: TokenService, interval_seconds: int, logger: Optional[logging.Logger] = None):
        self.tokens = tokens
        self.interval_seconds = interval_seconds
        self.logger = logger or logging.getLogger("uvicorn.error")
        self._task: Optional[asyncio.Task] = None

    async def sweep_once(self) -> dict:
        return {
            "expired": await self.tokens.cleanup_expired(),
            "revoked": await self.tokens.cleanup_revoked(),
        }

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.sweep_once()
            except Exception:
                # Keep sweeping; a failed pass is retried on the next interval
                self.logger.exception("Token sweep failed")

    def start(self) -> None:
        if self.interval_seconds <= 0 or self._task is not None:
            return
        self._task = asyncio.create_task(self._loop())
        self.logger.info("Token sweeper started (interval: %ds)", self.interval_seconds)

    async def stop(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                self.logger.info("Token sweeper stopped")
        self._task = None
