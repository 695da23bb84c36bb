# app/core/rate_limit.py
"""
Rate limiting.

Best-effort abuse mitigation, not a security boundary: counters live in the
process (limits MemoryStorage) and are lost on restart. The limiter is an
explicitly constructed object stored on app.state; routes reach it through
the rate limit dependencies in app.api.v1.deps.
"""
import logging
import time
from typing import Optional

from limits import parse
from limits.storage import MemoryStorage, Storage
from limits.strategies import MovingWindowRateLimiter
from starlette.requests import Request

from app.core.errors import AppError, ErrorKind


def get_client_ip(request: Request) -> str:
    """
    Get client IP, respecting X-Forwarded-For for proxied requests.
    Falls back to the direct peer address.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class RequestRateLimiter:
    """Moving-window limiter keyed by (scope, identity)."""

    def __init__(
        self,
        enabled: bool = True,
        storage: Optional[Storage] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.enabled = enabled
        self._storage = storage or MemoryStorage()
        self._limiter = MovingWindowRateLimiter(self._storage)
        self.logger = logger or logging.getLogger("uvicorn.error")

    def hit(self, limit: str, scope: str, key: str, raise_on_exceeded: bool = True) -> None:
        """
        Count one request for `key` under `scope`.

        Raises:
            AppError (RATE_LIMITED): when the limit is exhausted; details carry
            the number of seconds until a slot frees up
        """
        if not self.enabled:
            return
        item = parse(limit)
        if self._limiter.hit(item, scope, key) or not raise_on_exceeded:
            return
        self._exceeded(item, limit, scope, key)

    def check(self, limit: str, scope: str, key: str) -> None:
        """Reject when `key` has no budget left, without counting a request."""
        if not self.enabled:
            return
        item = parse(limit)
        if not self._limiter.test(item, scope, key):
            self._exceeded(item, limit, scope, key)

    def _exceeded(self, item, limit: str, scope: str, key: str):
        reset_time, _remaining = self._limiter.get_window_stats(item, scope, key)
        retry_after = max(1, int(reset_time - time.time()))
        self.logger.warning("Rate limit exceeded: %s on %s (%s)", key, scope, limit)
        raise AppError(
            ErrorKind.RATE_LIMITED,
            "RATE_LIMITED",
            f"Too many requests. Please try again in {retry_after} seconds.",
            {"retryAfter": retry_after},
        )

    def reset(self) -> None:
        self._storage.reset()
