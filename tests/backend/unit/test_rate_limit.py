"""
Unit tests for core.rate_limit.
"""
import pytest
from starlette.requests import Request

from app.core.errors import AppError, ErrorKind
from app.core.rate_limit import RequestRateLimiter, get_client_ip


def make_request(headers=None, client=("10.0.0.7", 5555)):
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
    }
    return Request(scope)


class TestClientIp:
    def test_direct_peer(self):
        assert get_client_ip(make_request()) == "10.0.0.7"

    def test_forwarded_for_takes_first_hop(self):
        request = make_request({"X-Forwarded-For": "203.0.113.9, 10.0.0.1"})
        assert get_client_ip(request) == "203.0.113.9"

    def test_no_client(self):
        assert get_client_ip(make_request(client=None)) == "unknown"


class TestRequestRateLimiter:
    def test_limit_exhausted(self):
        limiter = RequestRateLimiter()
        limiter.hit("2/minute", "auth:login", "ip:1.2.3.4")
        limiter.hit("2/minute", "auth:login", "ip:1.2.3.4")
        with pytest.raises(AppError) as excinfo:
            limiter.hit("2/minute", "auth:login", "ip:1.2.3.4")
        err = excinfo.value
        assert err.kind is ErrorKind.RATE_LIMITED
        assert err.status_code == 429
        assert 1 <= err.details["retryAfter"] <= 60

    def test_keys_and_scopes_are_independent(self):
        limiter = RequestRateLimiter()
        limiter.hit("1/minute", "auth:login", "ip:1.2.3.4")
        limiter.hit("1/minute", "auth:login", "ip:5.6.7.8")
        limiter.hit("1/minute", "password:forgot", "ip:1.2.3.4")

    def test_disabled_limiter_never_blocks(self):
        limiter = RequestRateLimiter(enabled=False)
        for _ in range(10):
            limiter.hit("1/minute", "auth:login", "ip:1.2.3.4")

    def test_reset(self):
        limiter = RequestRateLimiter()
        limiter.hit("1/minute", "auth:login", "ip:1.2.3.4")
        limiter.reset()
        limiter.hit("1/minute", "auth:login", "ip:1.2.3.4")

    def test_check_does_not_count(self):
        limiter = RequestRateLimiter()
        for _ in range(5):
            limiter.check("1/minute", "auth:login", "ip:1.2.3.4")
        limiter.hit("1/minute", "auth:login", "ip:1.2.3.4")
        with pytest.raises(AppError) as excinfo:
            limiter.check("1/minute", "auth:login", "ip:1.2.3.4")
        assert excinfo.value.details["retryAfter"] >= 1

    def test_hit_without_raising(self):
        limiter = RequestRateLimiter()
        for _ in range(3):
            limiter.hit("1/minute", "auth:login", "ip:1.2.3.4", raise_on_exceeded=False)
        with pytest.raises(AppError):
            limiter.check("1/minute", "auth:login", "ip:1.2.3.4")
