import pytest

from app.core.rate_limit import RequestRateLimiter

pytestmark = pytest.mark.asyncio


@pytest.fixture
def limiter(services):
    services.limiter = RequestRateLimiter(enabled=True)
    return services.limiter


async def test_login_is_rate_limited_per_ip(client, limiter):
    credentials = {"email": "nobody@example.com", "password": "Whatever!23"}
    for _ in range(5):
        resp = await client.post("/api/v1/auth/login", json=credentials)
        assert resp.status_code == 401

    blocked = await client.post("/api/v1/auth/login", json=credentials)
    assert blocked.status_code == 429
    assert blocked.json()["error"]["code"] == "RATE_LIMITED"
    assert int(blocked.headers["Retry-After"]) > 0

    # Other endpoints and other clients keep their own budget
    other_ip = await client.post(
        "/api/v1/auth/login", json=credentials, headers={"X-Forwarded-For": "203.0.113.9"},
    )
    assert other_ip.status_code == 401
    forgot = await client.post("/api/v1/password/forgot", json={"email": "nobody@example.com"})
    assert forgot.status_code == 200


async def test_password_reset_budget(client, limiter):
    for _ in range(3):
        assert (await client.post("/api/v1/password/forgot", json={"email": "a@example.com"})).status_code == 200
    resp = await client.post("/api/v1/password/forgot", json={"email": "a@example.com"})
    assert resp.status_code == 429


async def test_successful_logins_do_not_use_the_budget(client, limiter, create_user):
    user, password = await create_user()
    for _ in range(8):
        resp = await client.post("/api/v1/auth/login", json={"email": user.email, "password": password})
        assert resp.status_code == 200

    # Failures from the same IP still count and eventually block the right password too
    for _ in range(5):
        resp = await client.post("/api/v1/auth/login", json={"email": "nobody@example.com", "password": "Wrong!234"})
        assert resp.status_code == 401
    blocked = await client.post("/api/v1/auth/login", json={"email": user.email, "password": password})
    assert blocked.status_code == 429


async def test_authenticated_routes_are_budgeted_per_user(client, services, limiter, create_user, auth_header_factory):
    services.settings = services.settings.model_copy(update={"rate_limit_default": "3/minute"})
    first, first_password = await create_user()
    second, second_password = await create_user()
    first_headers = await auth_header_factory(first.email, first_password)
    second_headers = await auth_header_factory(second.email, second_password)

    for _ in range(3):
        assert (await client.get("/api/v1/auth/me", headers=first_headers)).status_code == 200
    blocked = await client.get("/api/v1/users/profile", headers=first_headers)
    assert blocked.status_code == 429
    assert blocked.json()["error"]["code"] == "RATE_LIMITED"

    # Same IP, different user
    assert (await client.get("/api/v1/auth/me", headers=second_headers)).status_code == 200


async def test_anonymous_requests_are_rejected_before_the_budget(client, services, limiter):
    services.settings = services.settings.model_copy(update={"rate_limit_default": "1/minute"})
    for _ in range(3):
        resp = await client.get("/api/v1/auth/me")
        assert resp.status_code == 401
