import datetime as dt

import pytest

from app.core.security import utc_now
from app.models.user import User
from app.services.notifications import Template

pytestmark = pytest.mark.asyncio

NEW_PASSWORD = "ResetPass!99"


async def request_reset(client, outbox, email: str) -> str:
    resp = await client.post("/api/v1/password/forgot", json={"email": email})
    assert resp.status_code == 200
    return outbox.last(Template.PASSWORD_RESET, email).data["token"]


async def test_forgot_password_same_answer_for_unknown_email(client, outbox, create_user):
    user, _ = await create_user()
    known = await client.post("/api/v1/password/forgot", json={"email": user.email})
    unknown = await client.post("/api/v1/password/forgot", json={"email": "nobody@example.com"})

    assert known.status_code == unknown.status_code == 200
    assert known.json() == unknown.json()
    assert outbox.last(Template.PASSWORD_RESET, user.email) is not None
    assert outbox.last(Template.PASSWORD_RESET, "nobody@example.com") is None


async def test_forgot_password_skips_inactive_accounts(client, outbox, create_user):
    user, _ = await create_user(is_active=False)
    resp = await client.post("/api/v1/password/forgot", json={"email": user.email})
    assert resp.status_code == 200
    assert outbox.last(Template.PASSWORD_RESET, user.email) is None


async def test_reset_flow(client, outbox, create_user, auth_header_factory):
    user, old_password = await create_user()
    headers = await auth_header_factory(user.email, old_password)
    raw = await request_reset(client, outbox, user.email)

    verify = await client.get(f"/api/v1/password/verify/{raw}")
    assert verify.status_code == 200
    assert verify.json()["data"] == {"valid": True, "email": user.email}

    resp = await client.post(f"/api/v1/password/reset/{raw}", json={"password": NEW_PASSWORD})
    assert resp.status_code == 200
    assert outbox.last(Template.PASSWORD_CHANGED, user.email) is not None

    # Old credentials and old access tokens are dead
    old_login = await client.post("/api/v1/auth/login", json={"email": user.email, "password": old_password})
    assert old_login.status_code == 401
    me = await client.get("/api/v1/auth/me", headers=headers)
    assert me.json()["error"]["code"] == "AUTH_PASSWORD_CHANGED"

    new_login = await client.post("/api/v1/auth/login", json={"email": user.email, "password": NEW_PASSWORD})
    assert new_login.status_code == 200

    # Token is single-use
    again = await client.post(f"/api/v1/password/reset/{raw}", json={"password": "Another!Pass1"})
    assert again.status_code == 400
    assert again.json()["error"]["code"] == "INVALID_OR_EXPIRED_TOKEN"
    assert (await client.get(f"/api/v1/password/verify/{raw}")).status_code == 400


async def test_reset_revokes_refresh_tokens(client, outbox, create_user):
    user, password = await create_user()
    login = await client.post("/api/v1/auth/login", json={"email": user.email, "password": password})
    refresh_token = login.json()["data"]["refreshToken"]

    raw = await request_reset(client, outbox, user.email)
    await client.post(f"/api/v1/password/reset/{raw}", json={"password": NEW_PASSWORD})

    resp = await client.post("/api/v1/auth/refresh", json={"refreshToken": refresh_token})
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "AUTH_REFRESH_REVOKED"


async def test_reset_clears_lockout(client, outbox, create_user):
    user, _ = await create_user()
    await User.filter(id=user.id).update(
        login_attempts=5, is_locked=True, lock_until=utc_now() + dt.timedelta(hours=2),
    )
    raw = await request_reset(client, outbox, user.email)
    await client.post(f"/api/v1/password/reset/{raw}", json={"password": NEW_PASSWORD})

    stored = await User.get(id=user.id)
    assert stored.is_account_locked is False
    assert stored.login_attempts == 0
    login = await client.post("/api/v1/auth/login", json={"email": user.email, "password": NEW_PASSWORD})
    assert login.status_code == 200


async def test_expired_reset_token(client, outbox, create_user):
    user, _ = await create_user()
    raw = await request_reset(client, outbox, user.email)
    await User.filter(id=user.id).update(password_reset_expires=utc_now() - dt.timedelta(minutes=1))

    resp = await client.post(f"/api/v1/password/reset/{raw}", json={"password": NEW_PASSWORD})
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "INVALID_OR_EXPIRED_TOKEN"


async def test_reset_rejects_weak_password(client, outbox, create_user):
    user, _ = await create_user()
    raw = await request_reset(client, outbox, user.email)
    resp = await client.post(f"/api/v1/password/reset/{raw}", json={"password": "weakpass"})
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "VALIDATION_ERROR"
    # The token was not consumed
    assert (await client.get(f"/api/v1/password/verify/{raw}")).status_code == 200


async def test_reset_sets_first_password_for_oauth_account(client, outbox, create_user):
    user, _ = await create_user(provider="google")
    await User.filter(id=user.id).update(password_hash=None)
    raw = await request_reset(client, outbox, user.email)
    await client.post(f"/api/v1/password/reset/{raw}", json={"password": NEW_PASSWORD})

    login = await client.post("/api/v1/auth/login", json={"email": user.email, "password": NEW_PASSWORD})
    assert login.status_code == 200
    assert login.json()["data"]["user"]["hasPassword"] is True
