import uuid

import pytest

from app.models.role import Role
from app.models.user import User

pytestmark = pytest.mark.asyncio


async def test_profile_read_and_update(client, create_user, auth_header_factory):
    user, password = await create_user()
    headers = await auth_header_factory(user.email, password)

    resp = await client.get("/api/v1/users/profile", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["user"]["email"] == user.email

    updated = await client.put(
        "/api/v1/users/profile",
        json={"firstName": "Grace", "bio": "Compilers", "phoneNumber": "+1 555 0100"},
        headers=headers,
    )
    assert updated.status_code == 200
    data = updated.json()["data"]["user"]
    assert data["firstName"] == "Grace"
    assert data["fullName"] == "Grace User"
    assert data["bio"] == "Compilers"
    assert data["email"] == user.email

    invalid = await client.put("/api/v1/users/profile", json={"avatar": "ftp://x"}, headers=headers)
    assert invalid.status_code == 400


async def test_preferences(client, create_user, auth_header_factory):
    user, password = await create_user()
    headers = await auth_header_factory(user.email, password)

    resp = await client.put(
        "/api/v1/users/preferences",
        json={"language": "fr", "notifications": {"push": False}},
        headers=headers,
    )
    assert resp.status_code == 200
    prefs = resp.json()["data"]["preferences"]
    assert prefs["language"] == "fr"
    assert prefs["timezone"] == "UTC"
    assert prefs["notifications"] == {"email": True, "push": False}

    bad = await client.put("/api/v1/users/preferences", json={"language": "xx"}, headers=headers)
    assert bad.status_code == 400
    assert bad.json()["error"]["code"] == "INVALID_LANGUAGE"


async def test_delete_account(client, create_user, auth_header_factory):
    user, password = await create_user()
    headers = await auth_header_factory(user.email, password)

    wrong = await client.request("DELETE", "/api/v1/users/profile", json={"password": "nope"}, headers=headers)
    assert wrong.status_code == 401
    assert wrong.json()["error"]["code"] == "INVALID_CURRENT_PASSWORD"

    resp = await client.request("DELETE", "/api/v1/users/profile", json={"password": password}, headers=headers)
    assert resp.status_code == 200
    assert await User.get_or_none(id=user.id) is None

    me = await client.get("/api/v1/auth/me", headers=headers)
    assert me.status_code == 401
    assert me.json()["error"]["code"] == "AUTH_USER_NOT_FOUND"


async def test_list_users_requires_permission(client, create_user, auth_header_factory):
    user, password = await create_user()
    headers = await auth_header_factory(user.email, password)
    resp = await client.get("/api/v1/users", headers=headers)
    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "PERMISSION_DENIED"


async def test_list_users_with_filters(client, create_admin, create_user, auth_header_factory):
    admin, password = await create_admin()
    headers = await auth_header_factory(admin.email, password)
    await create_user(first_name="Ada")
    await create_user(first_name="Alan")
    await create_user(role="moderator", first_name="Barbara")
    await create_user(first_name="Edsger", is_active=False)

    page = (await client.get("/api/v1/users?limit=2", headers=headers)).json()["data"]
    assert page["total"] == 5
    assert page["pages"] == 3
    assert len(page["users"]) == 2

    by_role = (await client.get("/api/v1/users?role=moderator", headers=headers)).json()["data"]
    assert [u["firstName"] for u in by_role["users"]] == ["Barbara"]

    inactive = (await client.get("/api/v1/users?isActive=false", headers=headers)).json()["data"]
    assert [u["firstName"] for u in inactive["users"]] == ["Edsger"]

    fuzzy = (await client.get("/api/v1/users?q=ala", headers=headers)).json()["data"]
    assert [u["firstName"] for u in fuzzy["users"]] == ["Alan"]


async def test_search_and_get_user(client, create_admin, create_user, auth_header_factory):
    admin, password = await create_admin()
    headers = await auth_header_factory(admin.email, password)
    target, _ = await create_user(first_name="Margaret")

    found = await client.get("/api/v1/users/search?q=marg", headers=headers)
    assert [u["id"] for u in found.json()["data"]["users"]] == [str(target.id)]

    short = await client.get("/api/v1/users/search?q=m", headers=headers)
    assert short.status_code == 400

    one = await client.get(f"/api/v1/users/{target.id}", headers=headers)
    assert one.json()["data"]["user"]["role"]["name"] == "user"

    missing = await client.get(f"/api/v1/users/{uuid.uuid4()}", headers=headers)
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "USER_NOT_FOUND"


async def test_user_statistics_admin_only(client, create_admin, create_user, auth_header_factory):
    admin, admin_password = await create_admin()
    user, user_password = await create_user()

    stats = await client.get("/api/v1/users/stats", headers=await auth_header_factory(admin.email, admin_password))
    assert stats.status_code == 200
    data = stats.json()["data"]
    assert data["total"] == 2
    assert data["byRole"]["admin"] == 1
    assert data["byProvider"] == {"local": 2}

    denied = await client.get("/api/v1/users/stats", headers=await auth_header_factory(user.email, user_password))
    assert denied.status_code == 403


async def test_assign_role_revokes_sessions(client, create_admin, create_user, auth_header_factory):
    admin, admin_password = await create_admin()
    admin_headers = await auth_header_factory(admin.email, admin_password)
    target, target_password = await create_user()
    login = await client.post("/api/v1/auth/login", json={"email": target.email, "password": target_password})
    target_data = login.json()["data"]

    moderator = await Role.get(name="moderator")
    resp = await client.put(
        f"/api/v1/users/{target.id}/role", json={"roleId": str(moderator.id)}, headers=admin_headers,
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["user"]["role"]["name"] == "moderator"

    refreshed = await client.post("/api/v1/auth/refresh", json={"refreshToken": target_data["refreshToken"]})
    assert refreshed.status_code == 401

    # Access tokens see the new role on the next request
    me = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {target_data['accessToken']}"})
    assert me.json()["data"]["role"]["name"] == "moderator"


async def test_assign_role_guards(client, create_admin, create_user, create_superadmin, auth_header_factory):
    admin, admin_password = await create_admin()
    admin_headers = await auth_header_factory(admin.email, admin_password)
    target, _ = await create_user()
    superadmin, _ = await create_superadmin()
    superadmin_role = await Role.get(name="superadmin")
    user_role = await Role.get(name="user")

    escalate = await client.put(
        f"/api/v1/users/{target.id}/role", json={"roleId": str(superadmin_role.id)}, headers=admin_headers,
    )
    assert escalate.status_code == 403
    assert escalate.json()["error"]["code"] == "INSUFFICIENT_LEVEL"

    demote = await client.put(
        f"/api/v1/users/{superadmin.id}/role", json={"roleId": str(user_role.id)}, headers=admin_headers,
    )
    assert demote.status_code == 403

    self_change = await client.put(
        f"/api/v1/users/{admin.id}/role", json={"roleId": str(user_role.id)}, headers=admin_headers,
    )
    assert self_change.status_code == 422
    assert self_change.json()["error"]["code"] == "SELF_ROLE_CHANGE"

    missing_role = await client.put(
        f"/api/v1/users/{target.id}/role", json={"roleId": str(uuid.uuid4())}, headers=admin_headers,
    )
    assert missing_role.status_code == 404
    assert missing_role.json()["error"]["code"] == "ROLE_NOT_FOUND"


async def test_moderator_cannot_promote_to_admin(client, create_user, auth_header_factory):
    moderator, password = await create_user(role="moderator")
    headers = await auth_header_factory(moderator.email, password)
    target, _ = await create_user()
    admin_role = await Role.get(name="admin")
    guest_role = await Role.get(name="guest")

    promote = await client.put(f"/api/v1/users/{target.id}/role", json={"roleId": str(admin_role.id)}, headers=headers)
    assert promote.status_code == 403

    demote = await client.put(f"/api/v1/users/{target.id}/role", json={"roleId": str(guest_role.id)}, headers=headers)
    assert demote.status_code == 200


async def test_deactivate_and_activate(client, create_admin, create_user, auth_header_factory):
    admin, admin_password = await create_admin()
    admin_headers = await auth_header_factory(admin.email, admin_password)
    target, target_password = await create_user()
    target_headers = await auth_header_factory(target.email, target_password)

    resp = await client.put(f"/api/v1/users/{target.id}/deactivate", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["user"]["isActive"] is False

    me = await client.get("/api/v1/auth/me", headers=target_headers)
    assert me.status_code == 403
    assert me.json()["error"]["code"] == "ACCOUNT_INACTIVE"
    login = await client.post("/api/v1/auth/login", json={"email": target.email, "password": target_password})
    assert login.json()["error"]["code"] == "ACCOUNT_INACTIVE"

    self_off = await client.put(f"/api/v1/users/{admin.id}/deactivate", headers=admin_headers)
    assert self_off.status_code == 422
    assert self_off.json()["error"]["code"] == "SELF_DEACTIVATION"

    back = await client.put(f"/api/v1/users/{target.id}/activate", headers=admin_headers)
    assert back.json()["data"]["user"]["isActive"] is True
    login = await client.post("/api/v1/auth/login", json={"email": target.email, "password": target_password})
    assert login.status_code == 200


async def test_unlock(client, create_admin, create_user, auth_header_factory, services):
    admin, admin_password = await create_admin()
    admin_headers = await auth_header_factory(admin.email, admin_password)
    target, target_password = await create_user()

    for _ in range(services.settings.max_login_attempts):
        await client.post("/api/v1/auth/login", json={"email": target.email, "password": "WrongPass!23"})
    locked = await client.post("/api/v1/auth/login", json={"email": target.email, "password": target_password})
    assert locked.status_code == 403

    resp = await client.put(f"/api/v1/users/{target.id}/unlock", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["user"]["isLocked"] is False

    login = await client.post("/api/v1/auth/login", json={"email": target.email, "password": target_password})
    assert login.status_code == 200
