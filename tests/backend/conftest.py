import os
import uuid

# Settings are read at import time, so the test environment goes first
TEST_DB_URL = "sqlite://:memory:?cache=shared"
os.environ["DATABASE_URL"] = TEST_DB_URL
os.environ.setdefault("NOTIFIER_BACKEND", "memory")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("TOKEN_SWEEP_INTERVAL_SECONDS", "0")
os.environ.setdefault("PASSWORD_HASH_TIME_COST", "1")

import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from tortoise import Tortoise  # noqa: E402

from app.config import settings  # noqa: E402
from app.core import db as db_module  # noqa: E402
from app.core.rate_limit import RequestRateLimiter  # noqa: E402
from app.core.security import hash_password  # noqa: E402
from app.main import app  # noqa: E402
from app.models.role import Role  # noqa: E402
from app.models.user import User  # noqa: E402
from app.services.container import build_services  # noqa: E402
from app.services.notifications import MemoryNotifier  # noqa: E402
from app.services.role_service import RoleService  # noqa: E402

db_module.DB_URL = TEST_DB_URL
db_module.TORTOISE_ORM["connections"]["default"] = TEST_DB_URL


async def _init_test_db() -> None:
    """
    Initialize a clean in-memory SQLite database for every test.
    Ensures tables are recreated from scratch and the canonical roles exist.
    """
    if Tortoise._inited:
        await Tortoise.close_connections()
    await Tortoise.init(config=db_module.TORTOISE_ORM)
    await Tortoise.generate_schemas()
    await RoleService().bootstrap()


@pytest_asyncio.fixture
async def db():
    await _init_test_db()
    yield
    await Tortoise.close_connections()


@pytest_asyncio.fixture
async def services(db):
    """
    Fresh service container with a MemoryNotifier and a disabled rate limiter,
    installed on the app for the duration of the test.
    """
    container = build_services(
        settings,
        notifier=MemoryNotifier(),
        limiter=RequestRateLimiter(enabled=False),
    )
    previous = app.state.services
    app.state.services = container
    yield container
    app.state.services = previous


@pytest_asyncio.fixture
async def outbox(services) -> MemoryNotifier:
    return services.notifier


@pytest_asyncio.fixture
async def client(services):
    """
    Provide an HTTPX AsyncClient bound to the FastAPI app with a fresh DB.
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as async_client:
        yield async_client


@pytest_asyncio.fixture
async def create_user(db):
    """
    Factory fixture to create users directly via ORM with a given role.
    """

    async def _create_user(
        password: str = "UserPass!23",
        role: str = "user",
        email: str | None = None,
        **fields,
    ) -> tuple[User, str]:
        role_obj = await Role.get(name=role)
        user = await User.create(
            first_name=fields.pop("first_name", "Test"),
            last_name=fields.pop("last_name", "User"),
            email=email or f"{role}_{uuid.uuid4().hex[:8]}@example.com",
            password_hash=hash_password(password),
            role=role_obj,
            **fields,
        )
        user.role = role_obj
        return user, password

    return _create_user


@pytest_asyncio.fixture
async def create_admin(create_user):
    async def _create_admin(password: str = "AdminPass!23") -> tuple[User, str]:
        return await create_user(password=password, role="admin")

    return _create_admin


@pytest_asyncio.fixture
async def create_superadmin(create_user):
    async def _create_superadmin(password: str = "SuperPass!23") -> tuple[User, str]:
        return await create_user(password=password, role="superadmin")

    return _create_superadmin


@pytest_asyncio.fixture
async def auth_header_factory(client):
    """
    Helper fixture to obtain Authorization headers via the login endpoint.
    """

    async def _get_headers(email: str, password: str) -> dict[str, str]:
        resp = await client.post(
            "/api/v1/auth/login",
            json={"email": email, "password": password},
        )
        assert resp.status_code == 200, resp.text
        token = resp.json()["data"]["accessToken"]
        return {"Authorization": f"Bearer {token}"}

    return _get_headers
