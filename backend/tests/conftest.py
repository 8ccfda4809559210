"""Pytest configuration.

Each test gets its own file-backed SQLite database and an application built
from explicit settings, so the suite needs neither Postgres nor a local .env.
"""

import os

# Module-level get_settings() callers (Celery app) must stay import-safe.
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("JWT_SECRET", "dev-test-secret")

from pathlib import Path
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from s2s_api.core.config import Settings
from s2s_api.core.database import Database
from s2s_api.main import create_application
from s2s_api.models import ApiKey


TEST_SECRET = "summit2shore-test-secret"
DEFAULT_EMAIL = "a@b.com"
DEFAULT_PASSWORD = "longenough1"


def make_settings(tmp_path: Path, **overrides) -> Settings:
    values = dict(
        APP_ENV="test",
        DATABASE_URL=f"sqlite+aiosqlite:///{(tmp_path / 'test.db').as_posix()}",
        JWT_SECRET=TEST_SECRET,
        BCRYPT_ROUNDS=4,
        LOG_FORMAT="console",
        CORS_ORIGINS=[],
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings_overrides() -> dict:
    """Override in a test module to change the app's settings."""
    return {}


@pytest.fixture
def settings(tmp_path: Path, settings_overrides: dict) -> Settings:
    return make_settings(tmp_path, **settings_overrides)


@pytest_asyncio.fixture
async def app(settings: Settings):
    application = create_application(settings)
    await application.state.database.create_all()
    yield application
    await application.state.database.dispose()


@pytest.fixture
def database(app) -> Database:
    return app.state.database


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def signup(client: AsyncClient, email: str = DEFAULT_EMAIL, password: str = DEFAULT_PASSWORD, **extra):
    return await client.post("/auth/signup", json={"email": email, "password": password, **extra})


async def login_token(client: AsyncClient, email: str = DEFAULT_EMAIL, password: str = DEFAULT_PASSWORD) -> str:
    response = await client.post("/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return response.json()["token"]


async def create_key(client: AsyncClient, headers: dict, **body) -> dict:
    body.setdefault("name", "test key")
    response = await client.post("/api-keys", json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


@pytest_asyncio.fixture
async def auth_headers(client: AsyncClient) -> dict:
    response = await signup(client)
    assert response.status_code == 201, response.text
    token = await login_token(client)
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def api_key(client: AsyncClient, auth_headers: dict) -> dict:
    """A freshly created key: the create response plus ready-made headers."""
    created = await create_key(client, auth_headers, name="fixture key")
    created["headers"] = {"X-API-Key": created["api_key"]}
    return created


async def load_key(database: Database, key_id: str) -> ApiKey:
    async with database.session() as session:
        res = await session.execute(select(ApiKey).where(ApiKey.id == key_id))
        return res.scalar_one()
