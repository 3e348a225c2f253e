import asyncio
import os
import tempfile
from pathlib import Path

# Must be set before core.config is imported
_TEST_DIR = Path(tempfile.mkdtemp(prefix="mathgame-tests-"))
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR / 'test.db'}"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["EXPOSE_LEGACY_PASSWORD_HASHES"] = "false"

import pytest
from fastapi.testclient import TestClient

import app as app_module
from core import models  # noqa: F401
from core.database import Base, SessionLocal, engine


async def _reset_schema():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


@pytest.fixture(autouse=True)
def fresh_database():
    asyncio.run(_reset_schema())
    yield


@pytest.fixture
def client():
    with TestClient(app_module.app) as test_client:
        yield test_client


@pytest.fixture
def with_session():
    """Run ``fn(session)`` on a fresh session and return its result."""

    def _run(fn):
        async def _inner():
            async with SessionLocal() as session:
                return await fn(session)

        return asyncio.run(_inner())

    return _run


@pytest.fixture
def register_user(client):
    def _register(username="minji", password="sup3rsecret", grade=3, school_name="Hanbit Elementary"):
        return client.post(
            "/api/register",
            json={"username": username, "password": password, "grade": grade, "schoolName": school_name},
        )

    return _register
