"""
Test Fixtures
=============

Shared fixtures: an in-memory SQLite database, an ASGI test client, a
Redis stub that is unavailable unless a test asks for the in-memory fake,
and authenticated profiles.
"""

import fnmatch
import os

# Settings are read at import time, so configure them before importing app
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET"] = "test-jwt-secret-that-is-at-least-32-chars"
os.environ["SUPABASE_JWT_SECRET"] = "test-supabase-secret-at-least-32-characters"
os.environ["REVENUECAT_API_KEY"] = "rc_test_key"
os.environ["REVENUECAT_WEBHOOK_SECRET"] = "whsec_test"
os.environ["DEV_AUTH_DISABLED"] = "false"

from typing import AsyncGenerator
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.security import create_access_token
from app.db.base import Base
from app.db.session import get_db
from app.main import app
from app.models.user import Profile

TEST_USER_ID = "user-123"
TEST_USER_EMAIL = "buyer@example.com"


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    await engine.dispose()


@pytest.fixture(autouse=True)
def redis_unavailable():
    """Every cache call sees Redis as down and degrades to a miss."""
    with patch(
        "app.services.cache.get_redis",
        new=AsyncMock(side_effect=ConnectionError("Redis unavailable")),
    ) as mock_get_redis:
        yield mock_get_redis


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to the app with the test database."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def profile(session_factory) -> Profile:
    """A stored profile for the default test user."""
    async with session_factory() as session:
        user = Profile(
            id=TEST_USER_ID,
            email=TEST_USER_EMAIL,
            full_name="Test Buyer",
        )
        session.add(user)
        await session.commit()
        return user


@pytest.fixture
def auth_headers(profile: Profile) -> dict[str, str]:
    """Bearer header carrying an access token for ``profile``."""
    token = create_access_token({"sub": profile.id, "email": profile.email})
    return {"Authorization": f"Bearer {token}"}


class FakeRedis:
    """Dict-backed stand-in for the handful of Redis commands the cache uses."""

    def __init__(self):
        self.store: dict[str, str] = {}

    async def get(self, key):
        return self.store.get(key)

    async def setex(self, key, ttl, value):
        self.store[key] = value

    async def delete(self, *keys):
        return sum(self.store.pop(key, None) is not None for key in keys)

    async def scan_iter(self, match="*"):
        for key in list(self.store):
            if fnmatch.fnmatchcase(key, match):
                yield key


@pytest.fixture
def fake_redis(redis_unavailable):
    """Replace the unavailable Redis stub with a working in-memory one."""
    fake = FakeRedis()
    redis_unavailable.side_effect = None
    redis_unavailable.return_value = fake
    yield fake
