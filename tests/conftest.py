"""
Pytest fixtures for Academy Auth testing infrastructure.

This module provides:
1. Database fixtures (in-memory SQLite via aiosqlite)
2. An in-process Redis double
3. Common test data fixtures (users, clock, settings)
"""

import os
from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Set environment variables BEFORE any imports that might load settings
# This must happen at module level, not in fixtures, to run before test collection
os.environ.setdefault("ACADEMY_AUTH_ENVIRONMENT", "testing")
os.environ.setdefault("ACADEMY_AUTH_SECRET_KEY", "test-secret-key-for-testing-must-be-32-chars")
os.environ.setdefault("ACADEMY_AUTH_DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("ACADEMY_AUTH_REDIS_URL", "redis://localhost:6380/0")
os.environ.setdefault("ACADEMY_AUTH_WEBAUTHN_RP_ID", "academy.example")
os.environ.setdefault("ACADEMY_AUTH_WEBAUTHN_ORIGIN", "https://academy.example")

from academy_auth.config import Settings, get_settings  # noqa: E402
from academy_auth.models.orm import Base, User  # noqa: E402

TEST_ORIGIN = "https://academy.example"


# ==================== REDIS DOUBLES ====================


class FakeRedis:
    """
    Dict-backed stand-in for redis.asyncio.Redis (decode_responses=True).

    Implements only the commands the services use. TTLs are recorded but not
    enforced, so expiry checks in the services themselves are exercised.
    """

    def __init__(self):
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    async def ping(self) -> bool:
        return True

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    async def set(self, key: str, value, ex: int | None = None) -> bool:
        self.data[key] = str(value)
        if ex is not None:
            self.ttls[key] = ex
        return True

    async def setex(self, key: str, ttl: int, value) -> bool:
        return await self.set(key, value, ex=ttl)

    async def getdel(self, key: str) -> str | None:
        self.ttls.pop(key, None)
        return self.data.pop(key, None)

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if key in self.data:
                del self.data[key]
                self.ttls.pop(key, None)
                removed += 1
        return removed

    async def incr(self, key: str) -> int:
        value = int(self.data.get(key, "0")) + 1
        self.data[key] = str(value)
        return value

    async def expire(self, key: str, ttl: int) -> bool:
        if key not in self.data:
            return False
        self.ttls[key] = ttl
        return True


class ExpiringRedis(FakeRedis):
    """FakeRedis that drops keys once their TTL has run out on the given clock."""

    def __init__(self, clock):
        super().__init__()
        self.clock = clock
        self.deadlines: dict[str, datetime] = {}

    async def set(self, key: str, value, ex: int | None = None) -> bool:
        if ex is not None:
            self.deadlines[key] = self.clock() + timedelta(seconds=ex)
        return await super().set(key, value, ex=ex)

    async def getdel(self, key: str) -> str | None:
        deadline = self.deadlines.pop(key, None)
        if deadline is not None and self.clock() >= deadline:
            self.data.pop(key, None)
            self.ttls.pop(key, None)
        return await super().getdel(key)


class UnavailableRedis:
    """Redis double whose every command fails as if the server were down."""

    def __getattr__(self, name):
        async def _fail(*args, **kwargs):
            raise RedisConnectionError("Connection refused")

        return _fail


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime | None = None):
        self.now = now or datetime(2025, 1, 15, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


# ==================== DATABASE FIXTURES ====================


@pytest_asyncio.fixture
async def async_engine():
    """
    Fresh in-memory database per test.

    StaticPool keeps the single connection alive so every session sees the
    same in-memory database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def async_session_factory(async_engine):
    """Create async session factory."""
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(async_session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for each test."""
    async with async_session_factory() as session:
        yield session
        await session.rollback()


# ==================== MOCK FIXTURES ====================


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def unavailable_redis() -> UnavailableRedis:
    return UnavailableRedis()


@pytest.fixture
def expiring_redis(clock) -> ExpiringRedis:
    return ExpiringRedis(clock)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


# ==================== TEST DATA FIXTURES ====================


@pytest.fixture
def settings() -> Settings:
    return get_settings()


@pytest.fixture
def injected_settings() -> Settings:
    """Settings built by hand, with a secret that differs from the environment."""
    return Settings(secret_key="injected-secret-key-for-a-second-application")


@pytest_asyncio.fixture
async def user(db_session: AsyncSession) -> User:
    """A committed, active user."""
    account = User(email="learner@academy.example", name="Ada Learner")
    db_session.add(account)
    await db_session.commit()
    return account


@pytest_asyncio.fixture
async def other_user(db_session: AsyncSession) -> User:
    account = User(email="someone.else@academy.example", name="Someone Else")
    db_session.add(account)
    await db_session.commit()
    return account


# ==================== MARKERS ====================


def pytest_configure(config):
    """Register custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, in-process stores)")
    config.addinivalue_line(
        "markers", "integration: Integration tests (full HTTP stack)"
    )
    config.addinivalue_line("markers", "slow: Tests that take >1 second")
