"""Pytest configuration and fixtures for Tybee tests.

This module provides reusable fixtures for:
- Test settings (no Redis, no scheduler, in-memory SQLite)
- An in-memory Redis with a controllable clock
- Test database sessions (in-memory SQLite via aiosqlite)
- Async HTTP client against the app without a server
"""

from collections.abc import AsyncGenerator, Generator

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from tests.mocks.fake_redis import FakeClock, FakeRedis
from tybee.config import Settings
from tybee.core.database import enable_sqlite_foreign_keys
from tybee.main import create_app
from tybee.models import Base
from tybee.services.cache import CacheService

# =============================================================================
# Settings Fixtures
# =============================================================================


@pytest.fixture
def test_settings() -> Settings:
    """Settings with Redis and the scheduler off; sleeps are injected per test."""
    return Settings(
        app_env="development",  # type: ignore[arg-type]
        debug=False,
        log_level="DEBUG",  # type: ignore[arg-type]
        log_format="console",  # type: ignore[arg-type]
        database_url="sqlite+aiosqlite:///:memory:",
        redis_url="redis://localhost:6379/15",
        cache_enabled=False,
        scheduler_enabled=False,
        google_sheets_spreadsheet_id="sheet-123",
        google_sheets_api_key="test-key",  # type: ignore[arg-type]
        bgg_rate_limit_delay=0,
        bgg_retry_delay=5.0,
        enrichment_batch_delay=3.0,
        progressive_enrichment_delay=2.0,
    )


# =============================================================================
# Cache Fixtures
# =============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_redis(clock: FakeClock) -> FakeRedis:
    return FakeRedis(clock)


@pytest.fixture
def cache(fake_redis: FakeRedis, clock: FakeClock) -> CacheService:
    """CacheService over the in-memory Redis, sharing the fake clock."""
    return CacheService(fake_redis, clock=clock)  # type: ignore[arg-type]


# =============================================================================
# Application Fixtures
# =============================================================================


@pytest.fixture
def app(test_settings: Settings) -> Generator[FastAPI, None, None]:
    """Create a test FastAPI application with test settings."""
    application = create_app(settings=test_settings)
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def async_client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for the test app (lifespan is not run)."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Session factory over a fresh in-memory SQLite database."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)

    await engine.dispose()


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session

