"""Engine and session factory for the copy inventory database.

One engine per process, created by ``init_db`` in the app lifespan and
disposed by ``close_db``. The scheduler job opens its own sessions from
``get_session_factory()``; API handlers get one per request through
``tybee.dependencies.get_db_session``.
"""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import event, text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool, StaticPool

from tybee.config import Settings
from tybee.core.logging import get_logger

logger = get_logger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    if _engine is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    if _session_factory is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _session_factory


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    async with get_session_factory()() as session:
        yield session


def enable_sqlite_foreign_keys(engine: AsyncEngine) -> None:
    """Turn on FK enforcement (off by default in SQLite) for every new connection.

    Needed for ``ON DELETE CASCADE`` from copies to their checkouts.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection: Any, connection_record: Any) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def _engine_options(settings: Settings) -> dict[str, Any]:
    url = settings.database_url
    options: dict[str, Any] = {"echo": settings.debug}
    if url.startswith("sqlite"):
        options["connect_args"] = {"check_same_thread": False}
        # :memory: exists only on its one connection
        options["poolclass"] = StaticPool if ":memory:" in url else NullPool
    else:
        options.update(
            pool_size=settings.database_pool_min,
            max_overflow=settings.database_pool_max - settings.database_pool_min,
            pool_pre_ping=True,
        )
    return options


async def init_db(settings: Settings) -> None:
    global _engine, _session_factory

    _engine = create_async_engine(settings.database_url, **_engine_options(settings))
    if settings.database_url.startswith("sqlite"):
        enable_sqlite_foreign_keys(_engine)
    _session_factory = async_sessionmaker(
        bind=_engine, expire_on_commit=False, autoflush=False
    )
    logger.info(
        "database_initialized",
        url=make_url(settings.database_url).render_as_string(hide_password=True),
    )


async def create_tables() -> None:
    """Create ``game_copies`` (and its indexes) if they do not exist yet."""
    from tybee.models import Base

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    global _engine, _session_factory

    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _session_factory = None
    logger.info("database_closed")


async def check_db_connection() -> bool:
    """Run ``SELECT 1``; False on any failure, including an uninitialized engine."""
    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning("database_check_failed", error=str(e))
        return False
    return True
