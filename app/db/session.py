"""
Database Session Management
===========================

Async engine, session factory and the ``get_db`` request dependency.

Production runs on Supabase Postgres through asyncpg; local runs and the
test suite may point ``DATABASE_URL`` at SQLite through aiosqlite.
"""

import logging
from typing import Any, AsyncGenerator

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.config import settings

logger = logging.getLogger(__name__)

# Supabase's transaction pooler (PgBouncer) listens on this port
SUPABASE_POOLER_PORT = 6543

_engine: AsyncEngine | None = None
_async_session_factory: async_sessionmaker[AsyncSession] | None = None


def engine_options(database_url: str) -> dict[str, Any]:
    """
    Keyword arguments for ``create_async_engine`` suited to the backend.

    Postgres gets a LIFO queue pool recycled every 5 minutes, under the
    pooler's idle timeout. Behind PgBouncer asyncpg's prepared statement
    cache is disabled, since pooled connections do not keep statements.
    SQLite uses SQLAlchemy's default pool.
    """
    url = make_url(database_url)
    options: dict[str, Any] = {"echo": settings.is_development}

    if url.get_backend_name() != "postgresql":
        return options

    options.update(
        pool_size=10,
        max_overflow=20,
        pool_recycle=300,
        pool_use_lifo=True,
        pool_timeout=30,
    )
    if url.port == SUPABASE_POOLER_PORT:
        options["connect_args"] = {"statement_cache_size": 0}
    return options


def get_engine() -> AsyncEngine:
    global _engine

    if _engine is None:
        database_url = settings.database_url_async
        if not database_url:
            raise ValueError(
                "Database URL not configured. "
                "Please set DATABASE_URL environment variable."
            )
        _engine = create_async_engine(database_url, **engine_options(database_url))

    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _async_session_factory

    if _async_session_factory is None:
        _async_session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autocommit=False,
            autoflush=False,
        )

    return _async_session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    One session per request.

    Commits when the endpoint returns and rolls back if it raises, so a
    purchase or webhook either lands completely or not at all. Endpoints
    that answer with an error body instead of raising roll back themselves.
    """
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Check connectivity on startup and open a few pooled connections."""
    engine = get_engine()

    pool_size = getattr(engine.pool, "size", None)
    warm_target = min(3, pool_size()) if callable(pool_size) else 1

    conns = []
    try:
        for _ in range(warm_target):
            conn = await engine.connect()
            await conn.execute(text("SELECT 1"))
            conns.append(conn)
    except Exception as exc:
        logger.warning("Pool warmup partially failed: %s", exc)
    finally:
        for conn in conns:
            await conn.close()

    logger.info("Database connection established (pool warmed: %d connections)", len(conns))


async def close_db() -> None:
    global _engine, _async_session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _async_session_factory = None
        logger.info("Database connections closed")
