# ABOUTME: Async database session management for SQLAlchemy.
# ABOUTME: Provides engine construction, session factory, commit/rollback context manager, FastAPI dependency.

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from feedwell.config import get_settings
from feedwell.db.models import Base

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

_engine: "AsyncEngine | None" = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _enable_sqlite_foreign_keys(dbapi_connection: Any, _connection_record: Any) -> None:
    # SQLite ignores ON DELETE CASCADE unless foreign keys are enabled per connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(url: str, echo: bool = False) -> "AsyncEngine":
    """Create an async engine for PostgreSQL (pooled) or SQLite (foreign keys on)."""
    settings = get_settings()
    if url.startswith("sqlite"):
        engine = create_async_engine(url, echo=echo, connect_args={"timeout": 30})
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        return engine
    return create_async_engine(
        url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_pool_max_overflow,
        pool_pre_ping=True,
        echo=echo,
    )


def build_session_factory(engine: "AsyncEngine") -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to an engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def get_engine() -> "AsyncEngine":
    """Get or create the async database engine."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = build_engine(settings.database_url, echo=settings.log_level == "DEBUG")
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create the session factory."""
    global _session_factory
    if _session_factory is None:
        _session_factory = build_session_factory(get_engine())
    return _session_factory


def session_scope(factory: async_sessionmaker[AsyncSession]):
    """Build a commit/rollback session context manager over a specific factory."""

    @asynccontextmanager
    async def scope() -> AsyncGenerator[AsyncSession]:
        session = factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    return scope


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession]:
    """Context manager for database sessions with automatic commit/rollback.

    Usage:
        async with get_session() as session:
            result = await session.execute(query)
    """
    async with session_scope(get_session_factory())() as session:
        yield session


async def init_db(engine: "AsyncEngine | None" = None) -> None:
    """Create all tables if they don't exist.

    Note: In production, use Alembic migrations instead.
    """
    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close the database engine and release connections."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
