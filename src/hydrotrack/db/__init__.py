"""Hydrotrack Database module.

Database models and migrations:
- SQLAlchemy 2.x ORM models
- Alembic migration configuration
- Connection pooling via psycopg (PostgreSQL) or aiosqlite (local/test)
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from sqlalchemy.ext.asyncio import AsyncEngine

    from hydrotrack.core.config import DatabaseSettings

# Module-level session factory (initialized on first use)
_engine: AsyncEngine | None = None
_async_session_factory: async_sessionmaker[AsyncSession] | None = None


def to_async_url(url: str) -> str:
    """Rewrite a database URL to use an async driver.

    Args:
        url: postgresql://, postgres:// or sqlite:// URL.

    Returns:
        URL using postgresql+psycopg or sqlite+aiosqlite.
    """
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg://", 1)
    if url.startswith("sqlite://"):
        return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return url


def build_engine(database: DatabaseSettings) -> AsyncEngine:
    """Create an async engine from database settings.

    Pool sizing only applies to PostgreSQL; SQLite uses SQLAlchemy defaults.
    """
    url = to_async_url(database.url)
    kwargs: dict[str, Any] = {"echo": database.echo}
    if not url.startswith("sqlite"):
        kwargs.update(
            pool_size=database.pool_size,
            max_overflow=database.max_overflow,
            pool_timeout=database.pool_timeout,
        )
    return create_async_engine(url, **kwargs)


def _init_engine() -> None:
    """Initialize the database engine and session factory."""
    global _engine, _async_session_factory

    if _engine is not None:
        return

    from hydrotrack.core.settings import get_settings

    settings = get_settings()
    _engine = build_engine(settings.database)

    _async_session_factory = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@asynccontextmanager
async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Get an async database session.

    Usage:
        async with get_async_session() as session:
            result = await session.execute(query)
            await session.commit()

    Yields:
        AsyncSession for database operations. Rolled back on error.
    """
    _init_engine()

    if _async_session_factory is None:
        msg = "Database session factory not initialized"
        raise RuntimeError(msg)

    session = _async_session_factory()
    try:
        yield session
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def close_engine() -> None:
    """Close the database engine.

    Call this during application shutdown to clean up connections.
    """
    global _engine, _async_session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _async_session_factory = None
