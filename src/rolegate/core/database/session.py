"""Async database session management."""

from collections.abc import AsyncGenerator
from functools import lru_cache
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from rolegate.config import settings


def _enable_sqlite_foreign_keys(dbapi_connection: Any, _record: Any) -> None:
    """Turn on FK enforcement so pivot rows cascade on SQLite."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine_from_settings(url: str | None = None, **kwargs: Any) -> AsyncEngine:
    """Create an async engine for the given URL (defaults to settings).

    Pool sizing only applies to server databases; SQLite engines get
    foreign key enforcement instead.
    """
    url = url or settings.database_url
    options: dict[str, Any] = {"echo": settings.database_echo}

    if url.startswith("sqlite"):
        options.update(kwargs)
        engine = create_async_engine(url, **options)
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    options.update(
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_pre_ping=True,  # Verify connections before use
    )
    options.update(kwargs)
    return create_async_engine(url, **options)


@lru_cache
def get_engine() -> AsyncEngine:
    """Get the process-wide engine, created on first use."""
    return create_engine_from_settings()


@lru_cache
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get the process-wide session factory."""
    return async_sessionmaker(
        bind=get_engine(),
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency that provides a database session.

    Usage:
        @router.get("/items")
        async def list_items(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
