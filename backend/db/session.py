"""
Database Session Management

Async SQLAlchemy engine/session factories and dependency injection.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from backend.config import get_settings

settings = get_settings()


def create_engine_for(url: str, **overrides) -> AsyncEngine:
    """
    Build an async engine for ``url``.

    PostgreSQL gets the production pool; other backends (SQLite in tests)
    use SQLAlchemy's defaults because they reject pool sizing arguments.
    """
    options: dict = {"echo": settings.debug}
    if url.startswith("postgresql"):
        options.update(
            pool_pre_ping=True,
            pool_size=20,
            max_overflow=30,
            pool_timeout=30,
            pool_recycle=1800,  # Recycle connections every 30 minutes
        )
    options.update(overrides)
    return create_async_engine(url, **options)


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = create_engine_for(settings.database_url)
async_session_factory = create_session_factory(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency for database sessions.

    Commits when the request handler returns; rolls back on any error.
    Per-employee persistence commits on its own before that point.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Context manager for standalone async sessions.

    Use this in Celery workers and scripts outside the FastAPI request context.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
