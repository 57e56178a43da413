"""
Database configuration.
Implements connection pooling and async session lifecycle management.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.exc import PendingRollbackError
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import AsyncAdaptedQueuePool
from sqlmodel import SQLModel

from .config import settings

# Create async engine with pool settings
engine = create_async_engine(
    str(settings.database.url),
    echo=bool(settings.logging.enable_query_logging),
    future=True,
    pool_pre_ping=False,  # Connections are validated on use
    pool_size=settings.database.pool_size,
    max_overflow=settings.database.max_overflow,
    pool_timeout=settings.database.pool_timeout,
    pool_recycle=settings.database.pool_recycle,
    poolclass=AsyncAdaptedQueuePool,
    connect_args={
        "server_settings": {
            "application_name": settings.api.app_name,
        },
        "command_timeout": 60,
        "timeout": 30,
    },
)

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,  # Prevent additional queries after commit
    autoflush=False,
    autocommit=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting async database sessions.

    Services commit their own transitions; anything still pending when the
    request finishes is committed here.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            if session.in_transaction():
                try:
                    await session.commit()
                except PendingRollbackError:
                    await session.rollback()
                    raise
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def get_background_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Create an isolated session for background jobs.

    Scheduler jobs cannot use FastAPI dependency injection, so they open
    their own session through this context manager.

    Example:
        async with get_background_session() as db:
            await VisitorRequestService.expire_stale_requests(db)
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """
    Initialize database tables.
    Should be called on application startup.
    """
    # Models must be imported so their tables are registered on the metadata
    import db.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def close_db() -> None:
    """
    Close database connections.
    Should be called on application shutdown.
    """
    await engine.dispose()
