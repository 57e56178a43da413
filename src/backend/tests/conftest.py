"""
Pytest configuration and fixtures for testing.

Provides:
- Database fixtures (one SQLite file per test, so separate sessions can race)
- Users for every role
- An HTTP client wired to the test database

Usage:
    pytest src/backend/tests -v
"""

import os

# Settings are read at import time; configure them before any app import
os.environ.setdefault("SECURITY_SECRET_KEY", "test-secret-key-for-visitor-access")
os.environ.setdefault("VISITOR_EXPIRY_SWEEP_ENABLED", "false")
os.environ.setdefault("VISITOR_BUSINESS_TIMEZONE", "UTC")

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from sqlmodel import SQLModel

import db.models  # noqa: F401  (registers tables)
from db.enums import UserRole
from db.models import User
from tests.factories import UserFactory


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """Create a SQLite engine backed by a per-test file.

    A file (rather than :memory:) lets two sessions use separate connections
    against the same data, which the concurrency tests rely on.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'visitor_access.db'}",
        poolclass=NullPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker:
    """Session factory with the same options as the application's."""
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test."""
    async with session_factory() as session:
        yield session


# ============================================================================
# User Fixtures
# ============================================================================

async def _persist(db_session: AsyncSession, user: User) -> User:
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture
async def department_user(db_session: AsyncSession) -> User:
    """Department user who submits visitor requests for Engineering."""
    return await _persist(
        db_session, UserFactory.create(role=UserRole.DEPARTMENT_USER, department="Engineering")
    )


@pytest_asyncio.fixture
async def other_department_user(db_session: AsyncSession) -> User:
    """A second department user (Finance)."""
    return await _persist(
        db_session, UserFactory.create(role=UserRole.DEPARTMENT_USER, department="Finance")
    )


@pytest_asyncio.fixture
async def security_user(db_session: AsyncSession) -> User:
    """Security officer who reviews requests."""
    return await _persist(
        db_session, UserFactory.create(role=UserRole.SECURITY, department="Security")
    )


@pytest_asyncio.fixture
async def second_security_user(db_session: AsyncSession) -> User:
    """Another security officer, for racing reviews."""
    return await _persist(
        db_session, UserFactory.create(role=UserRole.SECURITY, department="Security")
    )


@pytest_asyncio.fixture
async def gate_user(db_session: AsyncSession) -> User:
    """Gate operator who checks visitors in and out."""
    return await _persist(
        db_session, UserFactory.create(role=UserRole.GATE, department="Reception")
    )


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession) -> User:
    """Administrator holding every capability."""
    return await _persist(
        db_session, UserFactory.create(role=UserRole.ADMIN, department="IT")
    )


# ============================================================================
# HTTP Fixtures
# ============================================================================

@pytest_asyncio.fixture
async def app(session_factory):
    """FastAPI app whose sessions come from the test database."""
    from app import create_app
    from core.database import get_session

    application = create_app()

    async def override_get_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                if session.in_transaction():
                    await session.commit()
            except Exception:
                await session.rollback()
                raise

    application.dependency_overrides[get_session] = override_get_session
    yield application
    application.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client that talks to the app in-process (no lifespan)."""
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://testserver"
    ) as http_client:
        yield http_client
