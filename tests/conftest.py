"""Pytest configuration and shared fixtures."""

import os
from collections.abc import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool, StaticPool

from rolegate.core.database import Base, Scope, create_engine_from_settings
from rolegate.core.permissions import Clipboard, Ownership, PermissionService
from rolegate.core.permissions.models import Ability, Role  # noqa: F401

# Import all models to ensure they're registered with Base.metadata
from rolegate.modules.users.models import User
from tests.factories import UserFactory
from tests.models import Article, Post  # noqa: F401


# In-memory SQLite unless a server database is provided
TEST_DATABASE_URL = os.environ.get(
    "TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:"
)


@pytest.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create test database engine with a fresh schema."""
    poolclass = StaticPool if TEST_DATABASE_URL.startswith("sqlite") else NullPool
    engine = create_engine_from_settings(TEST_DATABASE_URL, poolclass=poolclass)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def db(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Provide a transactional database session for tests.

    Each test runs in its own transaction that is rolled back
    after the test completes, ensuring test isolation.
    """
    async with engine.connect() as conn:
        await conn.begin()

        session_factory = async_sessionmaker(
            bind=conn,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        async with session_factory() as session:
            yield session

        await conn.rollback()


@pytest.fixture
def scope() -> Scope:
    """A scope provider private to the test."""
    return Scope()


@pytest.fixture
def ownership() -> Ownership:
    """An ownership registry private to the test."""
    return Ownership()


@pytest.fixture
def clipboard(db: AsyncSession, scope: Scope, ownership: Ownership) -> Clipboard:
    return Clipboard(db, scope=scope, ownership=ownership)


@pytest.fixture
def service(db: AsyncSession, scope: Scope) -> PermissionService:
    return PermissionService(db, scope=scope)


@pytest.fixture
def make_user(db: AsyncSession):
    """Factory fixture persisting users.

    Usage:
        alice = await make_user(full_name="Alice")
    """

    async def _make_user(**kwargs) -> User:
        user = UserFactory.build(**kwargs)
        db.add(user)
        await db.flush()
        return user

    return _make_user


@pytest.fixture
async def user(make_user) -> User:
    """Create a test user."""
    return await make_user()
