"""Shared test configuration and fixtures.

Uses a transactional rollback strategy per test for full isolation:
- Each test runs inside an outer transaction that rolls back after the test.
- The session joins it with SAVEPOINTs, so application commits and nested
  transactions behave as in production.
- The database comes from ``TEST_DATABASE_URL`` and defaults to an in-memory
  SQLite database.
"""

import os
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

import elverra.models  # noqa: F401
from elverra.database import Base, get_db
from elverra.main import app
from elverra.models.subscription import Subscription
from elverra.models.user import User
from elverra.services.profile_service import profile_cache
from tests.factories import auth_headers_for, create_user

_test_db_url = os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")


def _make_engine():
    if not _test_db_url.startswith("sqlite"):
        return create_async_engine(_test_db_url, echo=False, pool_pre_ping=True)

    engine = create_async_engine(
        _test_db_url,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # pysqlite's own transaction handling breaks SAVEPOINT; let SQLAlchemy emit BEGIN.
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


# ---------------------------------------------------------------------------
# Session-scoped: create / drop all tables once per test session
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture(scope="session", loop_scope="session")
async def test_engine():
    """Create a session-scoped engine tied to the session event loop."""
    engine = _make_engine()
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(scope="session", loop_scope="session")
async def setup_test_db(test_engine):
    """Create all tables at the start of the session and drop them at the end."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


# ---------------------------------------------------------------------------
# Per-test: transactional rollback for isolation
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _clear_profile_cache():
    profile_cache.clear()
    yield
    profile_cache.clear()


@pytest_asyncio.fixture
async def db_session(test_engine, setup_test_db) -> AsyncGenerator[AsyncSession, None]:
    """Yield an async session wrapped in a transaction that always rolls back."""
    async with test_engine.connect() as connection:
        transaction = await connection.begin()
        session = AsyncSession(
            bind=connection,
            expire_on_commit=False,
            join_transaction_mode="create_savepoint",
        )

        try:
            yield session
        finally:
            await session.close()
            await transaction.rollback()


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Provide an httpx AsyncClient wired to use the test DB session."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Convenience fixtures: members, admins, subscriptions
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    """Create and return a member."""
    return await create_user(db_session)


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession) -> User:
    return await create_user(db_session, role="admin", full_name="Admin")


@pytest_asyncio.fixture
async def auth_headers(test_user: User) -> dict[str, str]:
    """Return Authorization headers for the member."""
    return auth_headers_for(test_user)


@pytest_asyncio.fixture
async def admin_headers(admin_user: User) -> dict[str, str]:
    return auth_headers_for(admin_user)


@pytest_asyncio.fixture
async def pending_subscription(db_session: AsyncSession, test_user: User) -> Subscription:
    """A pending premium subscription owned by ``test_user``."""
    subscription = Subscription(user_id=test_user.id, plan="premium", status="pending")
    db_session.add(subscription)
    await db_session.flush()
    return subscription
