"""
Pytest configuration and fixtures for backend tests.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
import httpx
from typing import AsyncGenerator
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from app.core.database import Base, get_db
from app.core.rate_limit import limiter
from app.models.user import User
from app.models.project import Project
from app.services.storage_service import get_blob_store

from factories import auth_header, create_test_user, create_test_project
from fakes import InMemoryBlobStore, FrozenClock


# Test database URL (in-memory SQLite for testing)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

limiter.enabled = False


@pytest.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh in-memory database per test."""
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite's own transaction handling breaks SAVEPOINT; let SQLAlchemy emit BEGIN itself
    @event.listens_for(test_engine.sync_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(test_engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture
async def db_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
def blob_store() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
async def test_user(db_session: AsyncSession) -> User:
    """Create a test user; owns the default project."""
    return await create_test_user(db_session)


@pytest.fixture
async def approver_a(db_session: AsyncSession) -> User:
    return await create_test_user(db_session, username="approver_a", email="a@example.com")


@pytest.fixture
async def approver_b(db_session: AsyncSession) -> User:
    return await create_test_user(db_session, username="approver_b", email="b@example.com")


@pytest.fixture
async def admin_user(db_session: AsyncSession) -> User:
    """Create an admin test user."""
    return await create_test_user(
        db_session,
        username="admin",
        email="admin@example.com",
        password="adminpassword123",
        role="admin",
    )


@pytest.fixture
async def project(db_session: AsyncSession, test_user: User) -> Project:
    return await create_test_project(db_session, test_user)


@pytest.fixture
async def client(db_session: AsyncSession, blob_store: InMemoryBlobStore) -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTP client bound to the app with the test session and in-memory store."""
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_blob_store] = lambda: blob_store

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(test_user: User) -> dict:
    """Get authentication headers for test user."""
    return auth_header(test_user)
