"""
OurBookmark Backend: Test Configuration (conftest.py)
======================================================

What:  Shared pytest fixtures for the whole suite.
How:   Environment variables are set before any `ourbookmark` import so the
       settings singleton never sees a production database or real keys.

Fixture Hierarchy (all function-scoped):
    ├── db_engine:        in-memory aiosqlite engine with every table created
    ├── session_factory:  async_sessionmaker bound to db_engine
    ├── db_session:       one AsyncSession for service-level tests
    ├── device_store:     DeviceStore rooted in tmp_path
    ├── device_id:        a fresh, valid X-Device-ID
    ├── sample_image_bytes
    └── test_client:      httpx AsyncClient over ASGITransport, with the
                          database and device store dependencies overridden
"""

import os
import tempfile
import uuid

# Must run before anything imports ourbookmark.config
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["STORAGE_ROOT"] = tempfile.mkdtemp(prefix="ourbookmark_test_")
os.environ["ISBNDB_API_KEY"] = "test-isbndb-key"
os.environ["ADMIN_PASSWORD"] = "test-admin-password"
os.environ["RATE_LIMIT_REQUESTS"] = "10000"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import ourbookmark.models  # noqa: F401  registers every table
from ourbookmark.database import Base, get_db_session
from ourbookmark.dependencies import get_device_store
from ourbookmark.services.device_store import DeviceStore
from ourbookmark.services.tracker_service import tracker_service


@pytest_asyncio.fixture
async def db_engine():
    """
    One in-memory SQLite database per test.

    StaticPool keeps a single connection alive, otherwise every new
    connection would see an empty database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    # Same options as the application's factory
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def device_store(tmp_path):
    return DeviceStore(str(tmp_path))


@pytest.fixture
def device_id():
    return f"device-{uuid.uuid4().hex[:12]}"


@pytest.fixture(autouse=True)
def reset_orphan_guard():
    """The orphan pass runs once per process; each test starts a new "session"."""
    tracker_service.guard.reset()
    yield
    tracker_service.guard.reset()


@pytest.fixture
def sample_image_bytes():
    """A 1x1 PNG; enough for python-magic to report image/png."""
    return (
        b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01"
        b"\x08\x06\x00\x00\x00\x1f\x15\xc4\x89\x00\x00\x00\rIDATx\x9cc\xf8\x0f"
        b"\x00\x00\x01\x01\x00\x05\x18\xd8N\x00\x00\x00\x00IEND\xaeB`\x82"
    )


@pytest_asyncio.fixture
async def test_client(session_factory, device_store):
    """
    HTTP client against the real app with the test database and device store.

    The overridden session dependency commits and rolls back exactly like
    `get_db_session`.
    """
    from ourbookmark.main import app

    async def _test_db_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = _test_db_session
    app.dependency_overrides[get_device_store] = lambda: device_store

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
