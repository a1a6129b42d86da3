"""Shared test fixtures: in-memory SQLite DB, async session, test client, clock."""

from datetime import datetime, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app import dependencies, models  # noqa: F401
from app.core.clock import FrozenClock, set_clock
from app.dependencies import get_db
from app.main import app
from app.models.base import Base
from app.services.storage import InMemoryFileAccessBackend, set_file_access

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


def _sqlite_engine(**kwargs):
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, **kwargs)

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # The driver's own transaction handling breaks SAVEPOINT; SQLAlchemy
        # emits BEGIN itself instead (see _on_begin).
        dbapi_connection.isolation_level = None
        # Foreign keys are off by default in SQLite.
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


test_engine = _sqlite_engine()
test_session_factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def clock():
    """Frozen clock at the current wall time; advance() to move forward."""
    frozen = FrozenClock(datetime.now(timezone.utc).replace(microsecond=0))
    set_clock(frozen)
    yield frozen
    set_clock(None)


@pytest.fixture(autouse=True)
def file_access():
    backend = InMemoryFileAccessBackend()
    set_file_access(backend)
    yield backend
    set_file_access(None)


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    """Yield a test DB session."""
    async with test_session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncClient:
    """Yield an httpx AsyncClient wired to the test DB."""

    async def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def session_factory(monkeypatch) -> async_sessionmaker[AsyncSession]:
    """Point the app's real get_db at a private in-memory database.

    Every request gets its own session that commits or rolls back on exit,
    so tests can check what actually reached the database.
    """
    engine = _sqlite_engine(poolclass=StaticPool, connect_args={"check_same_thread": False})
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    monkeypatch.setattr(dependencies, "_engine", engine)
    monkeypatch.setattr(dependencies, "_session_factory", factory)
    yield factory
    await engine.dispose()


@pytest_asyncio.fixture
async def committing_client(session_factory) -> AsyncClient:
    """AsyncClient whose requests run through the app's own get_db."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
