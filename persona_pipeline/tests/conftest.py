"""
Test configuration for persona-pipeline tests.

Database-backed tests run against in-memory SQLite through aiosqlite: one
StaticPool connection shared by every session a test opens, schema created
from Base.metadata. Redis is fakeredis. No external services are needed.
"""
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from fakeredis import FakeAsyncRedis
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import persona_pipeline.models  # noqa: F401  (registers tables on Base.metadata)
from persona_pipeline.database import Base, get_session_factory

SESSION_ID = "client-session-abc"
# Wall-clock based: rows created by the store stamp updated_at with the real time
NOW = datetime.now(timezone.utc).replace(microsecond=0)


def epoch_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def make_event(event_type: str, data: dict | None = None, *, session_id: str = SESSION_ID,
               at: datetime = NOW) -> dict:
    """One wire-format event as the browser client sends it."""
    return {
        "sessionId": session_id,
        "timestamp": epoch_ms(at),
        "type": event_type,
        "data": data or {},
    }


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # pysqlite's implicit transactions break SAVEPOINT; take over BEGIN ourselves
    @event.listens_for(engine.sync_engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def redis():
    client = FakeAsyncRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest_asyncio.fixture
async def client(session_factory, redis):
    """Async httpx client against the app, wired to the in-memory database and fake Redis."""
    import asyncio

    from persona_pipeline.main import app

    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.state.redis = redis
    app.state.mistral = None
    app.state.classify_semaphore = asyncio.Semaphore(2)
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.dependency_overrides.clear()


