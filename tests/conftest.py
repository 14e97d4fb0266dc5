"""
Shared test fixtures.

These replace real infrastructure with lightweight alternatives:
- PostgreSQL → one SQLite file per test, opened by a sync engine (Job Store)
  and an async engine (API reads via aiosqlite)
- Redis → fakeredis; sync and async clients share one FakeServer so the API
  sees what the Dispatcher published
- HTTP server → httpx.AsyncClient with ASGI transport (no network)
- Wall clock → FakeClock, advanced by hand to expire leases instantly

This means tests:
- Run without Docker
- Never sleep through a real lease duration
- Are fully isolated (each test gets a fresh database)
"""

from datetime import datetime, timedelta, timezone

import fakeredis
import fakeredis.aioredis
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from api.dependencies import get_db, get_dispatcher, get_redis
from api.main import create_app
from broker.notifier import RedisNotifier
from broker.redis_queue import RedisJobQueue
from dispatcher.dispatcher import Dispatcher
from models.tables import Base
from store.job_store import JobStore
from store.worker_registry import WorkerRegistry


class FakeClock:
    """Callable returning a fixed UTC time until advance() moves it."""

    def __init__(self, start: datetime = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


# ── Database ────────────────────────────────────────────────────


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "buildfleet.db"


@pytest.fixture
def sync_engine(db_path):
    """Fresh SQLite file with every table created."""
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(sync_engine):
    return sessionmaker(sync_engine, expire_on_commit=False)


# ── Redis ───────────────────────────────────────────────────────


@pytest.fixture
def redis_server():
    return fakeredis.FakeServer()


@pytest.fixture
def sync_redis(redis_server):
    return fakeredis.FakeRedis(server=redis_server)


@pytest.fixture
def queue(sync_redis):
    return RedisJobQueue(sync_redis)


@pytest.fixture
def notifier(sync_redis):
    return RedisNotifier(sync_redis)


# ── Core components ─────────────────────────────────────────────


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(session_factory, notifier, clock):
    """Job Store on the fake clock — leases only expire when the test says so."""
    return JobStore(session_factory, notifier=notifier, clock=clock)


@pytest.fixture
def live_store(session_factory, notifier):
    """Job Store on the real clock, for tests that run actual threads."""
    return JobStore(session_factory, notifier=notifier)


@pytest.fixture
def dispatcher(store, queue):
    return Dispatcher(store, queue)


@pytest.fixture
def registry(session_factory):
    return WorkerRegistry(session_factory)


# ── API ─────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def async_engine(db_path, sync_engine):
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", echo=False)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def fake_redis(redis_server):
    """Async client on the same fake server the Dispatcher publishes to."""
    r = fakeredis.aioredis.FakeRedis(server=redis_server)
    yield r
    await r.flushall()


@pytest_asyncio.fixture
async def client(async_engine, fake_redis, dispatcher):
    """
    Create a test HTTP client that talks directly to the FastAPI app.

    dependency_overrides swaps the real session, Redis client and Dispatcher
    for the test ones. Each request gets its own async session, like in
    production.

    ASGITransport means requests go directly to the app in-process,
    no HTTP server or network involved.
    """
    app = create_app()
    factory = async_sessionmaker(async_engine, expire_on_commit=False)

    async def override_get_db():
        async with factory() as session:
            yield session

    async def override_get_redis():
        return fake_redis

    async def override_get_dispatcher():
        return dispatcher

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    app.dependency_overrides[get_dispatcher] = override_get_dispatcher

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
