"""Shared test fixtures - uses async SQLite for isolated testing."""

from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from challenge_picker.core.clock import Clock, get_clock
from challenge_picker.core.playthrough_lock import LocalPlaythroughLocks, get_playthrough_locks
from challenge_picker.db.database import Base, get_db
from challenge_picker.models.playthrough import STATUS_ACTIVE, Playthrough
from challenge_picker.schemas.playthrough import CreatePlaythroughRequest
from challenge_picker.services.lifecycle_service import lifecycle_service
from challenge_picker.services.playthrough_service import playthrough_service

# In-memory SQLite for tests (no Docker needed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///file::memory:?cache=shared&uri=true"

test_engine = create_async_engine(TEST_DATABASE_URL, echo=False)
test_session_factory = async_sessionmaker(
    test_engine, class_=AsyncSession, expire_on_commit=False
)

START = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
HOST_ID = "host-1"


class ManualClock(Clock):
    """Clock that only moves when a test says so."""

    def __init__(self, start: datetime = START):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> datetime:
        self.current = self.current + timedelta(seconds=seconds)
        return self.current


async def _override_get_db():
    async with test_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@pytest.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after."""
    # Import all models so Base.metadata knows about them
    import challenge_picker.models  # noqa: F401

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def db():
    """Direct async DB session for service-level tests."""
    async with test_session_factory() as session:
        yield session
        await session.commit()


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def locks():
    return LocalPlaythroughLocks(blocking_timeout=1.0)


@pytest.fixture
async def client(clock, locks):
    """Async HTTP test client with test DB, manual clock and in-process locks."""
    from challenge_picker.main import app

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_playthrough_locks] = lambda: locks
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def create_playthrough(db, clock):
    """Create a playthrough through the service (setup status).

    Defaults: Soulslike Gauntlet (defaults: rules 8 and 9) on Elden Ring.
    """

    async def _create(owner_id: str = HOST_ID, **fields) -> Playthrough:
        payload = {"game_id": 1, "ruleset_id": 1, **fields}
        playthrough = await playthrough_service.create(
            db, owner_id, CreatePlaythroughRequest(**payload), clock.now()
        )
        await db.flush()
        return playthrough

    return _create


@pytest.fixture
def active_playthrough(db, clock, create_playthrough):
    """Create and start a playthrough."""

    async def _create(owner_id: str = HOST_ID, **fields) -> Playthrough:
        playthrough = await create_playthrough(owner_id, **fields)
        lifecycle_service.start(playthrough, owner_id, clock.now())
        await db.flush()
        assert playthrough.status == STATUS_ACTIVE
        return playthrough

    return _create
