"""Test configuration and fixtures."""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from innkeeper.core.config import settings
from innkeeper.core.database import Base, build_engine, build_session_factory
from innkeeper.domain.models import ReservationRequest, RoomType
from innkeeper.models import *  # noqa: F403 - Import all models
from innkeeper.repositories import InMemoryDatabase, SqlAlchemyUnitOfWork
from innkeeper.services import InMemoryAuditSink, ReservationEngine, RoomSpec

# Test database URL (in-memory SQLite for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Business date every engine fixture starts on
TODAY = date(2026, 3, 10)


class FrozenClock:
    """Clock the tests move by hand."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, days: int = 0, hours: int = 0) -> None:
        self.now += timedelta(days=days, hours=hours)


def offset_date(offset: int) -> date:
    """Date ``offset`` days from the fixtures' business date."""
    return TODAY + timedelta(days=offset)


@pytest.fixture
def day():
    """Turn a day offset into a date."""
    return offset_date


@pytest.fixture
def clock():
    """Clock frozen at noon UTC on the business date."""
    return FrozenClock(datetime(TODAY.year, TODAY.month, TODAY.day, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def database():
    """In-memory committed state."""
    return InMemoryDatabase()


@pytest.fixture
def audit_sink():
    """Audit sink that keeps events for assertions."""
    return InMemoryAuditSink()


@pytest_asyncio.fixture
async def engine(database, audit_sink, clock):
    """Reservation engine over the in-memory backend."""
    reservation_engine = ReservationEngine(
        database.unit_of_work,
        audit_sink,
        lock_timeout=1.0,
        clock=clock,
    )
    result = await reservation_engine.start()
    assert result.ok
    return reservation_engine


@pytest.fixture
def room_spec():
    """Factory for room specs with sensible defaults."""

    def make(number: str = "101", capacity: int = 2, **overrides) -> RoomSpec:
        values = {
            "number": number,
            "building": "A",
            "floor": 1,
            "capacity": capacity,
            "room_type": RoomType.DOUBLE,
            "nightly_rate": Decimal("120.00"),
        }
        values.update(overrides)
        return RoomSpec(**values)

    return make


@pytest_asyncio.fixture
async def room(engine, room_spec):
    """Room 101, sleeps two."""
    result = await engine.provision_room(room_spec("101", capacity=2))
    assert result.ok
    return result.value


@pytest_asyncio.fixture
async def other_room(engine, room_spec):
    """Room 102, sleeps two."""
    result = await engine.provision_room(room_spec("102", capacity=2))
    assert result.ok
    return result.value


@pytest.fixture
def reservation():
    """Factory for reservation requests; dates are offsets from the business date."""

    def make(room_id, start: int, end: int, guests: int = 1, guest_ref: str = "guest-1", **overrides) -> ReservationRequest:
        return ReservationRequest(
            room_id=room_id,
            check_in=offset_date(start),
            check_out=offset_date(end),
            guests=guests,
            guest_ref=guest_ref,
            **overrides,
        )

    return make


@pytest_asyncio.fixture
async def sql_engine():
    """Create a test database engine."""
    db_engine = build_engine(TEST_DATABASE_URL)

    # Create tables
    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield db_engine

    # Drop tables
    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await db_engine.dispose()


@pytest_asyncio.fixture
async def sql_reservation_engine(sql_engine, audit_sink, clock):
    """Reservation engine persisting to SQLite."""
    session_factory = build_session_factory(sql_engine)
    reservation_engine = ReservationEngine(
        lambda: SqlAlchemyUnitOfWork(session_factory),
        audit_sink,
        lock_timeout=1.0,
        clock=clock,
    )
    result = await reservation_engine.start()
    assert result.ok
    return reservation_engine


@pytest_asyncio.fixture
async def test_app(engine):
    """Create a test FastAPI application around the in-memory engine."""
    from innkeeper.main import create_app

    app = create_app(use_lifespan=False)
    app.state.engine = engine
    yield app


@pytest_asyncio.fixture
async def test_client(test_app):
    """Create a test HTTP client."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def auth_headers():
    """Bearer token signed with the configured secret."""
    token = jwt.encode(
        {"sub": "user-1", "username": "frontdesk"},
        settings.bearer_token_secret,
        algorithm="HS256",
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def sample_room_data():
    """Sample room provisioning payload."""
    return {
        "number": "101",
        "building": "A",
        "floor": 1,
        "capacity": 2,
        "room_type": "double",
        "nightly_rate": "120.00",
        "amenities": ["wifi", "tv"],
    }
