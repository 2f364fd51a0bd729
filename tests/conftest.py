"""
Test configuration and fixtures for MarketPro Lead Core
"""

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from leadcore.app import models  # noqa: F401
from leadcore.app.core.database import Base, get_db
from leadcore.app.main import app
from leadcore.app.models.snapshots import FollowUpSnapshot, LeadSnapshot
from leadcore.app.services.lead_store import SQLAlchemyLeadStore
from leadcore.app.services.lifecycle_service import LifecycleService

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

NOW = datetime(2025, 6, 2, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Clock returning a fixed instant that tests can move forward"""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class RecordingPublisher:
    """Stands in for the NATS publisher and keeps every event"""

    def __init__(self):
        self.events = []

    async def __call__(self, subject, data):
        self.events.append((subject, data))

    def subjects(self):
        return [subject for subject, _ in self.events]


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def test_db(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    session_factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(test_db: AsyncSession) -> SQLAlchemyLeadStore:
    return SQLAlchemyLeadStore(test_db)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def service(store, clock, publisher) -> LifecycleService:
    return LifecycleService(store, clock=clock, publish=publisher)


@pytest.fixture
async def client(test_db: AsyncSession):
    """HTTP client bound to the app with the test session injected."""
    async def get_test_db():
        yield test_db

    app.dependency_overrides[get_db] = get_test_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http_client:
        yield http_client
    app.dependency_overrides.clear()


@pytest.fixture
def sample_lead_data():
    """Sample capture payload."""
    return {
        "name": "Priya Sharma",
        "mobile": "9876543210",
        "email": "priya.sharma@example.com",
        "city": "Pune",
        "source": "google",
    }


def make_lead(**overrides) -> LeadSnapshot:
    """Build a lead snapshot for pure engine tests."""
    data = {
        "id": "lead-1",
        "name": "Test Lead",
        "mobile": "9000000001",
        "created_at": NOW,
        "updated_at": NOW,
        "last_activity_at": NOW,
    }
    data.update(overrides)
    return LeadSnapshot(**data)


def make_follow_up(**overrides) -> FollowUpSnapshot:
    data = {
        "id": "fu-1",
        "lead_id": "lead-1",
        "scheduled_at": NOW + timedelta(days=1),
        "created_at": NOW,
    }
    data.update(overrides)
    return FollowUpSnapshot(**data)


async def create_user(store, name="Sales Rep", created_at=NOW, **overrides):
    data = {
        "email": f"{name.lower().replace(' ', '.')}@example.com",
        "name": name,
        "role": "sales",
        "created_at": created_at,
    }
    data.update(overrides)
    return await store.create_user(**data)
