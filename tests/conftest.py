import os
import sys
from collections.abc import AsyncGenerator
from datetime import UTC, datetime
from uuid import uuid4

import pytest
import pytest_asyncio
from dotenv import load_dotenv
from httpx import ASGITransport, AsyncClient
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

# Load environment variables from .env file
load_dotenv()

from app.config import settings
from app.database import create_engine_for, create_session_factory
from app.dependencies import get_change_broker, get_session_factory
from app.main import app
from app.models import metadata, patients, providers, rooms
from app.schemas.actors import Actor, ActorRole
from app.services.appointment_service import AppointmentService
from app.services.change_broker import ChangeBroker

# Test database URL - MUST be different from the application database.
# Unset means a throwaway SQLite file per test.
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")

# Additional safety: ensure we're not using the application database
if TEST_DATABASE_URL and settings.database_url == TEST_DATABASE_URL:
    print("\n❌ CRITICAL ERROR: Test database URL is same as application database!")
    print("This would DROP all scheduling data during tests.")
    print("Please set TEST_DATABASE_URL to a separate test database in .env")
    sys.exit(1)

# Saturday before the week used by most scenarios
FROZEN_NOW = datetime(2025, 3, 1, 9, 0, tzinfo=UTC)
PRACTICE_TZ = "Europe/Paris"


@pytest_asyncio.fixture
async def test_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Create a test engine with fresh tables."""
    url = TEST_DATABASE_URL or f"sqlite+aiosqlite:///{tmp_path / 'scheduling_test.db'}"
    # NullPool avoids sharing connections across event loops
    engine = create_engine_for(url, poolclass=NullPool)

    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
        await conn.run_sync(metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test database."""
    return create_session_factory(test_engine)


@pytest.fixture
def broker() -> ChangeBroker:
    """Change broker with a short long-poll timeout."""
    return ChangeBroker(history_limit=50, default_timeout=0.2)


@pytest.fixture
def service(
    session_factory: async_sessionmaker[AsyncSession],
    broker: ChangeBroker,
) -> AppointmentService:
    """Scheduling engine with a frozen clock."""
    return AppointmentService(
        session_factory,
        broker,
        slot_minutes=15,
        timezone=PRACTICE_TZ,
        isolation_level="SERIALIZABLE",
        clock=lambda: FROZEN_NOW,
    )


@pytest.fixture
def assistant() -> Actor:
    """Booking assistant identity."""
    return Actor(id="front-desk", role=ActorRole.ASSISTANT)


@pytest.fixture
def practitioner() -> Actor:
    """Practitioner identity."""
    return Actor(id="dr-nguyen", role=ActorRole.PRACTITIONER)


@pytest_asyncio.fixture
async def practice(session_factory: async_sessionmaker[AsyncSession]) -> dict:
    """Seed two providers, two rooms and patients; return their ids."""
    ids = {
        "provider_id": uuid4(),
        "other_provider_id": uuid4(),
        "inactive_provider_id": uuid4(),
        "room_id": uuid4(),
        "other_room_id": uuid4(),
        "patient_id": uuid4(),
        "deleted_patient_id": uuid4(),
    }

    async with session_factory() as session:
        await session.execute(
            insert(providers),
            [
                {
                    "id": ids["provider_id"],
                    "full_name": "Dr Jade Nguyen",
                    "initials": "JN",
                    "specialty": "General dentistry",
                    "role": "dentist",
                    "color": "#22d3ee",
                    "is_active": True,
                    "default_duration_minutes": 30,
                },
                {
                    "id": ids["other_provider_id"],
                    "full_name": "Dr Marc Dupont",
                    "initials": "MD",
                    "specialty": "Orthodontics",
                    "role": "orthodontist",
                    "color": "#f97316",
                    "is_active": True,
                    "default_duration_minutes": 45,
                },
                {
                    "id": ids["inactive_provider_id"],
                    "full_name": "Dr Anna Retired",
                    "initials": "AR",
                    "specialty": None,
                    "role": "hygienist",
                    "color": "#a3a3a3",
                    "is_active": False,
                    "default_duration_minutes": 30,
                },
            ],
        )
        await session.execute(
            insert(rooms),
            [
                {"id": ids["room_id"], "name": "Room 1", "color": "#38bdf8"},
                {"id": ids["other_room_id"], "name": "Room 2", "color": "#a855f7"},
            ],
        )
        await session.execute(
            insert(patients),
            [
                # Every row carries the same keys; executemany takes columns from the first
                {
                    "id": ids["patient_id"],
                    "reference": "PAT-0001",
                    "full_name": "Alice Martin",
                    "deleted_at": None,
                },
                {
                    "id": ids["deleted_patient_id"],
                    "reference": "PAT-0002",
                    "full_name": "Anonymized",
                    "deleted_at": FROZEN_NOW,
                },
            ],
        )
        await session.commit()

    return ids


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    broker: ChangeBroker,
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client."""
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_change_broker] = lambda: broker

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def assistant_headers() -> dict:
    """Headers identifying a booking assistant."""
    return {"X-User-Role": "assistant", "X-User-Id": "front-desk"}


@pytest.fixture
def practitioner_headers() -> dict:
    """Headers identifying a practitioner."""
    return {"X-User-Role": "practitioner", "X-User-Id": "dr-nguyen"}


@pytest.fixture
def frozen_now() -> datetime:
    """Instant returned by the service clock."""
    return FROZEN_NOW
