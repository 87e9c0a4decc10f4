import os
import sys
from collections.abc import AsyncGenerator
from datetime import datetime

import pytest
import pytest_asyncio
from dotenv import load_dotenv
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event, insert
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

# Load environment variables from .env file
load_dotenv()

from app.config import settings
from app.database import get_db, set_sqlite_pragma
from app.main import app
from app.models import appointments, metadata, patients

# Leave unset to run every test against its own temporary SQLite file
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")

# Safety check: tests drop every table
if TEST_DATABASE_URL and TEST_DATABASE_URL == settings.database_url:
    print("\n❌ CRITICAL ERROR: Test database URL is same as application database!")
    print("This would DROP all scheduling data during tests.")
    sys.exit(1)

if TEST_DATABASE_URL and TEST_DATABASE_URL.startswith("postgresql://"):
    TEST_DATABASE_URL = TEST_DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://")


@pytest_asyncio.fixture
async def test_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Engine over a freshly created schema."""
    url = TEST_DATABASE_URL or f"sqlite+aiosqlite:///{tmp_path / 'scheduling_test.db'}"
    engine = create_async_engine(url, echo=False, poolclass=NullPool)
    if url.startswith("sqlite"):
        event.listen(engine.sync_engine, "connect", set_sqlite_pragma)

    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
        await conn.run_sync(metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    session_factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def patient(db_session: AsyncSession) -> dict:
    """Insert a patient the appointments can refer to."""
    result = await db_session.execute(
        insert(patients)
        .values(first_names="Ana Lucia", last_names="Quispe Mamani", phone="+51987654321")
        .returning(patients)
    )
    row = dict(result.mappings().first())
    await db_session.commit()
    return row


@pytest.fixture
def insert_legacy_appointment(db_session: AsyncSession, patient: dict):
    """Insert a row directly, bypassing the service (e.g. without a duration)."""

    async def _insert(start_at: datetime, duration_minutes: int | None = None) -> dict:
        result = await db_session.execute(
            insert(appointments)
            .values(
                patient_id=patient["id"],
                start_at=start_at,
                duration_minutes=duration_minutes,
                reason="Imported from paper agenda",
                exam_type="general_consult",
                status="pending",
            )
            .returning(appointments)
        )
        row = dict(result.mappings().first())
        await db_session.commit()
        return row

    return _insert


@pytest.fixture
def sample_appointment_data(patient: dict) -> dict:
    """Sample appointment payload for the HTTP API."""
    return {
        "patient_id": str(patient["id"]),
        "start_at": "2024-01-10T09:00:00",
        "duration_minutes": 30,
        "reason": "Annual checkup",
        "exam_type": "general_consult",
    }
