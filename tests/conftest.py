"""Pytest configuration and fixtures."""

import os

# Settings are read at import time
os.environ.setdefault("ENV", "test")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

from collections.abc import AsyncGenerator, Callable, Generator
from datetime import date, datetime, time, timedelta

import pytest
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient
from sqlalchemy import StaticPool
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from gobering.availability.slots import schedule_weekday
from gobering.core.cache import SlotCache
from gobering.core.security import create_professional_token
from gobering.db.base import Base
from gobering.db.session import get_db
from gobering.main import app
from gobering.models.professional import Professional, ProfessionalService
from gobering.models.scheduling import Appointment, AppointmentStatus, WeeklySchedule

# Use SQLite for testing (simpler than spinning up postgres)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(scope="function")
async def async_engine():
    """Create async test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
async def async_session(async_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests."""
    async_session_maker = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with async_session_maker() as session:
        yield session


@pytest.fixture
def slot_cache() -> SlotCache:
    return SlotCache(ttl_seconds=60)


@pytest.fixture(scope="function")
async def client(async_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client sharing the test session with the application."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield async_session

    app.dependency_overrides[get_db] = override_get_db
    app.state.slot_cache.clear()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def sync_client() -> Generator[TestClient, None, None]:
    """Test client for endpoints that never touch the database."""
    with TestClient(app) as test_client:
        yield test_client


def upcoming(weekday: int, weeks_ahead: int = 2) -> date:
    """First date with the given weekday (0=Sunday) at least ``weeks_ahead`` weeks out."""
    start = date.today() + timedelta(weeks=weeks_ahead)
    return start + timedelta(days=(weekday - schedule_weekday(start)) % 7)


@pytest.fixture
def monday() -> date:
    """A Monday comfortably in the future."""
    return upcoming(1)


@pytest.fixture
async def professional(async_session: AsyncSession) -> Professional:
    """Professional open Monday to Friday, 9:00-17:00, 30 minute slots."""
    professional = Professional(
        first_name="Marie",
        last_name="Tremblay",
        email="marie@gobering.test",
        phone="+15145550100",
        profession="Physiotherapist",
        timezone="America/Toronto",
        appointment_duration=30,
        cancellation_delay_hours=24,
        waitlist_enabled=True,
        waitlist_priority_hours=24,
    )
    async_session.add(professional)
    await async_session.flush()

    for day_of_week in range(1, 6):
        async_session.add(
            WeeklySchedule(
                professional_id=professional.id,
                day_of_week=day_of_week,
                start_time=time(9, 0),
                end_time=time(17, 0),
            )
        )

    await async_session.commit()
    await async_session.refresh(professional)
    return professional


@pytest.fixture
async def service_60(async_session: AsyncSession, professional: Professional) -> ProfessionalService:
    """One hour service offered by the professional."""
    service = ProfessionalService(
        professional_id=professional.id,
        name="Initial assessment",
        duration_minutes=60,
        price_cents=9500,
    )
    async_session.add(service)
    await async_session.commit()
    await async_session.refresh(service)
    return service


@pytest.fixture
def make_appointment(
    async_session: AsyncSession,
    professional: Professional,
) -> Callable:
    """Factory inserting an appointment directly, bypassing booking checks."""

    async def _make(
        day: date,
        start: time,
        end: time,
        status: AppointmentStatus = AppointmentStatus.CONFIRMED,
        token: str | None = None,
        created_at: datetime | None = None,
    ) -> Appointment:
        appointment = Appointment(
            professional_id=professional.id,
            appointment_date=day,
            start_time=start,
            end_time=end,
            status=status,
            first_name="Jean",
            last_name="Client",
            email="jean@example.com",
            phone="+15145550123",
            cancellation_token=token,
        )
        if created_at is not None:
            appointment.created_at = created_at
        async_session.add(appointment)
        await async_session.commit()
        await async_session.refresh(appointment)
        return appointment

    return _make


@pytest.fixture
def auth_headers(professional: Professional) -> dict[str, str]:
    """Bearer headers for the test professional."""
    return {"Authorization": f"Bearer {create_professional_token(professional.id)}"}
