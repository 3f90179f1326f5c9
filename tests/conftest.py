"""Pytest configuration and fixtures."""

import os

# Settings are read at import time; point them at an in-memory database first.
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("SQL_DSN", "sqlite+aiosqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")

import uuid
from datetime import date, datetime, time, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.pool import StaticPool

from app.core.security import Principal, create_access_token
from app.db.sql import build_engine, build_sessionmaker, get_session, init_models
from app.modules.availability import service as availability_service
from app.modules.availability.models import ProviderAvailability
from app.modules.providers.models import Provider
from app.modules.slots import service as slot_service
from app.modules.slots.models import AvailabilitySlot

# Monday. The Wednesdays of the first two weeks are 2030-01-09 and 2030-01-16.
TODAY = date(2030, 1, 7)
# 07:00 in America/New_York
NOW = datetime(2030, 1, 7, 12, 0, tzinfo=timezone.utc)

PROVIDER_ID = uuid.UUID("11111111-1111-4111-8111-111111111111")


@pytest.fixture
def frozen_clock(monkeypatch):
    """Pin the services' notion of today / now."""
    monkeypatch.setattr(availability_service, "_today", lambda: TODAY)
    monkeypatch.setattr(slot_service, "_now", lambda: NOW)
    return NOW


@pytest.fixture
def make_definition():
    """Factory for unsaved schedule definitions (pure engine / detector tests)."""

    def _make(**overrides) -> ProviderAvailability:
        values = dict(
            id=uuid.uuid4(),
            provider_id=PROVIDER_ID,
            title="Morning clinic",
            recurrence_type="WEEKLY",
            day_of_week=3,
            start_date=TODAY,
            end_date=date(2030, 1, 20),
            start_time=time(9, 0),
            end_time=time(11, 0),
            slot_duration_minutes=30,
            buffer_time_minutes=0,
            time_zone="America/New_York",
            location_type="VIRTUAL",
            appointment_type="CONSULTATION",
            max_advance_booking_days=90,
            min_advance_booking_hours=2,
            is_active=True,
            allow_online_booking=True,
            requires_approval=False,
            excluded_dates=[],
        )
        values.update(overrides)
        return ProviderAvailability(**values)

    return _make


@pytest.fixture
def make_slot():
    """Factory for unsaved slots (lifecycle tests)."""

    def _make(**overrides) -> AvailabilitySlot:
        values = dict(
            id=uuid.uuid4(),
            availability_id=uuid.uuid4(),
            provider_id=PROVIDER_ID,
            slot_date=date(2030, 1, 9),
            start_time=time(9, 0),
            end_time=time(9, 30),
            status="AVAILABLE",
            is_available=True,
            requires_confirmation=False,
            reminder_sent=False,
            checked_in=False,
            completed=False,
            no_show=False,
        )
        values.update(overrides)
        return AvailabilitySlot(**values)

    return _make


@pytest.fixture
def availability_payload():
    """Factory for AvailabilityRequest bodies (WEEKLY Wednesday 09:00-11:00)."""

    def _make(**overrides) -> dict:
        body = {
            "title": "Morning clinic",
            "description": "General consultations",
            "recurrence_type": "WEEKLY",
            "day_of_week": 3,
            "start_date": "2030-01-07",
            "end_date": "2030-01-20",
            "start_time": "09:00",
            "end_time": "11:00",
            "slot_duration_minutes": 30,
            "buffer_time_minutes": 0,
            "time_zone": "America/New_York",
            "location_type": "VIRTUAL",
            "appointment_type": "CONSULTATION",
        }
        body.update(overrides)
        return body

    return _make


@pytest_asyncio.fixture
async def engine():
    eng = build_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_models(eng)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session(engine):
    maker = build_sessionmaker(engine)
    async with maker() as s:
        yield s


@pytest_asyncio.fixture
async def provider(session) -> Provider:
    p = Provider(
        id=PROVIDER_ID,
        email="gregory.house@example.com",
        first_name="Gregory",
        last_name="House",
        specialization="Diagnostics",
        is_active=True,
    )
    session.add(p)
    await session.flush()
    return p


@pytest_asyncio.fixture
async def other_provider(session) -> Provider:
    p = Provider(
        email="lisa.cuddy@example.com",
        first_name="Lisa",
        last_name="Cuddy",
        is_active=True,
    )
    session.add(p)
    await session.flush()
    return p


@pytest.fixture
def provider_principal(provider) -> Principal:
    return Principal(id=provider.id, role="provider", email=provider.email)


@pytest.fixture
def patient_principal() -> Principal:
    return Principal(id=uuid.uuid4(), role="patient", email="jane.doe@example.com")


@pytest.fixture
def auth_headers():
    def _headers(principal: Principal) -> dict:
        token = create_access_token(principal)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest_asyncio.fixture
async def client(session, frozen_clock):
    from app.main import app

    async def _override_session():
        yield session

    app.dependency_overrides[get_session] = _override_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
