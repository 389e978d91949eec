'''
Pytest configuration.

This file sets up fixtures for:
1. Forcing the application into TEST_MODE before any code is imported.
2. An in-memory SQLite database (aiosqlite) with the full schema, fresh for every test.
3. Store and service instances, either on that database or on mocks.
4. A FastAPI TestClient whose services and auth are overridden per test.
'''
import os

os.environ["TEST_MODE"] = "True"

import pytest
from datetime import datetime, timezone
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from tests.constants import TEST_MENTOR_ID, TEST_MENTOR_TIMEZONE, TEST_SERVICE_PRICING, TEST_STUDENT_ID
from tests.database import factories

from mentor_booking_backend.main import app
from mentor_booking_backend.common.config import settings
from mentor_booking_backend.database import models as db_models
from mentor_booking_backend.database.engine import build_engine, build_session_factory
from mentor_booking_backend.database.store import BookingStore
from mentor_booking_backend.services.availability_service import AvailabilityService
from mentor_booking_backend.services.booking_request_service import BookingRequestService
from mentor_booking_backend.services.booking_service import BookingService
from mentor_booking_backend.services.meeting_service import MeetingService
from mentor_booking_backend.services.notification_service import EmailDispatcher, NotificationService
from mentor_booking_backend.services.security import CurrentUser, JWTHandler


# 09:00 on Monday 2 March 2026 in the mentor's timezone (Asia/Kolkata).
NOW_UTC = datetime(2026, 3, 2, 3, 30, tzinfo=timezone.utc)


@pytest.fixture(scope="session")
def anyio_backend():
    """
    Override the default 'anyio_backend' fixture.
    1. Forces the backend to 'asyncio' (the services use asyncio tasks and queues).
    2. Promotes the scope to 'session' (solves 'ScopeMismatch').
    """
    return "asyncio"


@pytest.fixture
def now_utc() -> datetime:
    return NOW_UTC


# --- 1. Database Fixtures ---

@pytest.fixture(scope="function")
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    """A brand new in-memory database with every table created."""
    assert settings.TEST_MODE is True, \
        "TEST_MODE was not set to True! Check your .env file or environment."

    engine = build_engine(settings.database_url)
    async with engine.begin() as conn:
        await conn.run_sync(db_models.Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture(scope="function")
async def db_session(db_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = build_session_factory(db_engine)
    session = session_factory()
    factories.test_db_session = session
    try:
        yield session
    finally:
        factories.test_db_session = None
        await session.rollback()
        await session.close()


@pytest.fixture(scope="function")
def store(db_session: AsyncSession) -> BookingStore:
    return BookingStore(db=db_session)


@pytest.fixture(scope="function")
async def mentor_orm(db_session: AsyncSession) -> db_models.ExpertProfiles:
    """A committed mentor with the default service catalog."""
    mentor = factories.ExpertProfileFactory.create(
        id=TEST_MENTOR_ID,
        timezone=TEST_MENTOR_TIMEZONE,
        service_pricing=TEST_SERVICE_PRICING,
    )
    await db_session.commit()
    return mentor


# --- 2. Mock Fixtures ---

@pytest.fixture(scope="function")
def mock_store() -> BookingStore:
    """
    A BookingStore double. Async methods are AsyncMocks; configure return
    values per test.
    """
    mock = MagicMock(spec=BookingStore)
    mock.reset = AsyncMock(return_value=None)
    mock.commit = AsyncMock(return_value=None)
    return mock


@pytest.fixture(scope="function")
def mock_notifications() -> NotificationService:
    return MagicMock(spec=NotificationService)


@pytest.fixture(scope="function")
def mock_dispatcher() -> EmailDispatcher:
    mock = MagicMock(spec=EmailDispatcher)
    mock.send_message = AsyncMock(return_value="email-id")
    mock.send = AsyncMock(return_value="email-id")
    return mock


@pytest.fixture(scope="function")
def mentor_profile() -> db_models.ExpertProfiles:
    """A detached mentor row for services that run on a mock store."""
    return factories.ExpertProfileFactory.build(
        id=TEST_MENTOR_ID,
        timezone=TEST_MENTOR_TIMEZONE,
        service_pricing=TEST_SERVICE_PRICING,
    )


# --- 3. Service Fixtures ---

@pytest.fixture(scope="function")
def availability_service(mock_store: BookingStore) -> AvailabilityService:
    return AvailabilityService(store=mock_store)


@pytest.fixture(scope="function")
def booking_service(
    mock_store: BookingStore,
    availability_service: AvailabilityService,
    mock_notifications: NotificationService,
) -> BookingService:
    return BookingService(
        store=mock_store,
        availability=availability_service,
        notifications=mock_notifications,
        meetings=MeetingService(),
    )


@pytest.fixture(scope="function")
def booking_request_service(mock_store: BookingStore) -> BookingRequestService:
    return BookingRequestService(store=mock_store)


# --- 4. Users ---

@pytest.fixture
def mentor_user() -> CurrentUser:
    return CurrentUser(id=TEST_MENTOR_ID, email="mentor@example.com")


@pytest.fixture
def student_user() -> CurrentUser:
    return CurrentUser(id=TEST_STUDENT_ID, email="student@example.com")


# --- 5. API Client ---

@pytest.fixture(scope="function")
def client() -> TestClient:
    """
    A TestClient that does not run the lifespan, so no database engine or
    notification worker is created. Tests override the services they hit
    through `app.dependency_overrides`.
    """
    test_client = TestClient(app)
    yield test_client
    app.dependency_overrides.clear()


def auth_headers_for(user: CurrentUser) -> dict:
    """Creates a JWT for the given user and returns auth headers."""
    token = JWTHandler.create_access_token(subject=user.id, email=user.email)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def mentor_headers(mentor_user: CurrentUser) -> dict:
    return auth_headers_for(mentor_user)


@pytest.fixture
def student_headers(student_user: CurrentUser) -> dict:
    return auth_headers_for(student_user)
