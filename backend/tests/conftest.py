"""
Test configuration and shared fixtures for the scheduling test suite.

Uses an in-memory SQLite database by default (set TEST_DATABASE_URL to run
against another database). Each test gets a freshly created schema, so
services are free to commit.
"""

import os

from cryptography.fernet import Fernet

# Must be set before any application module reads its configuration
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("ENCRYPTION_KEY", Fernet.generate_key().decode())
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("CLINIC_TIMEZONE", "America/Mexico_City")

from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from core.config import CalendarConfig, SchedulingConfig
from core.database import Base, get_db
import models  # noqa: F401  (registers every table on Base.metadata)

from tests.utils import FakeCalendarProvider


TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite://")
TEST_TIMEZONE = "America/Mexico_City"


@pytest.fixture(scope="function")
def db_engine():
    """
    Create an engine with a fresh schema for one test.

    SQLite in-memory databases live as long as their single connection,
    hence StaticPool.
    """
    if TEST_DATABASE_URL.startswith("sqlite"):
        engine = create_engine(
            TEST_DATABASE_URL,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(TEST_DATABASE_URL)

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Provide a database session bound to the per-test engine."""
    TestingSession = sessionmaker(bind=db_engine, autoflush=False, expire_on_commit=False)
    session = TestingSession()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def session_factory(db_engine):
    """Session factory for code that opens its own sessions (background jobs)."""
    return sessionmaker(bind=db_engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def scheduling_config() -> SchedulingConfig:
    return SchedulingConfig(timezone=TEST_TIMEZONE, default_duration_minutes=30, reminder_hours_before=24)


@pytest.fixture
def calendar_config() -> CalendarConfig:
    return CalendarConfig(
        client_id="test-client-id",
        client_secret="test-client-secret",
        redirect_uri="http://localhost:5173/calendar/callback",
        request_timeout_seconds=5.0,
        default_sync_future_days=30,
        timezone=TEST_TIMEZONE,
    )


@pytest.fixture
def fake_provider() -> FakeCalendarProvider:
    return FakeCalendarProvider()


@pytest.fixture
def client(db_session, fake_provider) -> Generator[TestClient, None, None]:
    """
    TestClient wired to the test session and the fake calendar provider.

    The lifespan (background scheduler) is not started.
    """
    from main import app
    from api.calendar import get_calendar_provider

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_calendar_provider] = lambda: fake_provider
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
