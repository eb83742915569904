"""
Application configuration using python-dotenv.

This module loads environment variables from .env file into os.environ
and exposes them as module constants. Services never read these constants
directly; they receive immutable config objects built by
get_scheduling_config() and get_calendar_config() at construction time.
"""

import os
import pathlib
from functools import lru_cache

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict


# Determine if we're running in a test environment
# Don't load .env file during testing to ensure predictable test behavior
is_testing = os.getenv("PYTEST_VERSION") is not None or any("pytest" in str(frame) for frame in __import__('inspect').stack(0))

# Load .env file into os.environ (only outside of testing)
if not is_testing:
    # Try multiple possible locations for .env file
    possible_paths = [
        pathlib.Path(__file__).parent.parent.parent / ".env",  # backend/.env (when run from backend/src)
        pathlib.Path(__file__).parent.parent.parent.parent / ".env",  # .env (repository root)
        pathlib.Path.cwd() / ".env",  # .env in current directory
    ]

    for env_path in possible_paths:
        if env_path.exists():
            load_dotenv(env_path)
            break


def get_database_url():
    """Get the database URL from environment."""
    return os.getenv(
        "DATABASE_URL",
        "postgresql://localhost/clinic_scheduling_dev"
    )


def _get_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


DATABASE_URL = get_database_url()
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

# Authentication
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-key-change-in-production")
JWT_ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("JWT_ACCESS_TOKEN_EXPIRE_MINUTES", "60"))

# Fernet key used to encrypt calendar tokens at rest
ENCRYPTION_KEY = os.getenv("ENCRYPTION_KEY", "")

# Google Calendar integration
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID", "")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET", "")
GOOGLE_REDIRECT_URI = os.getenv("GOOGLE_REDIRECT_URI", f"{FRONTEND_URL}/calendar/callback")
CALENDAR_REQUEST_TIMEOUT_SECONDS = float(os.getenv("CALENDAR_REQUEST_TIMEOUT_SECONDS", "15"))
CALENDAR_SYNC_INTERVAL_MINUTES = int(os.getenv("CALENDAR_SYNC_INTERVAL_MINUTES", "60"))
CALENDAR_SYNC_SCHEDULER_ENABLED = _get_bool("CALENDAR_SYNC_SCHEDULER_ENABLED", False)

# Scheduling
CLINIC_TIMEZONE = os.getenv("CLINIC_TIMEZONE", "America/Mexico_City")
REMINDER_HOURS_BEFORE = int(os.getenv("REMINDER_HOURS_BEFORE", "24"))


class SchedulingConfig(BaseModel):
    """Settings consumed by the scheduling services."""
    model_config = ConfigDict(frozen=True)

    timezone: str = "America/Mexico_City"
    default_duration_minutes: int = 30
    reminder_hours_before: int = 24


class CalendarConfig(BaseModel):
    """Settings consumed by the calendar provider, credential store and sync engine."""
    model_config = ConfigDict(frozen=True)

    client_id: str = ""
    client_secret: str = ""
    redirect_uri: str = ""
    request_timeout_seconds: float = 15.0
    default_sync_future_days: int = 30
    timezone: str = "America/Mexico_City"

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)


@lru_cache
def get_scheduling_config() -> SchedulingConfig:
    """Build the scheduling config from environment constants."""
    return SchedulingConfig(
        timezone=CLINIC_TIMEZONE,
        reminder_hours_before=REMINDER_HOURS_BEFORE,
    )


@lru_cache
def get_calendar_config() -> CalendarConfig:
    """Build the calendar config from environment constants."""
    return CalendarConfig(
        client_id=GOOGLE_CLIENT_ID,
        client_secret=GOOGLE_CLIENT_SECRET,
        redirect_uri=GOOGLE_REDIRECT_URI,
        request_timeout_seconds=CALENDAR_REQUEST_TIMEOUT_SECONDS,
        timezone=CLINIC_TIMEZONE,
    )
