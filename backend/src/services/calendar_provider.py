"""
Provider-neutral interface for external calendars.

The sync engine and the credential store only talk to an
ExternalCalendarProvider; the Google adapter is one implementation.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional


@dataclass
class EventPayload:
    """Event fields the provider needs to create or update a remote event."""
    title: str
    start: datetime
    end: datetime
    description: Optional[str] = None
    location: Optional[str] = None
    timezone: Optional[str] = None


@dataclass
class RemoteEvent:
    """
    An event listed from the remote calendar.

    ``start``/``end`` are None for all-day events, which carry a date but no
    time of day.
    """
    id: str
    title: Optional[str]
    start: Optional[datetime]
    end: Optional[datetime]
    description: Optional[str] = None
    location: Optional[str] = None
    status: Optional[str] = None


@dataclass
class TokenGrant:
    access_token: str
    expires_in: int
    """Seconds until the access token expires."""
    refresh_token: Optional[str] = None


@dataclass
class CalendarInfo:
    id: str
    name: Optional[str] = None


class ExternalCalendarProvider(ABC):
    """
    Operations the scheduling core needs from a remote calendar.

    Every method raises CalendarProviderError on transport or API failures;
    token methods raise AuthExpiredError when the grant is rejected.
    """

    @abstractmethod
    async def create_event(self, access_token: str, calendar_id: str, event: EventPayload) -> str:
        """Create an event and return its remote id."""

    @abstractmethod
    async def update_event(self, access_token: str, calendar_id: str, event_id: str, event: EventPayload) -> None:
        ...

    @abstractmethod
    async def list_events(
        self,
        access_token: str,
        calendar_id: str,
        time_min: datetime,
        time_max: datetime
    ) -> List[RemoteEvent]:
        ...

    @abstractmethod
    async def refresh_token(self, refresh_token: str) -> TokenGrant:
        ...

    @abstractmethod
    async def exchange_code(self, auth_code: str) -> TokenGrant:
        ...

    @abstractmethod
    async def get_primary_calendar(self, access_token: str) -> CalendarInfo:
        ...
