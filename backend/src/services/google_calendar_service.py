# pyright: reportUnknownMemberType=false, reportUnknownVariableType=false, reportMissingTypeStubs=false
"""
Google Calendar adapter for the external calendar provider interface.

The googleapiclient client is synchronous, so every request runs in a worker
thread and is bounded by ``asyncio.wait_for``. Token operations go through
GoogleOAuthService over httpx.
"""

import asyncio
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from core.config import CalendarConfig
from core.exceptions import AuthExpiredError, CalendarProviderError
from services.calendar_provider import (
    CalendarInfo, EventPayload, ExternalCalendarProvider, RemoteEvent, TokenGrant
)
from services.google_oauth import GoogleOAuthService
from utils.datetime_utils import format_rfc3339_utc, parse_rfc3339

logger = logging.getLogger(__name__)


class GoogleCalendarError(CalendarProviderError):
    """Custom exception for Google Calendar API errors."""
    pass


def _http_error_message(e: HttpError) -> str:
    try:
        error_details = json.loads(e.content.decode('utf-8')) if e.content else {}
    except (ValueError, UnicodeDecodeError):
        error_details = {}
    return error_details.get('error', {}).get('message', str(e))


def _grant_from_response(data: Dict[str, Any]) -> TokenGrant:
    if not data.get("access_token"):
        raise AuthExpiredError("Token response did not include an access token")
    return TokenGrant(
        access_token=data["access_token"],
        expires_in=int(data.get("expires_in", 0)),
        refresh_token=data.get("refresh_token"),
    )


def _parse_event_time(value: Optional[Dict[str, Any]]) -> Optional[datetime]:
    """Concrete start/end only; all-day events carry a 'date' and no 'dateTime'."""
    if not value or not value.get("dateTime"):
        return None
    return parse_rfc3339(value["dateTime"])


class GoogleCalendarProvider(ExternalCalendarProvider):
    """
    Google Calendar implementation of ExternalCalendarProvider.

    Attributes:
        config: Calendar settings (client credentials and request timeout)
        oauth: OAuth client used for code exchange and token refresh
    """

    PRIMARY_CALENDAR_ID = 'primary'

    def __init__(self, config: CalendarConfig, oauth: Optional[GoogleOAuthService] = None) -> None:
        self.config = config
        self.oauth = oauth or GoogleOAuthService(config)

    def _service(self, access_token: str):
        credentials = Credentials(
            token=access_token,
            client_id=self.config.client_id,
            client_secret=self.config.client_secret,
        )
        return build('calendar', 'v3', credentials=credentials, cache_discovery=False)

    async def _execute(self, request: Any, action: str) -> Dict[str, Any]:
        """Run a googleapiclient request in a thread, bounded by the configured timeout."""
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(request.execute),
                timeout=self.config.request_timeout_seconds,
            )
        except asyncio.TimeoutError:
            raise GoogleCalendarError(f"Timed out trying to {action}")
        except HttpError as e:
            message = _http_error_message(e)
            logger.error(f"Google Calendar API error trying to {action}: {message} (status: {e.resp.status})")
            if e.resp.status == 401:
                raise AuthExpiredError(f"Google rejected the access token: {message}")
            raise GoogleCalendarError(f"Failed to {action}: {message}")

    @staticmethod
    def _event_body(event: EventPayload) -> Dict[str, Any]:
        return {
            'summary': event.title or '',
            'description': event.description or '',
            'location': event.location or '',
            'start': {
                'dateTime': format_rfc3339_utc(event.start),
                'timeZone': 'UTC',
            },
            'end': {
                'dateTime': format_rfc3339_utc(event.end),
                'timeZone': 'UTC',
            },
        }

    async def create_event(self, access_token: str, calendar_id: str, event: EventPayload) -> str:
        """
        Create a new Google Calendar event.

        Returns:
            Google Calendar event ID

        Raises:
            GoogleCalendarError: If event creation fails
        """
        request = self._service(access_token).events().insert(
            calendarId=calendar_id,
            body=self._event_body(event)
        )
        created = await self._execute(request, "create calendar event")
        logger.info(f"Google Calendar event created successfully: {created.get('id')}")
        return created['id']

    async def update_event(self, access_token: str, calendar_id: str, event_id: str, event: EventPayload) -> None:
        """
        Update an existing Google Calendar event, keeping fields we do not manage.

        Raises:
            GoogleCalendarError: If the event is missing or the update fails
        """
        service = self._service(access_token)
        current = await self._execute(
            service.events().get(calendarId=calendar_id, eventId=event_id),
            "get calendar event",
        )
        current.update(self._event_body(event))
        await self._execute(
            service.events().update(calendarId=calendar_id, eventId=event_id, body=current),
            "update calendar event",
        )

    async def list_events(
        self,
        access_token: str,
        calendar_id: str,
        time_min: datetime,
        time_max: datetime
    ) -> List[RemoteEvent]:
        """List single (expanded) events between time_min and time_max, following pagination."""
        service = self._service(access_token)
        events: List[RemoteEvent] = []
        page_token: Optional[str] = None

        while True:
            request = service.events().list(
                calendarId=calendar_id,
                timeMin=format_rfc3339_utc(time_min),
                timeMax=format_rfc3339_utc(time_max),
                singleEvents=True,
                orderBy='startTime',
                pageToken=page_token,
            )
            page = await self._execute(request, "list calendar events")
            for item in page.get('items', []):
                events.append(RemoteEvent(
                    id=item['id'],
                    title=item.get('summary'),
                    start=_parse_event_time(item.get('start')),
                    end=_parse_event_time(item.get('end')),
                    description=item.get('description'),
                    location=item.get('location'),
                    status=item.get('status'),
                ))
            page_token = page.get('nextPageToken')
            if not page_token:
                return events

    async def get_primary_calendar(self, access_token: str) -> CalendarInfo:
        request = self._service(access_token).calendarList().get(calendarId=self.PRIMARY_CALENDAR_ID)
        calendar = await self._execute(request, "read primary calendar")
        return CalendarInfo(id=calendar['id'], name=calendar.get('summary'))

    async def refresh_token(self, refresh_token: str) -> TokenGrant:
        try:
            data = await self.oauth.refresh_access_token(refresh_token)
        except httpx.HTTPError as e:
            logger.warning(f"Google token refresh failed: {e}")
            raise AuthExpiredError(f"Token refresh failed: {e}")
        return _grant_from_response(data)

    async def exchange_code(self, auth_code: str) -> TokenGrant:
        try:
            data = await self.oauth.exchange_code_for_tokens(auth_code)
        except httpx.HTTPError as e:
            logger.warning(f"Google authorization code exchange failed: {e}")
            raise AuthExpiredError(f"Authorization code exchange failed: {e}")
        return _grant_from_response(data)
