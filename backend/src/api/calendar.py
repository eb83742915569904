# pyright: reportMissingTypeStubs=false
"""
Google Calendar connection and sync endpoints for doctors.

A doctor may only connect, configure or sync their own calendar. Connection
and sync failures that come from Google are reported in the
``{"success": false, "error": ...}`` body rather than raised, so the frontend
can show the provider's message next to the calendar settings.
"""

import logging
from functools import lru_cache
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from auth.dependencies import UserContext, get_current_user
from core.config import get_calendar_config, get_scheduling_config
from core.constants import INVALID_DOCTOR_MESSAGE
from core.database import get_db
from core.exceptions import AccessDeniedError, AppointmentValidationError, CalendarNotConfiguredError
from services.calendar_credential_service import CalendarCredentialStore
from services.calendar_provider import ExternalCalendarProvider
from services.calendar_sync_service import CalendarSyncEngine
from services.google_calendar_service import GoogleCalendarProvider
from services.google_oauth import GoogleOAuthService
from services.scheduling_gate import SchedulingGate
from api.appointments import resolve_clinic_id
from api.responses import (
    CalendarSettingsRequest, CalendarStatusResponse, ConnectCalendarRequest, SyncCalendarRequest
)

logger = logging.getLogger(__name__)

router = APIRouter()

# Sync failures that should not be reported as 200
_SYNC_ERROR_STATUS = {
    "AUTH_EXPIRED": status.HTTP_401_UNAUTHORIZED,
    "CALENDAR_NOT_CONNECTED": status.HTTP_400_BAD_REQUEST,
}


@lru_cache
def _google_provider() -> GoogleCalendarProvider:
    return GoogleCalendarProvider(get_calendar_config())


def get_calendar_provider() -> ExternalCalendarProvider:
    if not get_calendar_config().is_configured:
        raise CalendarNotConfiguredError()
    return _google_provider()


def get_oauth_service() -> GoogleOAuthService:
    config = get_calendar_config()
    if not config.is_configured:
        raise CalendarNotConfiguredError()
    return GoogleOAuthService(config)


def get_credential_store(
    db: Session = Depends(get_db),
    provider: ExternalCalendarProvider = Depends(get_calendar_provider)
) -> CalendarCredentialStore:
    return CalendarCredentialStore(db, provider, get_calendar_config())


def get_sync_engine(
    db: Session = Depends(get_db),
    provider: ExternalCalendarProvider = Depends(get_calendar_provider)
) -> CalendarSyncEngine:
    return CalendarSyncEngine(db, provider, get_calendar_config())


def _ensure_own_calendar(doctor_id: int, current_user: UserContext) -> None:
    if doctor_id != current_user.user_id:
        logger.warning(f"User {current_user.user_id} tried to manage the calendar of doctor {doctor_id}")
        raise AccessDeniedError(INVALID_DOCTOR_MESSAGE)


@router.get("/auth-url", summary="Google consent URL for the current doctor")
async def get_auth_url(
    clinic_id: Optional[int] = Query(None),
    current_user: UserContext = Depends(get_current_user),
    oauth: GoogleOAuthService = Depends(get_oauth_service)
) -> Dict[str, Any]:
    resolved = resolve_clinic_id(clinic_id, current_user)
    return {"success": True, "auth_url": oauth.get_authorization_url(current_user.user_id, resolved)}


@router.post("/connect", summary="Connect Google Calendar with an authorization code")
async def connect_calendar(
    request: ConnectCalendarRequest,
    current_user: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db),
    store: CalendarCredentialStore = Depends(get_credential_store)
) -> Any:
    _ensure_own_calendar(request.doctor_id, current_user)
    clinic_id = resolve_clinic_id(request.clinic_id, current_user)

    if request.state is not None:
        try:
            state_user_id, state_clinic_id = GoogleOAuthService(get_calendar_config()).parse_state(request.state)
        except ValueError as e:
            raise AppointmentValidationError(str(e))
        if state_user_id != current_user.user_id or state_clinic_id != clinic_id:
            raise AppointmentValidationError("OAuth state does not match this session")

    SchedulingGate(db, get_scheduling_config()).ensure_doctor(request.doctor_id, clinic_id)

    result = await store.connect(request.doctor_id, clinic_id, request.auth_code)
    if not result["success"]:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=result)
    return result


@router.get("/status", summary="Calendar connection and last sync state")
async def get_calendar_status(
    current_user: UserContext = Depends(get_current_user),
    store: CalendarCredentialStore = Depends(get_credential_store)
) -> CalendarStatusResponse:
    return CalendarStatusResponse(**store.get_status(current_user.user_id))


@router.put("/settings", summary="Update calendar sync settings")
async def update_calendar_settings(
    request: CalendarSettingsRequest,
    current_user: UserContext = Depends(get_current_user),
    store: CalendarCredentialStore = Depends(get_credential_store)
) -> CalendarStatusResponse:
    store.update_settings(
        current_user.user_id,
        sync_enabled=request.sync_enabled,
        sync_direction=request.sync_direction,
        sync_future_days=request.sync_future_days,
    )
    return CalendarStatusResponse(**store.get_status(current_user.user_id))


@router.delete("/connect", summary="Disconnect Google Calendar")
async def disconnect_calendar(
    current_user: UserContext = Depends(get_current_user),
    store: CalendarCredentialStore = Depends(get_credential_store)
) -> Dict[str, Any]:
    return {"success": True, "disconnected": store.disconnect(current_user.user_id)}


@router.post("/sync", summary="Synchronize appointments with Google Calendar")
async def sync_calendar(
    request: SyncCalendarRequest,
    current_user: UserContext = Depends(get_current_user),
    engine: CalendarSyncEngine = Depends(get_sync_engine)
) -> Any:
    _ensure_own_calendar(request.doctor_id, current_user)
    result = await engine.sync_response(request.doctor_id, request.sync_direction)
    if not result["success"]:
        return JSONResponse(
            status_code=_SYNC_ERROR_STATUS.get(result.get("code"), status.HTTP_502_BAD_GATEWAY),
            content=result,
        )
    return result
