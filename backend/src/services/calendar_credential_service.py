"""
Calendar credential store.

Holds each doctor's OAuth tokens (encrypted at rest), refreshes the access
token right before use when it has expired, and records the outcome of sync
runs. Tokens never leave this module in plain text except as the return
value of get_valid_access_token.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.config import CalendarConfig
from core.constants import (
    AUTH_EXCHANGE_FAILED_MESSAGE, AUTH_REFRESH_FAILED_MESSAGE, CALENDAR_ACCESS_FAILED_MESSAGE,
    CALENDAR_SAVE_FAILED_MESSAGE, MAX_SYNC_FUTURE_DAYS, SYNC_DIRECTION_ALIASES, SYNC_DIRECTION_BIDIRECTIONAL,
    SYNC_DIRECTIONS, SYNC_STATUS_ERROR, SYNC_STATUS_PENDING, SYNC_STATUS_SUCCESS
)
from core.exceptions import (
    AppointmentValidationError, AuthExpiredError, CalendarNotConnectedError, CalendarProviderError
)
from models import CalendarCredential
from services.calendar_provider import ExternalCalendarProvider, TokenGrant
from services.encryption_service import EncryptionService, get_encryption_service
from utils.datetime_utils import ensure_utc, utc_now

logger = logging.getLogger(__name__)


def normalize_sync_direction(direction: str) -> str:
    """
    Map provider-specific names (to_google/from_google) to neutral directions.

    Raises:
        AppointmentValidationError: For unknown directions
    """
    normalized = SYNC_DIRECTION_ALIASES.get(direction, direction)
    if normalized not in SYNC_DIRECTIONS:
        raise AppointmentValidationError(
            f"sync_direction must be one of: {', '.join(SYNC_DIRECTIONS + tuple(SYNC_DIRECTION_ALIASES))}"
        )
    return normalized


class CalendarCredentialStore:
    """Persistence and refresh-before-use for calendar credentials."""

    def __init__(
        self,
        db: Session,
        provider: ExternalCalendarProvider,
        config: CalendarConfig,
        encryption: Optional[EncryptionService] = None
    ) -> None:
        self.db = db
        self.provider = provider
        self.config = config
        self.encryption = encryption or get_encryption_service()

    def get_credential(self, doctor_id: int) -> Optional[CalendarCredential]:
        return self.db.query(CalendarCredential).filter(CalendarCredential.doctor_id == doctor_id).first()

    def require_credential(self, doctor_id: int) -> CalendarCredential:
        credential = self.get_credential(doctor_id)
        if credential is None:
            raise CalendarNotConnectedError()
        return credential

    async def get_valid_access_token(self, doctor_id: int) -> str:
        """
        Return a usable access token, refreshing it first if it has expired.

        Raises:
            CalendarNotConnectedError: If the doctor has no credential
            AuthExpiredError: If the refresh exchange fails or no refresh token is stored
        """
        credential = self.require_credential(doctor_id)
        expires_at = ensure_utc(credential.token_expires_at)
        if expires_at is not None and utc_now() < expires_at:
            return self.encryption.decrypt_text(credential.access_token)

        if not credential.refresh_token:
            raise AuthExpiredError(AUTH_REFRESH_FAILED_MESSAGE)

        refresh_token = self.encryption.decrypt_text(credential.refresh_token)
        try:
            grant = await self.provider.refresh_token(refresh_token)
        except CalendarProviderError as e:
            logger.warning(f"Access token refresh failed for doctor {doctor_id}: {e}")
            raise AuthExpiredError(AUTH_REFRESH_FAILED_MESSAGE)

        self._store_grant(credential, grant)
        self.db.commit()
        logger.info(f"Refreshed calendar access token for doctor {doctor_id}")
        return grant.access_token

    async def connect(self, doctor_id: int, clinic_id: int, auth_code: str) -> Dict[str, Any]:
        """
        Exchange an authorization code and persist the doctor's credential.

        Returns:
            {"success": True, "calendar_id", "calendar_name"} or {"success": False, "error"}.
            Nothing is stored on failure.
        """
        try:
            grant = await self.provider.exchange_code(auth_code)
        except CalendarProviderError as e:
            logger.warning(f"Calendar code exchange failed for doctor {doctor_id}: {e}")
            return {"success": False, "error": AUTH_EXCHANGE_FAILED_MESSAGE}

        if grant.expires_in <= 0:
            # Already expired grant: it is only usable after a refresh
            if not grant.refresh_token:
                return {"success": False, "error": AUTH_REFRESH_FAILED_MESSAGE}
            try:
                refreshed = await self.provider.refresh_token(grant.refresh_token)
            except CalendarProviderError as e:
                logger.warning(f"Calendar token refresh failed while connecting doctor {doctor_id}: {e}")
                return {"success": False, "error": AUTH_REFRESH_FAILED_MESSAGE}
            grant = TokenGrant(
                access_token=refreshed.access_token,
                expires_in=refreshed.expires_in,
                refresh_token=refreshed.refresh_token or grant.refresh_token,
            )

        try:
            calendar = await self.provider.get_primary_calendar(grant.access_token)
        except CalendarProviderError as e:
            logger.warning(f"Could not read primary calendar for doctor {doctor_id}: {e}")
            return {"success": False, "error": CALENDAR_ACCESS_FAILED_MESSAGE}

        credential = self.get_credential(doctor_id)
        if credential is None:
            credential = CalendarCredential(
                doctor_id=doctor_id,
                sync_enabled=True,
                sync_direction=SYNC_DIRECTION_BIDIRECTIONAL,
                sync_future_days=self.config.default_sync_future_days,
                last_sync_status=SYNC_STATUS_PENDING,
            )
            self.db.add(credential)
        credential.clinic_id = clinic_id
        credential.remote_calendar_id = calendar.id
        credential.calendar_name = calendar.name
        self._store_grant(credential, grant)

        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception(f"Failed to save calendar credential for doctor {doctor_id}: {e}")
            return {"success": False, "error": CALENDAR_SAVE_FAILED_MESSAGE}

        logger.info(f"Connected calendar {calendar.id} for doctor {doctor_id}")
        return {"success": True, "calendar_id": calendar.id, "calendar_name": calendar.name}

    def disconnect(self, doctor_id: int) -> bool:
        """Delete the stored credential. Appointments keep their external event ids."""
        credential = self.get_credential(doctor_id)
        if credential is None:
            return False
        self.db.delete(credential)
        self.db.commit()
        logger.info(f"Disconnected calendar for doctor {doctor_id}")
        return True

    def update_settings(
        self,
        doctor_id: int,
        sync_enabled: Optional[bool] = None,
        sync_direction: Optional[str] = None,
        sync_future_days: Optional[int] = None
    ) -> CalendarCredential:
        credential = self.require_credential(doctor_id)
        if sync_future_days is not None and not 1 <= sync_future_days <= MAX_SYNC_FUTURE_DAYS:
            raise AppointmentValidationError(f"sync_future_days must be between 1 and {MAX_SYNC_FUTURE_DAYS}")

        if sync_enabled is not None:
            credential.sync_enabled = sync_enabled
        if sync_direction is not None:
            credential.sync_direction = normalize_sync_direction(sync_direction)
        if sync_future_days is not None:
            credential.sync_future_days = sync_future_days
        self.db.commit()
        return credential

    def record_sync_result(self, doctor_id: int, errors: List[str], synced_at: Optional[datetime] = None) -> None:
        """Persist last_sync_at plus a success/error status and the joined error list."""
        credential = self.require_credential(doctor_id)
        credential.last_sync_at = synced_at or utc_now()
        credential.last_sync_status = SYNC_STATUS_ERROR if errors else SYNC_STATUS_SUCCESS
        credential.last_sync_error = "; ".join(errors) if errors else None
        self.db.commit()

    def get_status(self, doctor_id: int) -> Dict[str, Any]:
        """Connection and sync state for display. Never includes tokens."""
        credential = self.get_credential(doctor_id)
        if credential is None:
            return {"connected": False}
        return {
            "connected": True,
            "calendar_id": credential.remote_calendar_id,
            "calendar_name": credential.calendar_name,
            "clinic_id": credential.clinic_id,
            "sync_enabled": credential.sync_enabled,
            "sync_direction": credential.sync_direction,
            "sync_future_days": credential.sync_future_days,
            "last_sync_at": ensure_utc(credential.last_sync_at),
            "last_sync_status": credential.last_sync_status,
            "last_sync_error": credential.last_sync_error,
        }

    def _store_grant(self, credential: CalendarCredential, grant: TokenGrant) -> None:
        credential.access_token = self.encryption.encrypt_text(grant.access_token)
        credential.token_expires_at = utc_now() + timedelta(seconds=max(grant.expires_in, 0))
        if grant.refresh_token:
            credential.refresh_token = self.encryption.encrypt_text(grant.refresh_token)
