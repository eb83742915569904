"""
Two-way synchronization between local appointments and a doctor's remote calendar.

A run for one doctor is sequential: the push phase sends future active
appointments to the remote calendar, the pull phase imports remote events
that no local appointment references yet. Item failures are collected and the
run continues; only credential failures abort it. Runs for different doctors
are independent and may proceed concurrently (see sync_many).
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import time, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from core.config import CalendarConfig
from core.constants import (
    IMPORTED_APPOINTMENT_DEFAULT_TITLE, IMPORTED_APPOINTMENT_TYPE, STATUS_SCHEDULED, SYNC_DIRECTION_FROM_REMOTE,
    SYNC_DIRECTION_TO_REMOTE
)
from core.exceptions import AuthExpiredError, CalendarNotConnectedError, CalendarProviderError
from models import Appointment, CalendarCredential
from services.appointment_repository import AppointmentRepository
from services.calendar_credential_service import CalendarCredentialStore, normalize_sync_direction
from services.calendar_provider import EventPayload, ExternalCalendarProvider, RemoteEvent
from services.conflict_detector import ConflictDetector, SqlConflictDetector
from utils.datetime_utils import appointment_window, fits_in_day, get_timezone, local_today, utc_now

logger = logging.getLogger(__name__)


@dataclass
class SyncOutcome:
    """Aggregate result of one sync run, produced even under partial failure."""
    pushed: int = 0
    pulled: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def synced(self) -> int:
        return self.pushed + self.pulled

    def to_dict(self) -> Dict[str, Any]:
        return {
            "synced": self.synced,
            "pushed": self.pushed,
            "pulled": self.pulled,
            "errors": list(self.errors),
        }


def failed_sync_response(message: str, code: str = "SYNC_FAILED") -> Dict[str, Any]:
    return {"success": False, "synced": 0, "errors": [message], "error": message, "code": code}


class CalendarSyncEngine:
    """
    Reconciles one doctor's appointments with the remote calendar.

    The engine never changes clinical fields of existing appointments: it only
    creates imported rows and writes external_calendar_event_id / last_sync_at.
    """

    def __init__(
        self,
        db: Session,
        provider: ExternalCalendarProvider,
        config: CalendarConfig,
        credentials: Optional[CalendarCredentialStore] = None,
        repository: Optional[AppointmentRepository] = None,
        detector: Optional[ConflictDetector] = None
    ) -> None:
        self.db = db
        self.provider = provider
        self.config = config
        self.credentials = credentials or CalendarCredentialStore(db, provider, config)
        self.repository = repository or AppointmentRepository(db)
        self.detector = detector or SqlConflictDetector(db)

    async def sync(self, doctor_id: int, direction: str) -> SyncOutcome:
        """
        Run one sync for the doctor.

        Args:
            doctor_id: Doctor whose calendar is synchronized
            direction: to_remote, from_remote or bidirectional (provider aliases accepted)

        Returns:
            SyncOutcome with counts and per-item errors

        Raises:
            CalendarNotConnectedError: If the doctor has no credential
            AuthExpiredError: If a usable access token cannot be obtained; nothing is recorded
        """
        direction = normalize_sync_direction(direction)
        credential = self.credentials.require_credential(doctor_id)
        access_token = await self.credentials.get_valid_access_token(doctor_id)

        outcome = SyncOutcome()
        if direction != SYNC_DIRECTION_FROM_REMOTE:
            await self._push(credential, access_token, outcome)
        if direction != SYNC_DIRECTION_TO_REMOTE:
            await self._pull(credential, access_token, outcome)

        self.credentials.record_sync_result(doctor_id, outcome.errors)
        logger.info(
            f"Calendar sync ({direction}) for doctor {doctor_id}: pushed={outcome.pushed} "
            f"pulled={outcome.pulled} errors={len(outcome.errors)}"
        )
        return outcome

    async def sync_response(self, doctor_id: int, direction: str) -> Dict[str, Any]:
        """Sync and wrap the outcome in the {success, synced, errors} envelope."""
        try:
            outcome = await self.sync(doctor_id, direction)
        except CalendarNotConnectedError as e:
            return failed_sync_response(e.message, e.code)
        except AuthExpiredError as e:
            self.db.rollback()
            logger.warning(f"Calendar sync aborted for doctor {doctor_id}: {e}")
            return failed_sync_response(str(e), "AUTH_EXPIRED")
        return {"success": True, **outcome.to_dict()}

    def build_event(self, appointment: Appointment) -> EventPayload:
        start, end = appointment_window(
            appointment.appointment_date, appointment.appointment_time, appointment.duration, self.config.timezone
        )
        patient_line = (
            f"Patient: {appointment.patient.full_name}" if appointment.patient else "Patient: pending assignment"
        )
        return EventPayload(
            title=appointment.title,
            description=f"{patient_line}\n{appointment.description or ''}".rstrip(),
            start=start,
            end=end,
            location=appointment.location,
            timezone=self.config.timezone,
        )

    async def _push(self, credential: CalendarCredential, access_token: str, outcome: SyncOutcome) -> None:
        appointments = self.repository.list_syncable_from(credential.doctor_id, local_today(self.config.timezone))
        for appointment in appointments:
            try:
                event = self.build_event(appointment)
                if appointment.external_calendar_event_id:
                    await self.provider.update_event(
                        access_token, credential.remote_calendar_id, appointment.external_calendar_event_id, event
                    )
                    event_id = appointment.external_calendar_event_id
                else:
                    event_id = await self.provider.create_event(access_token, credential.remote_calendar_id, event)
                self.repository.mark_synced(appointment, event_id, utc_now())
                self.db.commit()
                outcome.pushed += 1
            except AuthExpiredError:
                raise
            except Exception as e:
                self.db.rollback()
                logger.warning(f"Failed to sync appointment {appointment.id}: {e}")
                outcome.errors.append(f"Failed to sync appointment {appointment.id}: {e}")

    async def _pull(self, credential: CalendarCredential, access_token: str, outcome: SyncOutcome) -> None:
        time_min = utc_now()
        time_max = time_min + timedelta(days=credential.sync_future_days)
        try:
            events = await self.provider.list_events(
                access_token, credential.remote_calendar_id, time_min, time_max
            )
        except AuthExpiredError:
            raise
        except CalendarProviderError as e:
            logger.warning(f"Failed to list remote events for doctor {credential.doctor_id}: {e}")
            outcome.errors.append(f"Failed to list remote events: {e}")
            return

        for event in events:
            if event.status == "cancelled":
                continue
            if self.repository.find_by_external_event_id(credential.doctor_id, event.id):
                continue
            if event.start is None or event.end is None:
                continue  # All-day event
            try:
                if self._import_event(credential, event, outcome):
                    outcome.pulled += 1
            except Exception as e:
                self.db.rollback()
                logger.warning(f"Failed to import event {event.id}: {e}")
                outcome.errors.append(f"Failed to import event {event.id}: {e}")

    def _import_event(self, credential: CalendarCredential, event: RemoteEvent, outcome: SyncOutcome) -> bool:
        assert event.start is not None and event.end is not None
        tz = get_timezone(self.config.timezone)
        local_start = event.start.astimezone(tz)
        duration = round((event.end - event.start).total_seconds() / 60)
        start_time = time(local_start.hour, local_start.minute)

        if duration <= 0:
            outcome.errors.append(f"Skipped event {event.id}: it has no duration")
            return False
        if not fits_in_day(start_time, duration):
            outcome.errors.append(f"Skipped event {event.id}: it spans more than one day")
            return False

        existing = self.detector.find_conflict(credential.doctor_id, local_start.date(), start_time, duration)
        if existing is not None:
            outcome.errors.append(f"Skipped event {event.id}: it overlaps appointment {existing.id}")
            return False

        appointment = Appointment(
            clinic_id=credential.clinic_id,
            doctor_id=credential.doctor_id,
            patient_id=None,
            title=(event.title or IMPORTED_APPOINTMENT_DEFAULT_TITLE)[:255],
            description=event.description,
            type=IMPORTED_APPOINTMENT_TYPE,
            location=event.location,
            status=STATUS_SCHEDULED,
            external_calendar_event_id=event.id,
            sync_enabled=True,
            last_sync_at=utc_now(),
            needs_patient_assignment=True,
        )
        appointment.set_window(local_start.date(), start_time, duration)
        self.repository.insert(appointment)
        self.db.commit()
        logger.info(f"Imported remote event {event.id} as appointment {appointment.id}")
        return True


async def sync_many(
    doctor_ids: Sequence[int],
    direction: str,
    provider: ExternalCalendarProvider,
    config: CalendarConfig,
    session_factory: Callable[[], Session]
) -> Dict[int, Dict[str, Any]]:
    """
    Sync several doctors concurrently, one session per doctor.

    A failure in one doctor's run is reported in its own result and never
    affects the others.
    """
    async def run_one(doctor_id: int) -> Dict[str, Any]:
        db = session_factory()
        try:
            engine = CalendarSyncEngine(db, provider, config)
            return await engine.sync_response(doctor_id, direction)
        except Exception as e:
            db.rollback()
            logger.exception(f"Calendar sync crashed for doctor {doctor_id}: {e}")
            return failed_sync_response(f"Sync failed: {e}")
        finally:
            db.close()

    results = await asyncio.gather(*(run_one(doctor_id) for doctor_id in doctor_ids))
    return dict(zip(doctor_ids, results))
