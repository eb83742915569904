"""
Background jobs for the scheduling core.

Two APScheduler jobs run inside the API process: an hourly reminder pass that
dispatches 'reminder' notifications, and, when enabled, a periodic calendar
sync for every doctor whose credential has sync turned on.
"""

import logging
from typing import Any, Callable, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore
from apscheduler.triggers.cron import CronTrigger  # type: ignore
from apscheduler.triggers.interval import IntervalTrigger  # type: ignore
from sqlalchemy.orm import Session

from core.config import (
    CALENDAR_SYNC_INTERVAL_MINUTES, CALENDAR_SYNC_SCHEDULER_ENABLED, CalendarConfig, SchedulingConfig,
    get_calendar_config, get_scheduling_config
)
from core.constants import CALENDAR_SYNC_MAX_INSTANCES, REMINDER_SCHEDULER_MAX_INSTANCES
from core.database import SessionLocal
from models import CalendarCredential
from services.appointment_service import SchedulingService
from services.calendar_provider import ExternalCalendarProvider
from services.calendar_sync_service import sync_many
from services.google_calendar_service import GoogleCalendarProvider

logger = logging.getLogger(__name__)


class SchedulerService:
    """
    Owns the AsyncIOScheduler and the job callbacks.

    Database sessions are created fresh for each job run to avoid stale
    session issues. Do not pass a session here.
    """

    def __init__(
        self,
        scheduling_config: SchedulingConfig,
        calendar_config: CalendarConfig,
        provider: Optional[ExternalCalendarProvider] = None,
        session_factory: Callable[[], Session] = SessionLocal,
        calendar_sync_enabled: bool = CALENDAR_SYNC_SCHEDULER_ENABLED,
        calendar_sync_interval_minutes: int = CALENDAR_SYNC_INTERVAL_MINUTES
    ) -> None:
        self.scheduling_config = scheduling_config
        self.calendar_config = calendar_config
        self.provider = provider or GoogleCalendarProvider(calendar_config)
        self.session_factory = session_factory
        self.calendar_sync_enabled = calendar_sync_enabled
        self.calendar_sync_interval_minutes = calendar_sync_interval_minutes
        self.scheduler = AsyncIOScheduler(timezone=scheduling_config.timezone)
        self._is_started = False

    async def start_scheduler(self) -> None:
        """
        Register jobs and start the scheduler.

        This should be called during application startup.
        """
        if self._is_started:
            logger.warning("Scheduler is already started")
            return

        self.scheduler.add_job(  # type: ignore
            self.send_pending_reminders,
            CronTrigger(minute=0),  # Run every hour
            id="send_reminders",
            name="Send appointment reminders",
            max_instances=REMINDER_SCHEDULER_MAX_INSTANCES,  # Prevent overlapping runs
            replace_existing=True
        )

        if self.calendar_sync_enabled and self.calendar_config.is_configured:
            self.scheduler.add_job(  # type: ignore
                self.sync_calendars,
                IntervalTrigger(minutes=self.calendar_sync_interval_minutes),
                id="sync_calendars",
                name="Synchronize doctor calendars",
                max_instances=CALENDAR_SYNC_MAX_INSTANCES,
                replace_existing=True
            )

        self.scheduler.start()
        self._is_started = True
        logger.info("Scheduling background jobs started")

    async def stop_scheduler(self) -> None:
        """
        Stop the background scheduler.

        This should be called during application shutdown.
        """
        if self._is_started:
            self.scheduler.shutdown(wait=True)
            self._is_started = False
            logger.info("Scheduling background jobs stopped")

    async def send_pending_reminders(self) -> int:
        """Dispatch reminders for appointments entering the reminder window."""
        db = self.session_factory()
        try:
            logger.info("Checking for appointments needing reminders...")
            return SchedulingService(db, self.scheduling_config).send_due_reminders()
        except Exception as e:
            db.rollback()
            logger.exception(f"Reminder job failed: {e}")
            return 0
        finally:
            db.close()

    async def sync_calendars(self) -> Dict[int, Dict[str, Any]]:
        """Run a bidirectional sync for every credential with sync enabled."""
        db = self.session_factory()
        try:
            rows = db.query(CalendarCredential.doctor_id, CalendarCredential.sync_direction).filter(
                CalendarCredential.sync_enabled.is_(True)
            ).all()
        finally:
            db.close()

        results: Dict[int, Dict[str, Any]] = {}
        by_direction: Dict[str, list[int]] = {}
        for doctor_id, direction in rows:
            by_direction.setdefault(direction, []).append(doctor_id)
        for direction, doctor_ids in by_direction.items():
            results.update(await sync_many(
                doctor_ids, direction, self.provider, self.calendar_config, self.session_factory
            ))

        failed = [doctor_id for doctor_id, result in results.items() if not result.get("success")]
        logger.info(f"Scheduled calendar sync finished for {len(results)} doctor(s), {len(failed)} failed")
        return results


# Global scheduler service instance
_scheduler_service: Optional[SchedulerService] = None


def get_scheduler_service() -> SchedulerService:
    """
    Get the global scheduler service instance.

    Returns:
        The global scheduler service instance
    """
    global _scheduler_service
    if _scheduler_service is None:
        _scheduler_service = SchedulerService(get_scheduling_config(), get_calendar_config())
    return _scheduler_service


async def start_scheduler() -> None:
    """Start the global scheduler. Called during application startup."""
    await get_scheduler_service().start_scheduler()


async def stop_scheduler() -> None:
    """Stop the global scheduler. Called during application shutdown."""
    global _scheduler_service
    if _scheduler_service:
        await _scheduler_service.stop_scheduler()
