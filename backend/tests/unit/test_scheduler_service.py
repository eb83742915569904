"""
Unit tests for the background jobs.
"""

from datetime import time, timedelta
from unittest.mock import MagicMock, patch

import pytest

from core.config import CalendarConfig
from models import Appointment, Notification
from services.calendar_credential_service import CalendarCredentialStore
from services.scheduler_service import SchedulerService
from utils.datetime_utils import get_timezone, utc_now
from tests.utils import (
    TEST_TIMEZONE, create_appointment, create_clinic, create_patient, create_user_with_clinic_association,
    future_date
)


@pytest.fixture
def scheduler(scheduling_config, calendar_config, fake_provider, session_factory):
    return SchedulerService(
        scheduling_config,
        calendar_config,
        provider=fake_provider,
        session_factory=session_factory,
        calendar_sync_enabled=True,
        calendar_sync_interval_minutes=30,
    )


@pytest.fixture
def setup(db_session):
    clinic = create_clinic(db_session)
    doctor = create_user_with_clinic_association(db_session, clinic, "doctor@example.com")
    patient = create_patient(db_session, clinic)
    return clinic, doctor, patient


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_jobs_are_registered(self, scheduler):
        await scheduler.start_scheduler()
        try:
            assert scheduler.scheduler.get_job("send_reminders") is not None
            assert scheduler.scheduler.get_job("sync_calendars") is not None
        finally:
            await scheduler.stop_scheduler()
        assert scheduler._is_started is False

    @pytest.mark.asyncio
    async def test_calendar_job_needs_configuration(self, scheduling_config, fake_provider, session_factory):
        unconfigured = SchedulerService(
            scheduling_config,
            CalendarConfig(timezone=TEST_TIMEZONE),
            provider=fake_provider,
            session_factory=session_factory,
            calendar_sync_enabled=True,
        )
        await unconfigured.start_scheduler()
        try:
            assert unconfigured.scheduler.get_job("sync_calendars") is None
        finally:
            await unconfigured.stop_scheduler()

    @pytest.mark.asyncio
    async def test_double_start_is_ignored(self, scheduler):
        await scheduler.start_scheduler()
        try:
            await scheduler.start_scheduler()
            assert len(scheduler.scheduler.get_jobs()) == 2
        finally:
            await scheduler.stop_scheduler()


class TestReminderJob:

    @pytest.mark.asyncio
    async def test_sends_reminders_in_a_fresh_session(self, db_session, scheduler, setup):
        clinic, doctor, patient = setup
        local = (utc_now() + timedelta(hours=2)).astimezone(get_timezone(TEST_TIMEZONE))
        appointment = create_appointment(
            db_session, clinic, doctor, patient, local.date(), time(local.hour, local.minute), 1
        )

        assert await scheduler.send_pending_reminders() == 1

        db_session.expire_all()
        assert db_session.get(Appointment, appointment.id).reminder_sent_at is not None
        assert db_session.query(Notification).filter(Notification.action_type == "reminder").count() == 2

    @pytest.mark.asyncio
    async def test_failures_are_logged_not_raised(self, scheduling_config, calendar_config, fake_provider):
        db = MagicMock()
        failing = SchedulerService(
            scheduling_config, calendar_config, provider=fake_provider, session_factory=lambda: db
        )
        with patch("services.scheduler_service.SchedulingService.send_due_reminders", side_effect=RuntimeError("db down")):
            assert await failing.send_pending_reminders() == 0
        db.rollback.assert_called_once()
        db.close.assert_called_once()


class TestCalendarSyncJob:

    @pytest.mark.asyncio
    async def test_syncs_only_enabled_credentials(
        self, db_session, scheduler, fake_provider, calendar_config, setup
    ):
        clinic, doctor, patient = setup
        paused = create_user_with_clinic_association(db_session, clinic, "paused@example.com")
        store = CalendarCredentialStore(db_session, fake_provider, calendar_config)
        await store.connect(doctor.id, clinic.id, "code-1")
        await store.connect(paused.id, clinic.id, "code-2")
        store.update_settings(paused.id, sync_enabled=False)
        store.update_settings(doctor.id, sync_direction="to_google")
        create_appointment(db_session, clinic, doctor, patient, future_date(), time(9, 0))

        results = await scheduler.sync_calendars()

        assert list(results) == [doctor.id]
        assert results[doctor.id]["success"] is True
        assert results[doctor.id]["pushed"] == 1
        assert fake_provider.listed_windows == []
