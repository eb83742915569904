"""
Appointment service for scheduling business logic.

This module orchestrates every appointment mutation: the scheduling gate
authorizes and validates, the conflict detector guards the doctor's time, the
repository persists, and the notification dispatcher reports the transition.
The appointment write is the transaction of record; notifications are
best-effort and never roll it back.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.config import SchedulingConfig
from core.constants import (
    APPOINTMENT_STATUSES, NON_BLOCKING_STATUSES, STATUS_CANCELLED_BY_CLINIC, STATUS_CANCELLED_BY_PATIENT,
    STATUS_SCHEDULED, STATUS_TRANSITIONS
)
from core.exceptions import (
    AccessDeniedError, AppointmentConflictError, AppointmentNotFoundError, AppointmentValidationError,
    CreationError, InvalidTransitionError
)
from models import Appointment, PracticeHours
from services.appointment_repository import AppointmentRepository, is_overlap_violation
from services.conflict_detector import ConflictDetector, SqlConflictDetector
from services.notification_service import NotificationDispatcher
from services.scheduling_gate import AppointmentDraft, SchedulingGate
from utils.datetime_utils import (
    appointment_window, combine_local, format_time_hhmm, get_timezone, minutes_since_midnight, utc_now
)

logger = logging.getLogger(__name__)

CANCELLED_BY_STATUS = {
    "clinic": STATUS_CANCELLED_BY_CLINIC,
    "patient": STATUS_CANCELLED_BY_PATIENT,
}

_CANCELLATION_STATUSES = frozenset(CANCELLED_BY_STATUS.values())


def assert_transition(current: str, new: str) -> None:
    """
    Check a status change against the appointment state machine.

    Raises:
        AppointmentValidationError: If the target status is unknown
        InvalidTransitionError: If the current status is terminal or the edge does not exist
    """
    if new not in APPOINTMENT_STATUSES:
        raise AppointmentValidationError(f"Unknown status: {new}")
    allowed = STATUS_TRANSITIONS.get(current)
    if not allowed:
        raise InvalidTransitionError(
            f"Appointment is {current} and cannot change status",
            details={"current_status": current, "requested_status": new},
        )
    if new not in allowed:
        raise InvalidTransitionError(
            f"Cannot change status from {current} to {new}",
            details={"current_status": current, "requested_status": new},
        )


class SchedulingService:
    """
    Service class for appointment operations.

    Collaborators are injected so tests can swap the conflict detector or the
    notification dispatcher; by default they are built on the same session.
    """

    def __init__(
        self,
        db: Session,
        config: SchedulingConfig,
        detector: Optional[ConflictDetector] = None,
        notifier: Optional[NotificationDispatcher] = None,
        gate: Optional[SchedulingGate] = None,
        repository: Optional[AppointmentRepository] = None
    ) -> None:
        self.db = db
        self.config = config
        self.detector = detector or SqlConflictDetector(db)
        self.notifier = notifier or NotificationDispatcher(db, config)
        self.gate = gate or SchedulingGate(db, config)
        self.repository = repository or AppointmentRepository(db)

    def create_appointment(self, actor_id: int, payload: Mapping[str, Any]) -> Appointment:
        """
        Create a new appointment in status 'scheduled'.

        Args:
            actor_id: Authenticated user creating the appointment
            payload: Raw request fields (see CreateAppointmentRequest)

        Returns:
            The created appointment, with doctor/patient/clinic loaded

        Raises:
            SchedulingError: Validation, authorization, not-found or conflict errors
        """
        clinic_id = payload.get("clinic_id")
        if isinstance(clinic_id, int) and not isinstance(clinic_id, bool):
            self.gate.authorize(actor_id, clinic_id)
        draft = self.gate.validate_create(payload)

        self.repository.lock_doctor_schedule(draft.doctor_id)
        self._ensure_slot_free(draft)

        appointment = Appointment(
            clinic_id=draft.clinic_id,
            doctor_id=draft.doctor_id,
            patient_id=draft.patient_id,
            title=draft.title,
            description=draft.description,
            type=draft.type,
            location=draft.location,
            notes=draft.notes,
            status=STATUS_SCHEDULED,
            sync_enabled=False,
            needs_patient_assignment=False,
            created_by=actor_id,
            updated_by=actor_id,
        )
        appointment.set_window(draft.appointment_date, draft.appointment_time, draft.duration)

        try:
            self.repository.insert(appointment)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            if is_overlap_violation(e):
                logger.warning(f"Concurrent booking rejected for doctor {draft.doctor_id} on {draft.appointment_date}")
                raise AppointmentConflictError()
            logger.exception(f"Failed to create appointment: {e}")
            raise CreationError()

        logger.info(
            f"Created appointment {appointment.id} for doctor {appointment.doctor_id} "
            f"on {appointment.appointment_date} at {format_time_hhmm(appointment.appointment_time)}"
        )
        self.notifier.on_created(appointment)
        return self.repository.get(appointment.id) or appointment

    def update_appointment(self, actor_id: int, appointment_id: int, changes: Mapping[str, Any]) -> Appointment:
        """
        Edit an appointment, optionally changing its status in the same call.

        The conflict check re-runs, excluding the appointment itself, whenever
        the date, time, duration or doctor changes.

        Raises:
            InvalidTransitionError: If the appointment is terminal or the status change is not allowed
            AppointmentConflictError: If the new window overlaps another appointment
        """
        appointment = self._load_for_actor(actor_id, appointment_id, lock=True)
        if appointment.is_terminal:
            raise InvalidTransitionError(
                f"Appointment is {appointment.status} and can no longer be edited",
                details={"current_status": appointment.status},
            )

        field_changes = dict(changes)
        new_status = field_changes.pop("status", None)
        if new_status is not None and new_status != appointment.status:
            assert_transition(appointment.status, new_status)
        else:
            new_status = None

        draft = self.gate.validate_update(appointment, field_changes)
        window_changed = (
            draft.appointment_date != appointment.appointment_date
            or draft.appointment_time != appointment.appointment_time
            or draft.duration != appointment.duration
            or draft.doctor_id != appointment.doctor_id
        )
        resulting_status = new_status or appointment.status
        if window_changed and resulting_status not in NON_BLOCKING_STATUSES:
            self.repository.lock_doctor_schedule(draft.doctor_id)
            self._ensure_slot_free(draft, exclude_appointment_id=appointment.id)

        previous_status = appointment.status
        appointment.doctor_id = draft.doctor_id
        appointment.title = draft.title
        appointment.description = draft.description
        appointment.type = draft.type
        appointment.location = draft.location
        appointment.notes = draft.notes
        if draft.patient_id is not None and draft.patient_id != appointment.patient_id:
            appointment.patient_id = draft.patient_id
            appointment.needs_patient_assignment = False
        appointment.set_window(draft.appointment_date, draft.appointment_time, draft.duration)
        if new_status:
            self._apply_status(appointment, new_status, actor_id, changes.get("cancellation_reason"))
        appointment.updated_by = actor_id

        self._commit_update(appointment)
        logger.info(f"Updated appointment {appointment.id} by user {actor_id}")

        if appointment.status in _CANCELLATION_STATUSES:
            self.notifier.on_cancelled(appointment)
        else:
            self.notifier.on_transition(appointment, previous_status)
        return self.repository.get(appointment.id) or appointment

    def change_status(
        self,
        actor_id: int,
        appointment_id: int,
        new_status: str,
        reason: Optional[str] = None
    ) -> Appointment:
        """
        Move an appointment along the state machine.

        Raises:
            InvalidTransitionError: From a terminal status, or along a missing edge
        """
        appointment = self._load_for_actor(actor_id, appointment_id, lock=True)
        previous_status = appointment.status
        assert_transition(previous_status, new_status)

        self._apply_status(appointment, new_status, actor_id, reason)
        appointment.updated_by = actor_id
        self._commit_update(appointment)
        logger.info(f"Appointment {appointment.id} moved from {previous_status} to {new_status} by user {actor_id}")

        if new_status in _CANCELLATION_STATUSES:
            self.notifier.on_cancelled(appointment)
        else:
            self.notifier.on_transition(appointment, previous_status)
        return self.repository.get(appointment.id) or appointment

    def cancel_appointment(
        self,
        actor_id: int,
        appointment_id: int,
        cancelled_by: str = "clinic",
        reason: Optional[str] = None
    ) -> Appointment:
        """Cancel on behalf of the clinic or the patient. The row is kept for history."""
        target_status = CANCELLED_BY_STATUS.get(cancelled_by)
        if target_status is None:
            raise AppointmentValidationError("cancelled_by must be 'clinic' or 'patient'")
        return self.change_status(actor_id, appointment_id, target_status, reason)

    def check_availability(
        self,
        actor_id: int,
        clinic_id: int,
        doctor_id: int,
        appointment_date: Any,
        appointment_time: Any,
        duration: Any = None,
        exclude_appointment_id: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Report whether a doctor's slot is free.

        Returns:
            {"available": bool, "conflict_details": {...}} where conflict_details
            is present only when the slot is unavailable. It carries either a
            ``reason`` of past_date / outside_business_hours, or the conflicting
            appointment id and its time range.
        """
        self.gate.authorize(actor_id, clinic_id)
        self.gate.ensure_doctor(doctor_id, clinic_id)
        day, start, minutes = self.gate.validate_window(appointment_date, appointment_time, duration)

        if combine_local(day, start, self.config.timezone) < utc_now():
            return {
                "available": False,
                "conflict_details": {"reason": "past_date", "message": "The requested time is in the past"},
            }

        hours_message = self._business_hours_violation(doctor_id, day, start)
        if hours_message:
            return {
                "available": False,
                "conflict_details": {"reason": "outside_business_hours", "message": hours_message},
            }

        if not self.detector.has_conflict(doctor_id, day, start, minutes, exclude_appointment_id):
            return {"available": True}

        existing = self.detector.find_conflict(doctor_id, day, start, minutes, exclude_appointment_id)
        return {"available": False, "conflict_details": self.conflict_details(existing)}

    def list_appointments(self, actor_id: int, clinic_id: int, **filters: Any) -> List[Appointment]:
        self.gate.authorize(actor_id, clinic_id)
        return self.repository.list_in_range(clinic_id=clinic_id, **filters)

    def get_appointment(self, actor_id: int, appointment_id: int) -> Appointment:
        return self._load_for_actor(actor_id, appointment_id)

    def list_unassigned_imports(self, actor_id: int, clinic_id: int) -> List[Appointment]:
        """Imported calendar events still waiting for a patient."""
        self.gate.authorize(actor_id, clinic_id)
        return self.repository.list_unassigned_imports(clinic_id)

    def assign_patient(self, actor_id: int, appointment_id: int, patient_id: int) -> Appointment:
        """Resolve an imported appointment to a patient of its clinic."""
        appointment = self._load_for_actor(actor_id, appointment_id, lock=True)
        if not appointment.needs_patient_assignment:
            raise AppointmentValidationError("Appointment already has a patient assigned")
        self.gate.ensure_patient(patient_id, appointment.clinic_id)

        appointment.patient_id = patient_id
        appointment.needs_patient_assignment = False
        appointment.updated_by = actor_id
        self._commit_update(appointment)
        logger.info(f"Assigned patient {patient_id} to imported appointment {appointment.id}")

        self.notifier.on_transition(appointment)
        return self.repository.get(appointment.id) or appointment

    def send_due_reminders(self, now: Optional[datetime] = None) -> int:
        """
        Dispatch reminders for appointments starting within the reminder window.

        Returns:
            Number of appointments reminded
        """
        now = now or utc_now()
        window_end = now + timedelta(hours=self.config.reminder_hours_before)
        tz = get_timezone(self.config.timezone)
        candidates = self.repository.list_due_for_reminder(
            now.astimezone(tz).date(), window_end.astimezone(tz).date()
        )

        sent = 0
        for appointment in candidates:
            starts_at = combine_local(appointment.appointment_date, appointment.appointment_time, self.config.timezone)
            if not (now < starts_at <= window_end):
                continue
            appointment.reminder_sent_at = now
            self.db.commit()
            self.notifier.on_reminder(appointment)
            sent += 1

        if sent:
            logger.info(f"Sent {sent} appointment reminder(s)")
        return sent

    def conflict_details(self, existing: Optional[Appointment]) -> Dict[str, Any]:
        if existing is None:
            return {"reason": "conflict"}
        start_dt, end_dt = appointment_window(
            existing.appointment_date, existing.appointment_time, existing.duration, self.config.timezone
        )
        details: Dict[str, Any] = {
            "reason": "conflict",
            "conflicting_appointment_id": existing.id,
            "conflicting_time_range": {"start": start_dt.isoformat(), "end": end_dt.isoformat()},
        }
        if existing.patient is not None:
            details["patient"] = {"id": existing.patient.id, "full_name": existing.patient.full_name}
        return details

    def _ensure_slot_free(self, draft: AppointmentDraft, exclude_appointment_id: Optional[int] = None) -> None:
        has_conflict = self.detector.has_conflict(
            draft.doctor_id, draft.appointment_date, draft.appointment_time, draft.duration, exclude_appointment_id
        )
        if not has_conflict:
            return

        existing = self.detector.find_conflict(
            draft.doctor_id, draft.appointment_date, draft.appointment_time, draft.duration, exclude_appointment_id
        )
        details = self.conflict_details(existing)
        self.db.rollback()
        logger.warning(
            f"Appointment conflict for doctor {draft.doctor_id} on {draft.appointment_date} "
            f"at {format_time_hhmm(draft.appointment_time)}"
        )
        raise AppointmentConflictError(details=details)

    def _business_hours_violation(self, doctor_id: int, day, start) -> Optional[str]:
        hours = self.db.query(PracticeHours).filter(PracticeHours.doctor_id == doctor_id).first()
        if hours is None:
            return None

        window = hours.window_for(day)
        if window is None:
            return f"The doctor does not see patients on {day.strftime('%A')}"

        opens, closes = window
        start_minute = minutes_since_midnight(start)
        if start_minute < minutes_since_midnight(opens) or start_minute >= minutes_since_midnight(closes):
            return (
                f"The requested time is outside business hours for {day.strftime('%A')} "
                f"({format_time_hhmm(opens)} - {format_time_hhmm(closes)})"
            )
        return None

    def _load_for_actor(self, actor_id: int, appointment_id: int, lock: bool = False) -> Appointment:
        """
        Load an appointment the actor may manage.

        Appointments of clinics the actor does not belong to are reported as
        not found; members without a scheduling role get AccessDeniedError.
        """
        if lock:
            appointment = self.repository.get_for_update(appointment_id)
        else:
            appointment = self.repository.get(appointment_id)
        if appointment is None:
            raise AppointmentNotFoundError()

        try:
            self.gate.authorize(actor_id, appointment.clinic_id)
        except AccessDeniedError:
            if not self.gate.is_member(actor_id, appointment.clinic_id):
                raise AppointmentNotFoundError()
            raise
        return appointment

    def _apply_status(self, appointment: Appointment, new_status: str, actor_id: int, reason: Optional[str]) -> None:
        appointment.status = new_status
        if new_status in _CANCELLATION_STATUSES:
            appointment.cancelled_by = actor_id
            appointment.cancelled_at = utc_now()
            appointment.cancellation_reason = reason

    def _commit_update(self, appointment: Appointment) -> None:
        try:
            self.repository.update(appointment)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            if is_overlap_violation(e):
                raise AppointmentConflictError()
            logger.exception(f"Failed to update appointment {appointment.id}: {e}")
            raise
