"""
Persistence access for appointment records.

The repository owns no business rules: CRUD, range queries and the
doctor-level row lock that serializes check-then-insert sequences.
"""

import logging
from datetime import date, datetime
from typing import List, Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from core.constants import SYNCABLE_STATUSES
from models import Appointment, User

logger = logging.getLogger(__name__)

EXCLUSION_CONSTRAINT_NAME = "ex_appointments_doctor_no_overlap"
EXCLUSION_VIOLATION_PGCODE = "23P01"


def is_overlap_violation(error: IntegrityError) -> bool:
    """True when an IntegrityError comes from the no-overlap exclusion constraint."""
    original = getattr(error, "orig", None)
    if getattr(original, "pgcode", None) == EXCLUSION_VIOLATION_PGCODE:
        return True
    return EXCLUSION_CONSTRAINT_NAME in str(original or error)


class AppointmentRepository:
    """CRUD and range queries over the appointments table."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, appointment_id: int) -> Optional[Appointment]:
        return self.db.query(Appointment).options(
            joinedload(Appointment.doctor),
            joinedload(Appointment.patient),
            joinedload(Appointment.clinic),
        ).filter(Appointment.id == appointment_id).first()

    def get_for_update(self, appointment_id: int) -> Optional[Appointment]:
        """Fetch an appointment and lock its row for the rest of the transaction."""
        return self.db.query(Appointment).filter(
            Appointment.id == appointment_id
        ).with_for_update().first()

    def lock_doctor_schedule(self, doctor_id: int) -> None:
        """
        Serialize schedule writes for one doctor.

        Locks the doctor's user row so two concurrent check-then-insert
        sequences for the same doctor run one after the other. SQLite ignores
        FOR UPDATE; there the single-writer database gives the same ordering.
        """
        self.db.query(User.id).filter(User.id == doctor_id).with_for_update().first()

    def insert(self, appointment: Appointment) -> Appointment:
        """
        Add and flush a new appointment.

        Raises:
            IntegrityError: Propagated so the caller can map overlap violations
        """
        self.db.add(appointment)
        self.db.flush()
        return appointment

    def update(self, appointment: Appointment) -> Appointment:
        self.db.flush()
        return appointment

    def list_in_range(
        self,
        clinic_id: Optional[int] = None,
        doctor_id: Optional[int] = None,
        patient_id: Optional[int] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        statuses: Optional[Sequence[str]] = None,
        types: Optional[Sequence[str]] = None,
        limit: Optional[int] = None,
    ) -> List[Appointment]:
        query = self.db.query(Appointment).options(
            joinedload(Appointment.doctor),
            joinedload(Appointment.patient),
        )
        if clinic_id is not None:
            query = query.filter(Appointment.clinic_id == clinic_id)
        if doctor_id is not None:
            query = query.filter(Appointment.doctor_id == doctor_id)
        if patient_id is not None:
            query = query.filter(Appointment.patient_id == patient_id)
        if date_from is not None:
            query = query.filter(Appointment.appointment_date >= date_from)
        if date_to is not None:
            query = query.filter(Appointment.appointment_date <= date_to)
        if statuses:
            query = query.filter(Appointment.status.in_(list(statuses)))
        if types:
            query = query.filter(Appointment.type.in_(list(types)))

        query = query.order_by(Appointment.appointment_date, Appointment.start_minute, Appointment.id)
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def list_syncable_from(self, doctor_id: int, from_date: date) -> List[Appointment]:
        """Appointments to push to the remote calendar: active statuses, on or after from_date."""
        return self.db.query(Appointment).options(
            joinedload(Appointment.patient),
        ).filter(
            Appointment.doctor_id == doctor_id,
            Appointment.appointment_date >= from_date,
            Appointment.status.in_(list(SYNCABLE_STATUSES)),
        ).order_by(Appointment.appointment_date, Appointment.start_minute).all()

    def find_by_external_event_id(self, doctor_id: int, external_event_id: str) -> Optional[Appointment]:
        return self.db.query(Appointment).filter(
            Appointment.doctor_id == doctor_id,
            Appointment.external_calendar_event_id == external_event_id,
        ).first()

    def list_unassigned_imports(self, clinic_id: int) -> List[Appointment]:
        return self.db.query(Appointment).filter(
            Appointment.clinic_id == clinic_id,
            Appointment.needs_patient_assignment.is_(True),
        ).order_by(Appointment.appointment_date, Appointment.start_minute).all()

    def list_due_for_reminder(self, start_date: date, end_date: date) -> List[Appointment]:
        """Candidates for reminders; the caller narrows by exact start datetime."""
        return self.db.query(Appointment).options(
            joinedload(Appointment.patient),
        ).filter(
            Appointment.appointment_date >= start_date,
            Appointment.appointment_date <= end_date,
            Appointment.status.in_(list(SYNCABLE_STATUSES)),
            Appointment.reminder_sent_at.is_(None),
        ).all()

    def mark_synced(self, appointment: Appointment, external_event_id: str, synced_at: datetime) -> None:
        """Record sync bookkeeping; the only fields the sync engine writes on existing rows."""
        appointment.external_calendar_event_id = external_event_id
        appointment.sync_enabled = True
        appointment.last_sync_at = synced_at
        self.db.flush()
