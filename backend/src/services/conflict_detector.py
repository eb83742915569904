"""
Conflict detection for doctor schedules.

A candidate appointment occupies the half-open window ``[start, start+duration)``.
Two windows ``[a0, a1)`` and ``[b0, b1)`` conflict iff ``a0 < b1 and b0 < a1``,
so back-to-back appointments never conflict. Only appointments whose status
still blocks the schedule (not cancelled, not no-show) are considered.

``has_conflict`` answers yes/no and stops at the first hit. Callers that need
to explain a conflict make a second, explicit ``find_conflict`` lookup.
"""

import logging
from abc import ABC, abstractmethod
from datetime import date, time
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from core.constants import NON_BLOCKING_STATUSES
from models import Appointment
from utils.datetime_utils import interval_minutes

logger = logging.getLogger(__name__)


def intervals_overlap(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    """Half-open interval intersection test."""
    return a_start < b_end and b_start < a_end


class ConflictDetector(ABC):
    """Storage-agnostic conflict detection contract."""

    def has_conflict(
        self,
        doctor_id: int,
        appointment_date: date,
        appointment_time: time,
        duration_minutes: int,
        exclude_appointment_id: Optional[int] = None
    ) -> bool:
        return self.find_conflict(
            doctor_id, appointment_date, appointment_time, duration_minutes, exclude_appointment_id
        ) is not None

    @abstractmethod
    def find_conflict(
        self,
        doctor_id: int,
        appointment_date: date,
        appointment_time: time,
        duration_minutes: int,
        exclude_appointment_id: Optional[int] = None
    ) -> Optional[Appointment]:
        """Return one blocking appointment overlapping the candidate window, or None."""


class SqlConflictDetector(ConflictDetector):
    """
    Conflict detector backed by a parameterized range query.

    The query is the fast path; the race-safe guarantee comes from the
    doctor-level row lock taken by the repository and, on PostgreSQL, the
    ``ex_appointments_doctor_no_overlap`` exclusion constraint.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def _overlap_query(
        self,
        doctor_id: int,
        appointment_date: date,
        appointment_time: time,
        duration_minutes: int,
        exclude_appointment_id: Optional[int]
    ):
        start_minute, end_minute = interval_minutes(appointment_time, duration_minutes)
        query = self.db.query(Appointment).filter(
            Appointment.doctor_id == doctor_id,
            Appointment.appointment_date == appointment_date,
            Appointment.status.not_in(sorted(NON_BLOCKING_STATUSES)),
            Appointment.start_minute < end_minute,
            Appointment.end_minute > start_minute,
        )
        if exclude_appointment_id is not None:
            query = query.filter(Appointment.id != exclude_appointment_id)
        return query

    def has_conflict(
        self,
        doctor_id: int,
        appointment_date: date,
        appointment_time: time,
        duration_minutes: int,
        exclude_appointment_id: Optional[int] = None
    ) -> bool:
        query = self._overlap_query(
            doctor_id, appointment_date, appointment_time, duration_minutes, exclude_appointment_id
        )
        return bool(self.db.query(query.exists()).scalar())

    def find_conflict(
        self,
        doctor_id: int,
        appointment_date: date,
        appointment_time: time,
        duration_minutes: int,
        exclude_appointment_id: Optional[int] = None
    ) -> Optional[Appointment]:
        return self._overlap_query(
            doctor_id, appointment_date, appointment_time, duration_minutes, exclude_appointment_id
        ).order_by(Appointment.start_minute, Appointment.id).first()


class InMemoryConflictDetector(ConflictDetector):
    """Conflict detector over an in-memory list of appointments (unit tests, previews)."""

    def __init__(self, appointments: Optional[Iterable[Appointment]] = None) -> None:
        self.appointments: List[Appointment] = list(appointments or [])

    def add(self, appointment: Appointment) -> None:
        self.appointments.append(appointment)

    def find_conflict(
        self,
        doctor_id: int,
        appointment_date: date,
        appointment_time: time,
        duration_minutes: int,
        exclude_appointment_id: Optional[int] = None
    ) -> Optional[Appointment]:
        start_minute, end_minute = interval_minutes(appointment_time, duration_minutes)
        for appointment in self.appointments:
            if appointment.doctor_id != doctor_id or appointment.appointment_date != appointment_date:
                continue
            if appointment.status in NON_BLOCKING_STATUSES:
                continue
            if exclude_appointment_id is not None and appointment.id == exclude_appointment_id:
                continue
            existing_start, existing_end = interval_minutes(appointment.appointment_time, appointment.duration)
            if intervals_overlap(start_minute, end_minute, existing_start, existing_end):
                return appointment
        return None
