"""
Appointment model representing a scheduled visit between a patient and a doctor.

An appointment occupies the half-open window ``[start, start + duration)`` on a
single calendar date, in the clinic's local time. ``start_minute`` and
``end_minute`` mirror that window as integers so the overlap range query and
the PostgreSQL exclusion constraint (see the initial Alembic migration) can
use them directly.
"""

from datetime import date as date_type, datetime, time
from typing import Optional

from sqlalchemy import String, Text, ForeignKey, Index, TIMESTAMP, Boolean, Date, Time, Integer, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.constants import TERMINAL_STATUSES
from core.database import Base
from utils.datetime_utils import interval_minutes


class Appointment(Base):
    """
    Appointment entity owned by a clinic.

    The Scheduling API is the only writer of clinical fields. The calendar
    sync engine only creates imported rows or updates the
    external_calendar_event_id / last_sync_at bookkeeping of existing ones.
    """

    __tablename__ = "appointments"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    clinic_id: Mapped[int] = mapped_column(ForeignKey("clinics.id"))
    doctor_id: Mapped[int] = mapped_column(ForeignKey("users.id"))

    patient_id: Mapped[Optional[int]] = mapped_column(ForeignKey("patients.id"), nullable=True)
    """Null only for calendar imports awaiting patient assignment."""

    title: Mapped[str] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    appointment_date: Mapped[date_type] = mapped_column(Date)
    appointment_time: Mapped[time] = mapped_column(Time)
    duration: Mapped[int] = mapped_column(Integer, default=30)
    """Duration in minutes."""

    start_minute: Mapped[int] = mapped_column(Integer)
    end_minute: Mapped[int] = mapped_column(Integer)

    type: Mapped[str] = mapped_column(String(50), default="consultation")
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(String(50), default="scheduled")
    """Valid values: see core.constants.APPOINTMENT_STATUSES."""

    external_calendar_event_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    """Weak reference to the remote calendar event; the provider owns its lifecycle."""

    sync_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    last_sync_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    needs_patient_assignment: Mapped[bool] = mapped_column(Boolean, default=False)
    """True for imported events whose patient could not be resolved (reconciliation worklist)."""

    cancelled_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    reminder_sent_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    """NULL means the reminder notification has not been dispatched yet."""

    created_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)
    updated_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    clinic = relationship("Clinic", back_populates="appointments")
    doctor = relationship("User", foreign_keys=[doctor_id])
    patient = relationship("Patient", back_populates="appointments")

    __table_args__ = (
        CheckConstraint("duration > 0", name="check_appointment_positive_duration"),
        CheckConstraint("end_minute <= 1440", name="check_appointment_within_day"),
        Index('idx_appointments_doctor_date', 'doctor_id', 'appointment_date'),
        Index('idx_appointments_clinic_date', 'clinic_id', 'appointment_date'),
        Index('idx_appointments_status', 'status'),
        Index('idx_appointments_external_event', 'external_calendar_event_id'),
        Index('idx_appointments_status_reminder', 'status', 'reminder_sent_at'),
    )

    def set_window(self, appointment_date: date_type, appointment_time: time, duration: int) -> None:
        """Set date/time/duration and keep the derived minute columns in step."""
        self.appointment_date = appointment_date
        self.appointment_time = appointment_time
        self.duration = duration
        self.start_minute, self.end_minute = interval_minutes(appointment_time, duration)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def __repr__(self) -> str:
        return (
            f"<Appointment(id={self.id}, doctor_id={self.doctor_id}, date={self.appointment_date}, "
            f"time={self.appointment_time}, duration={self.duration}, status={self.status})>"
        )
