"""
Notification model for appointment lifecycle messages.

One row is written per recipient per appointment transition. Rows are read
by the in-app notification bell; delivery channels are out of scope.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import String, TIMESTAMP, Boolean, ForeignKey, Index, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class Notification(Base):
    """A single notification addressed to a doctor or a patient."""

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    recipient_type: Mapped[str] = mapped_column(String(20))
    """'doctor' (recipient_id is a users.id) or 'patient' (recipient_id is a patients.id)."""

    recipient_id: Mapped[int] = mapped_column()
    appointment_id: Mapped[Optional[int]] = mapped_column(ForeignKey("appointments.id", ondelete="CASCADE"), nullable=True)

    action_type: Mapped[str] = mapped_column(String(20))
    """One of 'created', 'updated', 'cancelled', 'reminder'."""

    priority: Mapped[str] = mapped_column(String(20), default="normal")

    payload: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    """
    Human-readable content:
    {
        "title": "...",
        "summary": "...",
        "suggested_action": "...",
        "status": "scheduled",
        "starts_at": "2025-03-10T09:00:00-06:00"
    }
    """

    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    appointment = relationship("Appointment")

    __table_args__ = (
        Index('idx_notifications_recipient', 'recipient_type', 'recipient_id', 'is_read'),
        Index('idx_notifications_appointment', 'appointment_id'),
    )

    def __repr__(self) -> str:
        return (
            f"<Notification(id={self.id}, recipient={self.recipient_type}:{self.recipient_id}, "
            f"appointment_id={self.appointment_id}, action={self.action_type})>"
        )
