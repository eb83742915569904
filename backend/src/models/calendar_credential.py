"""
Calendar credential model storing a doctor's external calendar connection.

Tokens are stored Fernet-encrypted and are never returned to clients. The
access token and its expiry are rewritten in place on every refresh.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, Text, TIMESTAMP, Boolean, ForeignKey, Integer
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class CalendarCredential(Base):
    """OAuth credential and sync bookkeeping for one doctor's remote calendar."""

    __tablename__ = "calendar_credentials"

    doctor_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)

    clinic_id: Mapped[int] = mapped_column(ForeignKey("clinics.id", ondelete="CASCADE"))
    """Clinic under which events imported from the remote calendar are created."""

    remote_calendar_id: Mapped[str] = mapped_column(String(255))
    calendar_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    access_token: Mapped[str] = mapped_column(Text)
    """Encrypted access token."""

    refresh_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    """Encrypted refresh token."""

    token_expires_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True))

    sync_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    sync_direction: Mapped[str] = mapped_column(String(20), default="bidirectional")
    sync_future_days: Mapped[int] = mapped_column(Integer, default=30)

    last_sync_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    last_sync_status: Mapped[str] = mapped_column(String(20), default="pending")
    last_sync_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    doctor = relationship("User", back_populates="calendar_credential")

    def __repr__(self) -> str:
        return (
            f"<CalendarCredential(doctor_id={self.doctor_id}, calendar={self.remote_calendar_id}, "
            f"last_sync_status={self.last_sync_status})>"
        )
