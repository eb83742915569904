"""
Clinic model representing a medical clinic.

A clinic is the tenant that owns patients and appointments. Doctors and
administrative staff join clinics through UserClinicAssociation.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, TIMESTAMP, Boolean
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base
from core.constants import MAX_STRING_LENGTH


class Clinic(Base):
    """Clinic entity (tenant boundary for scheduling)."""

    __tablename__ = "clinics"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(MAX_STRING_LENGTH))
    address: Mapped[Optional[str]] = mapped_column(String(MAX_STRING_LENGTH), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    user_associations = relationship("UserClinicAssociation", back_populates="clinic", cascade="all, delete-orphan")
    patients = relationship("Patient", back_populates="clinic")
    appointments = relationship("Appointment", back_populates="clinic")

    def __repr__(self) -> str:
        return f"<Clinic(id={self.id}, name='{self.name}')>"
