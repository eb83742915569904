"""
Patient model representing individuals who receive care at a clinic.

Each patient belongs to exactly one clinic. Patient CRUD lives outside the
scheduling core; this table is only read to resolve appointment references.
"""

from datetime import datetime, date
from typing import Optional

from sqlalchemy import String, ForeignKey, TIMESTAMP, Date, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class Patient(Base):
    """Patient entity owned by a single clinic."""

    __tablename__ = "patients"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    clinic_id: Mapped[int] = mapped_column(ForeignKey("clinics.id"))
    full_name: Mapped[str] = mapped_column(String(255))
    phone_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    birthday: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    clinic = relationship("Clinic", back_populates="patients")
    appointments = relationship("Appointment", back_populates="patient")

    __table_args__ = (
        Index('idx_patients_clinic', 'clinic_id'),
    )

    def __repr__(self) -> str:
        return f"<Patient(id={self.id}, clinic_id={self.clinic_id}, full_name='{self.full_name}')>"
