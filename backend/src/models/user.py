"""
Unified User model for clinic personnel.

All clinic personnel (doctors, administrative staff) are stored in this single
table. Role and approval state are clinic-specific and live on
UserClinicAssociation.
"""

from datetime import datetime

from sqlalchemy import String, TIMESTAMP, Boolean
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class User(Base):
    """Unified user model for all clinic personnel."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True)  # Globally unique (not per-clinic)
    full_name: Mapped[str] = mapped_column(String(255), default="")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    clinic_associations = relationship(
        "UserClinicAssociation",
        back_populates="user",
        cascade="all, delete-orphan"
    )
    """User-clinic associations. Roles and names are clinic-specific."""

    calendar_credential = relationship("CalendarCredential", back_populates="doctor", uselist=False, cascade="all, delete-orphan")
    practice_hours = relationship("PracticeHours", back_populates="doctor", uselist=False, cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}')>"
