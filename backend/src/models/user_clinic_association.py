"""
User-Clinic Association model for multi-clinic user support.

This model represents the many-to-many relationship between users and clinics,
storing the clinic-specific role, approval status and display name. The
Scheduling Gate reads it to decide who may book and who may be booked.
"""

from typing import Optional
from datetime import datetime
from sqlalchemy import String, TIMESTAMP, Boolean, ForeignKey, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class UserClinicAssociation(Base):
    """Many-to-many relationship between users and clinics with clinic-specific role and status."""

    __tablename__ = "user_clinic_associations"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))
    clinic_id: Mapped[int] = mapped_column(ForeignKey("clinics.id", ondelete="CASCADE"))

    role_in_clinic: Mapped[str] = mapped_column(String(50))
    """Clinic role. Values: 'doctor', 'admin_staff', 'receptionist', ..."""

    status: Mapped[str] = mapped_column(String(20), default="pending")
    """Approval status of the membership. Values: 'pending', 'approved', 'rejected'."""

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    full_name: Mapped[str] = mapped_column(String(255), default="")  # Clinic-specific name
    specialty: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    user = relationship("User", back_populates="clinic_associations")
    clinic = relationship("Clinic", back_populates="user_associations")

    __table_args__ = (
        UniqueConstraint('user_id', 'clinic_id', name='uq_user_clinic'),
        Index('idx_user_clinic_associations_user', 'user_id'),
        Index('idx_user_clinic_associations_clinic', 'clinic_id'),
        Index('idx_user_clinic_associations_clinic_role', 'clinic_id', 'role_in_clinic'),
    )

    @property
    def is_approved_and_active(self) -> bool:
        return self.status == "approved" and bool(self.is_active)

    def __repr__(self) -> str:
        return (
            f"<UserClinicAssociation(id={self.id}, user_id={self.user_id}, clinic_id={self.clinic_id}, "
            f"role={self.role_in_clinic}, status={self.status})>"
        )
