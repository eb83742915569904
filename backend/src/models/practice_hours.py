"""
Practice hours model for a doctor's opening windows.

Availability checks report a slot as outside business hours when it starts
before the opening time or at/after the closing time for its weekday group.
A doctor without a row has no restriction.
"""

from datetime import datetime, time, date
from typing import Optional

from sqlalchemy import Time, TIMESTAMP, Boolean, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class PracticeHours(Base):
    """Weekday, Saturday and Sunday opening windows for a doctor."""

    __tablename__ = "practice_hours"

    doctor_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)

    weekday_start_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    weekday_end_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    saturday_start_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    saturday_end_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    sunday_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    sunday_start_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    sunday_end_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    doctor = relationship("User", back_populates="practice_hours")

    def window_for(self, day: date) -> Optional[tuple[time, time]]:
        """
        Opening window for the given date, or None when the doctor does not work that day.
        """
        weekday = day.weekday()  # 0=Monday ... 6=Sunday
        if weekday == 6:
            if not self.sunday_enabled:
                return None
            start, end = self.sunday_start_time, self.sunday_end_time
        elif weekday == 5:
            start, end = self.saturday_start_time, self.saturday_end_time
        else:
            start, end = self.weekday_start_time, self.weekday_end_time

        if start is None or end is None:
            return None
        return start, end
