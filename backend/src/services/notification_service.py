"""
Notification dispatcher for appointment lifecycle transitions.

Each transition writes one notification row per recipient (the appointment's
doctor and, when assigned, its patient). Dispatch is best-effort: failures are
logged and swallowed so they never undo the appointment write that caused
them. The dispatcher does not de-duplicate; callers dispatch once per
transition.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from core.config import SchedulingConfig
from core.constants import (
    NOTIFICATION_ACTION_CANCELLED, NOTIFICATION_ACTION_CREATED, NOTIFICATION_ACTION_REMINDER,
    NOTIFICATION_ACTION_UPDATED, RECIPIENT_DOCTOR, RECIPIENT_PATIENT, STATUS_CANCELLED_BY_CLINIC,
    STATUS_CANCELLED_BY_PATIENT
)
from core.exceptions import NotificationNotFoundError
from models import Appointment, Notification
from utils.datetime_utils import combine_local, format_time_hhmm, utc_now

logger = logging.getLogger(__name__)

Recipient = Tuple[str, int]

_SUGGESTED_ACTIONS = {
    NOTIFICATION_ACTION_CREATED: "Review the new appointment in the agenda",
    NOTIFICATION_ACTION_UPDATED: "Review the appointment changes",
    NOTIFICATION_ACTION_CANCELLED: "The time slot is free again; consider offering it to another patient",
    NOTIFICATION_ACTION_REMINDER: "Confirm attendance before the appointment",
}

_TITLES = {
    NOTIFICATION_ACTION_CREATED: "Appointment scheduled",
    NOTIFICATION_ACTION_UPDATED: "Appointment updated",
    NOTIFICATION_ACTION_CANCELLED: "Appointment cancelled",
    NOTIFICATION_ACTION_REMINDER: "Upcoming appointment",
}


class NotificationDispatcher:
    """Writes and reads in-app notifications for appointment events."""

    def __init__(self, db: Session, config: SchedulingConfig) -> None:
        self.db = db
        self.config = config

    @staticmethod
    def recipients_for(appointment: Appointment) -> List[Recipient]:
        """The appointment's doctor, plus its patient when one is assigned."""
        recipients: List[Recipient] = [(RECIPIENT_DOCTOR, appointment.doctor_id)]
        if appointment.patient_id is not None:
            recipients.append((RECIPIENT_PATIENT, appointment.patient_id))
        return recipients

    def build_payload(self, appointment: Appointment, action: str, note: Optional[str] = None) -> Dict[str, Any]:
        starts_at = combine_local(appointment.appointment_date, appointment.appointment_time, self.config.timezone)
        patient_name = appointment.patient.full_name if appointment.patient else "Unassigned patient"
        summary = (
            f"{appointment.title} with {patient_name} on {appointment.appointment_date.isoformat()} "
            f"at {format_time_hhmm(appointment.appointment_time)} ({appointment.duration} min)"
        )
        if note:
            summary = f"{summary}. {note}"
        return {
            "title": _TITLES[action],
            "summary": summary,
            "suggested_action": _SUGGESTED_ACTIONS[action],
            "status": appointment.status,
            "starts_at": starts_at.isoformat(),
        }

    def dispatch(
        self,
        appointment: Appointment,
        action: str,
        recipients: List[Recipient],
        note: Optional[str] = None,
        priority: str = "normal"
    ) -> bool:
        """
        Write one notification per recipient and commit them.

        Args:
            appointment: Appointment the transition happened on (already committed)
            action: One of created, updated, cancelled, reminder
            recipients: (recipient_type, recipient_id) pairs
            note: Optional extra sentence appended to the summary
            priority: 'normal' or 'high'

        Returns:
            True if notifications were stored, False otherwise
        """
        try:
            payload = self.build_payload(appointment, action, note)
            for recipient_type, recipient_id in recipients:
                self.db.add(Notification(
                    recipient_type=recipient_type,
                    recipient_id=recipient_id,
                    appointment_id=appointment.id,
                    action_type=action,
                    priority=priority,
                    payload=payload,
                    is_read=False,
                ))
            self.db.commit()
            logger.info(
                f"Dispatched {action} notification for appointment {appointment.id} "
                f"to {len(recipients)} recipient(s)"
            )
            return True
        except Exception as e:
            self.db.rollback()
            logger.exception(f"Failed to dispatch {action} notification for appointment {appointment.id}: {e}")
            return False

    def on_created(self, appointment: Appointment) -> bool:
        return self.dispatch(appointment, NOTIFICATION_ACTION_CREATED, self.recipients_for(appointment))

    def on_transition(self, appointment: Appointment, previous_status: Optional[str] = None) -> bool:
        """Notify an edit or a status change; cancellations go through on_cancelled."""
        note = None
        if previous_status and previous_status != appointment.status:
            note = f"Status changed from {previous_status} to {appointment.status}"
        return self.dispatch(appointment, NOTIFICATION_ACTION_UPDATED, self.recipients_for(appointment), note=note)

    def on_cancelled(self, appointment: Appointment) -> bool:
        if appointment.status == STATUS_CANCELLED_BY_PATIENT:
            note = "Cancelled by the patient"
        elif appointment.status == STATUS_CANCELLED_BY_CLINIC:
            note = "Cancelled by the clinic"
        else:
            note = None
        if note and appointment.cancellation_reason:
            note = f"{note}: {appointment.cancellation_reason}"
        return self.dispatch(
            appointment, NOTIFICATION_ACTION_CANCELLED, self.recipients_for(appointment), note=note, priority="high"
        )

    def on_reminder(self, appointment: Appointment) -> bool:
        return self.dispatch(appointment, NOTIFICATION_ACTION_REMINDER, self.recipients_for(appointment))

    def list_for_recipient(
        self,
        recipient_type: str,
        recipient_id: int,
        unread_only: bool = False,
        limit: int = 50
    ) -> List[Notification]:
        query = self.db.query(Notification).filter(
            Notification.recipient_type == recipient_type,
            Notification.recipient_id == recipient_id,
        )
        if unread_only:
            query = query.filter(Notification.is_read.is_(False))
        return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()

    def unread_count(self, recipient_type: str, recipient_id: int) -> int:
        return self.db.query(Notification).filter(
            Notification.recipient_type == recipient_type,
            Notification.recipient_id == recipient_id,
            Notification.is_read.is_(False),
        ).count()

    def mark_as_read(self, notification_id: int, recipient_type: str, recipient_id: int) -> Notification:
        """
        Mark one of the recipient's notifications as read.

        Raises:
            NotificationNotFoundError: If the notification does not exist or belongs to someone else
        """
        notification = self.db.query(Notification).filter(
            Notification.id == notification_id,
            Notification.recipient_type == recipient_type,
            Notification.recipient_id == recipient_id,
        ).first()
        if notification is None:
            raise NotificationNotFoundError()

        if not notification.is_read:
            notification.is_read = True
            notification.read_at = utc_now()
            self.db.commit()
        return notification

    def mark_all_as_read(self, recipient_type: str, recipient_id: int) -> int:
        """Returns the number of notifications that changed."""
        updated = self.db.query(Notification).filter(
            Notification.recipient_type == recipient_type,
            Notification.recipient_id == recipient_id,
            Notification.is_read.is_(False),
        ).update({Notification.is_read: True, Notification.read_at: utc_now()}, synchronize_session=False)
        self.db.commit()
        return updated
