"""
Services package for the scheduling core.

This package contains the service classes that own scheduling, calendar
and notification behavior shared across API endpoints and background jobs.
"""

from .appointment_repository import AppointmentRepository
from .conflict_detector import ConflictDetector, InMemoryConflictDetector, SqlConflictDetector
from .scheduling_gate import SchedulingGate
from .notification_service import NotificationDispatcher
from .appointment_service import SchedulingService
from .calendar_credential_service import CalendarCredentialStore
from .calendar_sync_service import CalendarSyncEngine

__all__ = [
    "AppointmentRepository",
    "ConflictDetector",
    "InMemoryConflictDetector",
    "SqlConflictDetector",
    "SchedulingGate",
    "NotificationDispatcher",
    "SchedulingService",
    "CalendarCredentialStore",
    "CalendarSyncEngine",
]
