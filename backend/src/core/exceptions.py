"""
Domain exceptions for the scheduling core.

Every error the Scheduling API can report carries a stable machine-readable
code, a human-readable message and an HTTP status. The FastAPI exception
handlers in main.py render them as ``{"success": false, "error": {...}}``.
"""

from typing import Any, Dict, Optional

from fastapi import status


class SchedulingError(Exception):
    """Base class for errors surfaced to Scheduling API callers."""

    code = "INTERNAL_ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        error: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details is not None:
            error["details"] = self.details
        return error


class UnauthorizedError(SchedulingError):
    code = "UNAUTHORIZED"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Authentication credentials not provided"


class AppointmentValidationError(SchedulingError):
    code = "VALIDATION_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid appointment data"


class AccessDeniedError(SchedulingError):
    code = "ACCESS_DENIED"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Access denied"


class DoctorNotFoundError(SchedulingError):
    code = "DOCTOR_NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Doctor not found"


class PatientNotFoundError(SchedulingError):
    code = "PATIENT_NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Patient not found"


class AppointmentNotFoundError(SchedulingError):
    code = "APPOINTMENT_NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Appointment not found"


class AppointmentConflictError(SchedulingError):
    code = "APPOINTMENT_CONFLICT"
    status_code = status.HTTP_409_CONFLICT
    default_message = "The selected time slot is already taken"


class InvalidTransitionError(SchedulingError):
    code = "INVALID_TRANSITION"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Status transition not allowed"


class CreationError(SchedulingError):
    code = "CREATION_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Could not create the appointment"


class InternalError(SchedulingError):
    code = "INTERNAL_ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class CalendarProviderError(Exception):
    """Raised when the external calendar provider rejects or fails a request."""
    pass


class AuthExpiredError(CalendarProviderError):
    """Raised when provider tokens cannot be obtained or refreshed."""
    pass


class CalendarNotConnectedError(SchedulingError):
    """Raised when a doctor has no stored calendar credential."""
    code = "CALENDAR_NOT_CONNECTED"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Google Calendar not connected"


class NotificationNotFoundError(SchedulingError):
    code = "NOTIFICATION_NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Notification not found"


class CalendarNotConfiguredError(SchedulingError):
    code = "CALENDAR_NOT_CONFIGURED"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Google OAuth credentials not configured"
