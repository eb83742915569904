"""Application constants and configuration values."""

from core.config import FRONTEND_URL

# Database field lengths
MAX_STRING_LENGTH = 255
MAX_TITLE_LENGTH = 255

# Database connection settings
DB_POOL_RECYCLE_SECONDS = 300  # 5 minutes

# CORS origins for development and production
_CORS_ORIGINS_RAW = [
    "http://localhost:5173",      # React dev server (Vite)
    FRONTEND_URL,
]

# Filter out None values and empty strings to avoid CORS errors
CORS_ORIGINS = [origin for origin in _CORS_ORIGINS_RAW if origin and origin.strip()]

# Appointment statuses
STATUS_SCHEDULED = "scheduled"
STATUS_CONFIRMED = "confirmed"
STATUS_CONFIRMED_BY_PATIENT = "confirmed_by_patient"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED_BY_CLINIC = "cancelled_by_clinic"
STATUS_CANCELLED_BY_PATIENT = "cancelled_by_patient"
STATUS_NO_SHOW = "no_show"

APPOINTMENT_STATUSES = (
    STATUS_SCHEDULED,
    STATUS_CONFIRMED,
    STATUS_CONFIRMED_BY_PATIENT,
    STATUS_COMPLETED,
    STATUS_CANCELLED_BY_CLINIC,
    STATUS_CANCELLED_BY_PATIENT,
    STATUS_NO_SHOW,
)

# Statuses that never occupy the doctor's time
NON_BLOCKING_STATUSES = frozenset({
    STATUS_CANCELLED_BY_CLINIC,
    STATUS_CANCELLED_BY_PATIENT,
    STATUS_NO_SHOW,
})

TERMINAL_STATUSES = frozenset({
    STATUS_COMPLETED,
    STATUS_CANCELLED_BY_CLINIC,
    STATUS_CANCELLED_BY_PATIENT,
    STATUS_NO_SHOW,
})

# Statuses pushed to the external calendar
SYNCABLE_STATUSES = (STATUS_SCHEDULED, STATUS_CONFIRMED, STATUS_CONFIRMED_BY_PATIENT)

_CLOSING_STATUSES = {STATUS_CANCELLED_BY_CLINIC, STATUS_CANCELLED_BY_PATIENT, STATUS_NO_SHOW}

# Allowed status transitions (terminal statuses have no entry)
STATUS_TRANSITIONS: dict[str, frozenset[str]] = {
    STATUS_SCHEDULED: frozenset({STATUS_CONFIRMED, STATUS_CONFIRMED_BY_PATIENT} | _CLOSING_STATUSES),
    STATUS_CONFIRMED: frozenset({STATUS_COMPLETED, STATUS_CONFIRMED_BY_PATIENT} | _CLOSING_STATUSES),
    STATUS_CONFIRMED_BY_PATIENT: frozenset({STATUS_COMPLETED} | _CLOSING_STATUSES),
}

APPOINTMENT_TYPES = ("consultation", "follow_up", "check_up", "procedure", "emergency")

MINUTES_PER_DAY = 24 * 60

# Clinic relationship roles allowed to mutate appointments
ROLE_DOCTOR = "doctor"
ROLE_ADMIN_STAFF = "admin_staff"
SCHEDULING_ROLES = frozenset({ROLE_DOCTOR, ROLE_ADMIN_STAFF})

ASSOCIATION_STATUS_APPROVED = "approved"

# Notifications
NOTIFICATION_ACTION_CREATED = "created"
NOTIFICATION_ACTION_UPDATED = "updated"
NOTIFICATION_ACTION_CANCELLED = "cancelled"
NOTIFICATION_ACTION_REMINDER = "reminder"
RECIPIENT_DOCTOR = "doctor"
RECIPIENT_PATIENT = "patient"

# Reminder scheduler settings
REMINDER_SCHEDULER_MAX_INSTANCES = 1  # Prevent overlapping scheduler runs

# Calendar sync
SYNC_DIRECTION_TO_REMOTE = "to_remote"
SYNC_DIRECTION_FROM_REMOTE = "from_remote"
SYNC_DIRECTION_BIDIRECTIONAL = "bidirectional"
SYNC_DIRECTIONS = (SYNC_DIRECTION_TO_REMOTE, SYNC_DIRECTION_FROM_REMOTE, SYNC_DIRECTION_BIDIRECTIONAL)

# Provider-specific names accepted by the sync endpoint
SYNC_DIRECTION_ALIASES = {
    "to_google": SYNC_DIRECTION_TO_REMOTE,
    "from_google": SYNC_DIRECTION_FROM_REMOTE,
}

SYNC_STATUS_PENDING = "pending"
SYNC_STATUS_SUCCESS = "success"
SYNC_STATUS_ERROR = "error"

MAX_SYNC_FUTURE_DAYS = 365
CALENDAR_SYNC_MAX_INSTANCES = 1

IMPORTED_APPOINTMENT_DEFAULT_TITLE = "Imported calendar event"
IMPORTED_APPOINTMENT_TYPE = "consultation"

AUTH_REFRESH_FAILED_MESSAGE = "Failed to refresh Google token"
AUTH_EXCHANGE_FAILED_MESSAGE = "Failed to exchange authorization code"
CALENDAR_ACCESS_FAILED_MESSAGE = "Failed to access Google Calendar"
CALENDAR_SAVE_FAILED_MESSAGE = "Failed to save calendar settings"
INVALID_DOCTOR_MESSAGE = "Invalid doctor ID"

# Google OAuth / Calendar
GOOGLE_OAUTH_SCOPES = [
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
]
