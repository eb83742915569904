# Package initialization
# Import all models to ensure relationships are properly established
from .clinic import Clinic
from .user import User
from .user_clinic_association import UserClinicAssociation
from .patient import Patient
from .appointment import Appointment
from .notification import Notification
from .calendar_credential import CalendarCredential
from .practice_hours import PracticeHours

__all__ = [
    "Clinic",
    "User",
    "UserClinicAssociation",
    "Patient",
    "Appointment",
    "Notification",
    "CalendarCredential",
    "PracticeHours",
]
