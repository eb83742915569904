"""
Test utilities: model factories, auth headers and an in-memory calendar provider.
"""

from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from core.constants import STATUS_SCHEDULED
from core.exceptions import AuthExpiredError, CalendarProviderError
from models import Appointment, Clinic, Patient, User, UserClinicAssociation
from services.calendar_provider import (
    CalendarInfo, EventPayload, ExternalCalendarProvider, RemoteEvent, TokenGrant
)
from services.jwt_service import TokenPayload, jwt_service
from utils.datetime_utils import local_today

TEST_TIMEZONE = "America/Mexico_City"


def future_date(days: int = 7) -> date:
    """A clinic-local date safely in the future."""
    return local_today(TEST_TIMEZONE) + timedelta(days=days)


def create_clinic(db: Session, name: str = "Test Clinic") -> Clinic:
    clinic = Clinic(name=name, address="Av. Reforma 100", is_active=True)
    db.add(clinic)
    db.commit()
    return clinic


def create_user_with_clinic_association(
    db: Session,
    clinic: Clinic,
    email: str,
    role: str = "doctor",
    full_name: str = "Dr. Test",
    status: str = "approved",
    is_active: bool = True
) -> User:
    """Create a user and their membership in the clinic."""
    user = db.query(User).filter(User.email == email).first()
    if user is None:
        user = User(email=email, full_name=full_name, is_active=True)
        db.add(user)
        db.flush()
    db.add(UserClinicAssociation(
        user_id=user.id,
        clinic_id=clinic.id,
        role_in_clinic=role,
        status=status,
        is_active=is_active,
        full_name=full_name,
    ))
    db.commit()
    return user


def create_patient(db: Session, clinic: Clinic, full_name: str = "Ana López") -> Patient:
    patient = Patient(clinic_id=clinic.id, full_name=full_name, phone_number="5512345678")
    db.add(patient)
    db.commit()
    return patient


def create_appointment(
    db: Session,
    clinic: Clinic,
    doctor: User,
    patient: Optional[Patient],
    day: date,
    start: time,
    duration: int = 30,
    status: str = STATUS_SCHEDULED,
    **fields
) -> Appointment:
    """Insert an appointment directly, bypassing the scheduling service."""
    appointment = Appointment(
        clinic_id=clinic.id,
        doctor_id=doctor.id,
        patient_id=patient.id if patient else None,
        title=fields.pop("title", "Consulta general"),
        type=fields.pop("type", "consultation"),
        status=status,
        sync_enabled=fields.pop("sync_enabled", False),
        needs_patient_assignment=fields.pop("needs_patient_assignment", patient is None),
        **fields,
    )
    appointment.set_window(day, start, duration)
    db.add(appointment)
    db.commit()
    return appointment


def auth_headers(user: User, clinic: Optional[Clinic] = None) -> Dict[str, str]:
    """Bearer header for a session of ``user`` in ``clinic``."""
    token = jwt_service.create_access_token(TokenPayload(
        sub=str(user.id),
        clinic_id=clinic.id if clinic else None,
        email=user.email,
    ))
    return {"Authorization": f"Bearer {token}"}


class FakeCalendarProvider(ExternalCalendarProvider):
    """
    In-memory ExternalCalendarProvider.

    Events created through it are kept in ``events``; ``remote_events`` is
    what list_events returns. Set the ``*_error`` attributes to make the
    corresponding call fail.
    """

    def __init__(self) -> None:
        self.events: Dict[str, EventPayload] = {}
        self.remote_events: List[RemoteEvent] = []
        self.created: List[str] = []
        self.updated: List[str] = []
        self.refreshed: List[str] = []
        self.listed_windows: List[tuple[datetime, datetime]] = []
        self.access_tokens_seen: List[str] = []

        self.grant = TokenGrant(access_token="access-1", expires_in=3600, refresh_token="refresh-1")
        self.refreshed_grant = TokenGrant(access_token="access-2", expires_in=3600)
        self.calendar = CalendarInfo(id="doctor@example.com", name="Dr. Test")

        self.exchange_error: Optional[Exception] = None
        self.refresh_error: Optional[Exception] = None
        self.calendar_error: Optional[Exception] = None
        self.list_error: Optional[Exception] = None
        self.failing_titles: set[str] = set()
        self._next_id = 1

    async def create_event(self, access_token: str, calendar_id: str, event: EventPayload) -> str:
        self.access_tokens_seen.append(access_token)
        if event.title in self.failing_titles:
            raise CalendarProviderError(f"Remote rejected {event.title}")
        event_id = f"evt-{self._next_id}"
        self._next_id += 1
        self.events[event_id] = event
        self.created.append(event_id)
        return event_id

    async def update_event(self, access_token: str, calendar_id: str, event_id: str, event: EventPayload) -> None:
        self.access_tokens_seen.append(access_token)
        if event.title in self.failing_titles:
            raise CalendarProviderError(f"Remote rejected {event.title}")
        self.events[event_id] = event
        self.updated.append(event_id)

    async def list_events(
        self,
        access_token: str,
        calendar_id: str,
        time_min: datetime,
        time_max: datetime
    ) -> List[RemoteEvent]:
        self.access_tokens_seen.append(access_token)
        self.listed_windows.append((time_min, time_max))
        if self.list_error:
            raise self.list_error
        return list(self.remote_events)

    async def refresh_token(self, refresh_token: str) -> TokenGrant:
        self.refreshed.append(refresh_token)
        if self.refresh_error:
            raise self.refresh_error
        return self.refreshed_grant

    async def exchange_code(self, auth_code: str) -> TokenGrant:
        if self.exchange_error:
            raise self.exchange_error
        return self.grant

    async def get_primary_calendar(self, access_token: str) -> CalendarInfo:
        if self.calendar_error:
            raise self.calendar_error
        return self.calendar


def expired_refresh_error() -> AuthExpiredError:
    return AuthExpiredError("Token has been expired or revoked")
