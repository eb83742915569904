"""
Shared request and response models for API endpoints.

Request models accept loosely typed fields on purpose: formats, vocabularies
and references are checked by the scheduling gate so that every failure is
reported with the same structured error codes.
"""

from datetime import date, datetime, time
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, field_serializer

from models import Appointment, Notification


class CreateAppointmentRequest(BaseModel):
    """Request model for appointment creation."""
    doctor_id: Optional[int] = None
    patient_id: Optional[int] = None
    clinic_id: Optional[int] = None
    title: Optional[str] = None
    description: Optional[str] = None
    appointment_date: Optional[str] = None  # Format: "YYYY-MM-DD"
    appointment_time: Optional[str] = None  # Format: "HH:MM"
    duration: Optional[int] = None  # Minutes, defaults to 30
    type: Optional[str] = None
    location: Optional[str] = None
    notes: Optional[str] = None


class UpdateAppointmentRequest(BaseModel):
    """Request model for appointment edits. Only fields that are sent are changed."""
    doctor_id: Optional[int] = None
    patient_id: Optional[int] = None
    title: Optional[str] = None
    description: Optional[str] = None
    appointment_date: Optional[str] = None
    appointment_time: Optional[str] = None
    duration: Optional[int] = None
    type: Optional[str] = None
    location: Optional[str] = None
    notes: Optional[str] = None
    status: Optional[str] = None
    cancellation_reason: Optional[str] = None


class StatusChangeRequest(BaseModel):
    status: str
    reason: Optional[str] = None


class CancelAppointmentRequest(BaseModel):
    cancelled_by: str = "clinic"  # "clinic" or "patient"
    reason: Optional[str] = None


class CheckAvailabilityRequest(BaseModel):
    """Request model for availability checks."""
    doctor_id: int
    appointment_date: Optional[str] = None
    appointment_time: Optional[str] = None
    duration: Optional[int] = None
    exclude_appointment_id: Optional[int] = None
    clinic_id: Optional[int] = None  # Defaults to the session's clinic


class AssignPatientRequest(BaseModel):
    patient_id: int


class ConnectCalendarRequest(BaseModel):
    auth_code: str
    doctor_id: int
    clinic_id: Optional[int] = None  # Clinic for imported events; defaults to the session's clinic
    state: Optional[str] = None  # Signed state from the consent redirect, when present


class SyncCalendarRequest(BaseModel):
    doctor_id: int
    sync_direction: str = "bidirectional"  # to_google, from_google, bidirectional (or to_remote/from_remote)


class CalendarSettingsRequest(BaseModel):
    sync_enabled: Optional[bool] = None
    sync_direction: Optional[str] = None
    sync_future_days: Optional[int] = None


class DoctorSummary(BaseModel):
    id: int
    full_name: str
    email: Optional[str] = None


class PatientSummary(BaseModel):
    id: int
    full_name: str
    phone_number: Optional[str] = None
    email: Optional[str] = None


class ClinicSummary(BaseModel):
    id: int
    name: str
    address: Optional[str] = None


class AppointmentResponse(BaseModel):
    """Response model for an appointment joined with doctor/patient/clinic summaries."""
    id: int
    clinic_id: int
    doctor_id: int
    patient_id: Optional[int]
    title: str
    description: Optional[str] = None
    appointment_date: date  # Serialized as YYYY-MM-DD
    appointment_time: time
    duration: int
    type: str
    location: Optional[str] = None
    notes: Optional[str] = None
    status: str
    external_calendar_event_id: Optional[str] = None
    sync_enabled: bool
    last_sync_at: Optional[datetime] = None
    needs_patient_assignment: bool
    cancelled_by: Optional[int] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    created_by: Optional[int] = None
    updated_by: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    doctor: Optional[DoctorSummary] = None
    patient: Optional[PatientSummary] = None
    clinic: Optional[ClinicSummary] = None

    @field_serializer("appointment_time")
    def serialize_time(self, value: time) -> str:
        return value.strftime("%H:%M")

    @classmethod
    def from_appointment(cls, appointment: Appointment) -> "AppointmentResponse":
        doctor = appointment.doctor
        patient = appointment.patient
        clinic = appointment.clinic
        return cls(
            id=appointment.id,
            clinic_id=appointment.clinic_id,
            doctor_id=appointment.doctor_id,
            patient_id=appointment.patient_id,
            title=appointment.title,
            description=appointment.description,
            appointment_date=appointment.appointment_date,
            appointment_time=appointment.appointment_time,
            duration=appointment.duration,
            type=appointment.type,
            location=appointment.location,
            notes=appointment.notes,
            status=appointment.status,
            external_calendar_event_id=appointment.external_calendar_event_id,
            sync_enabled=bool(appointment.sync_enabled),
            last_sync_at=appointment.last_sync_at,
            needs_patient_assignment=bool(appointment.needs_patient_assignment),
            cancelled_by=appointment.cancelled_by,
            cancelled_at=appointment.cancelled_at,
            cancellation_reason=appointment.cancellation_reason,
            created_by=appointment.created_by,
            updated_by=appointment.updated_by,
            created_at=appointment.created_at,
            updated_at=appointment.updated_at,
            doctor=DoctorSummary(id=doctor.id, full_name=doctor.full_name, email=doctor.email) if doctor else None,
            patient=PatientSummary(
                id=patient.id, full_name=patient.full_name, phone_number=patient.phone_number, email=patient.email
            ) if patient else None,
            clinic=ClinicSummary(id=clinic.id, name=clinic.name, address=clinic.address) if clinic else None,
        )


class AppointmentEnvelope(BaseModel):
    success: bool = True
    appointment: AppointmentResponse


class AppointmentListResponse(BaseModel):
    """Response model for listing appointments."""
    success: bool = True
    appointments: List[AppointmentResponse]


class AvailabilityResponse(BaseModel):
    success: bool = True
    available: bool
    conflict_details: Optional[Dict[str, Any]] = None


class NotificationResponse(BaseModel):
    id: int
    appointment_id: Optional[int]
    action_type: str
    priority: str
    payload: Dict[str, Any]
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def from_notification(cls, notification: Notification) -> "NotificationResponse":
        return cls(
            id=notification.id,
            appointment_id=notification.appointment_id,
            action_type=notification.action_type,
            priority=notification.priority,
            payload=notification.payload or {},
            is_read=bool(notification.is_read),
            read_at=notification.read_at,
            created_at=notification.created_at,
        )


class NotificationListResponse(BaseModel):
    success: bool = True
    notifications: List[NotificationResponse]
    unread_count: int


class CalendarStatusResponse(BaseModel):
    success: bool = True
    connected: bool
    calendar_id: Optional[str] = None
    calendar_name: Optional[str] = None
    clinic_id: Optional[int] = None
    sync_enabled: Optional[bool] = None
    sync_direction: Optional[str] = None
    sync_future_days: Optional[int] = None
    last_sync_at: Optional[datetime] = None
    last_sync_status: Optional[str] = None
    last_sync_error: Optional[str] = None
