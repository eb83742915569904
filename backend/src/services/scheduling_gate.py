"""
Authorization and validation in front of every appointment mutation.

The gate answers two questions before anything touches the schedule: may this
actor act for the clinic, and does the request describe a well-formed
appointment whose doctor and patient both belong to that clinic. References
that point into another clinic are reported as not found, never as
forbidden, so tenants cannot probe each other's records.
"""

import logging
from dataclasses import dataclass
from datetime import date, time
from typing import Any, Dict, List, Mapping, Optional, Tuple

from sqlalchemy.orm import Session

from core.config import SchedulingConfig
from core.constants import (
    APPOINTMENT_TYPES, ASSOCIATION_STATUS_APPROVED, MAX_TITLE_LENGTH, ROLE_DOCTOR, SCHEDULING_ROLES
)
from core.exceptions import (
    AccessDeniedError, AppointmentValidationError, DoctorNotFoundError, PatientNotFoundError
)
from models import Appointment, Patient, UserClinicAssociation
from utils.datetime_utils import fits_in_day, parse_date, parse_time

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = (
    "doctor_id", "patient_id", "clinic_id", "title", "appointment_date", "appointment_time", "type"
)


@dataclass
class AppointmentDraft:
    """A validated appointment request, with parsed date/time and resolved references."""
    clinic_id: int
    doctor_id: int
    patient_id: Optional[int]
    title: str
    appointment_date: date
    appointment_time: time
    duration: int
    type: str
    description: Optional[str] = None
    location: Optional[str] = None
    notes: Optional[str] = None


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class SchedulingGate:
    """Role, membership and payload checks for the scheduling service."""

    def __init__(self, db: Session, config: SchedulingConfig) -> None:
        self.db = db
        self.config = config

    def authorize(self, actor_id: int, clinic_id: int) -> UserClinicAssociation:
        """
        Ensure the actor may schedule for the clinic.

        Requires an approved, active clinic relationship whose role is doctor
        or admin_staff.

        Returns:
            The actor's clinic association

        Raises:
            AccessDeniedError: If any of the conditions fails
        """
        association = self.db.query(UserClinicAssociation).filter(
            UserClinicAssociation.user_id == actor_id,
            UserClinicAssociation.clinic_id == clinic_id,
        ).first()

        if association is None or not association.is_approved_and_active:
            logger.warning(f"User {actor_id} has no active membership in clinic {clinic_id}")
            raise AccessDeniedError("You do not have access to this clinic")

        if association.role_in_clinic not in SCHEDULING_ROLES:
            logger.warning(
                f"User {actor_id} with role {association.role_in_clinic} tried to schedule in clinic {clinic_id}"
            )
            raise AccessDeniedError("Your role does not allow managing appointments")

        return association

    def is_member(self, actor_id: int, clinic_id: int) -> bool:
        """True when the actor has an approved, active relationship with the clinic, whatever the role."""
        association = self.db.query(UserClinicAssociation).filter(
            UserClinicAssociation.user_id == actor_id,
            UserClinicAssociation.clinic_id == clinic_id,
        ).first()
        return association is not None and association.is_approved_and_active

    def validate_create(self, payload: Mapping[str, Any]) -> AppointmentDraft:
        """
        Validate a create request and resolve its doctor and patient.

        Raises:
            AppointmentValidationError: Missing or malformed fields
            DoctorNotFoundError: Doctor is not an approved, active doctor of the clinic
            PatientNotFoundError: Patient does not belong to the clinic
        """
        missing = [field for field in REQUIRED_FIELDS if _is_blank(payload.get(field))]
        if missing:
            raise AppointmentValidationError(
                f"Missing required fields: {', '.join(missing)}",
                details={"missing_fields": missing},
            )
        return self._validate(payload, allow_unassigned_patient=False)

    def validate_update(self, appointment: Appointment, changes: Mapping[str, Any]) -> AppointmentDraft:
        """
        Validate the record that results from applying ``changes`` to ``appointment``.

        Imported appointments still waiting for a patient may keep a null
        patient; every other rule is the same as for creation.
        """
        merged: Dict[str, Any] = {
            "clinic_id": appointment.clinic_id,
            "doctor_id": appointment.doctor_id,
            "patient_id": appointment.patient_id,
            "title": appointment.title,
            "description": appointment.description,
            "appointment_date": appointment.appointment_date.isoformat(),
            "appointment_time": appointment.appointment_time.strftime("%H:%M"),
            "duration": appointment.duration,
            "type": appointment.type,
            "location": appointment.location,
            "notes": appointment.notes,
        }
        for key, value in changes.items():
            if key not in merged or key == "clinic_id":
                continue
            # A null duration keeps the stored one; the default only applies on creation
            if key == "duration" and value is None:
                continue
            merged[key] = value

        required = [f for f in REQUIRED_FIELDS if f != "patient_id"]
        missing = [field for field in required if _is_blank(merged.get(field))]
        if missing:
            raise AppointmentValidationError(
                f"Missing required fields: {', '.join(missing)}",
                details={"missing_fields": missing},
            )
        return self._validate(merged, allow_unassigned_patient=appointment.needs_patient_assignment)

    def validate_window(
        self,
        appointment_date: Any,
        appointment_time: Any,
        duration: Any
    ) -> Tuple[date, time, int]:
        """Parse and check a date/time/duration triple."""
        errors: List[str] = []
        parsed_date: Optional[date] = None
        parsed_time: Optional[time] = None

        try:
            parsed_date = parse_date(appointment_date)
        except ValueError:
            errors.append("appointment_date must use the YYYY-MM-DD format")
        try:
            parsed_time = parse_time(appointment_time)
        except ValueError:
            errors.append("appointment_time must use the HH:MM format")

        if duration is None:
            duration = self.config.default_duration_minutes
        if isinstance(duration, bool) or not isinstance(duration, int) or duration <= 0:
            errors.append("duration must be a positive number of minutes")
        elif parsed_time is not None and not fits_in_day(parsed_time, duration):
            errors.append("Appointment must start and end on the same day")

        if errors:
            raise AppointmentValidationError("; ".join(errors), details={"errors": errors})

        assert parsed_date is not None and parsed_time is not None
        return parsed_date, parsed_time, duration

    def ensure_doctor(self, doctor_id: int, clinic_id: int) -> UserClinicAssociation:
        association = self.db.query(UserClinicAssociation).filter(
            UserClinicAssociation.user_id == doctor_id,
            UserClinicAssociation.clinic_id == clinic_id,
            UserClinicAssociation.role_in_clinic == ROLE_DOCTOR,
            UserClinicAssociation.status == ASSOCIATION_STATUS_APPROVED,
            UserClinicAssociation.is_active.is_(True),
        ).first()
        if association is None:
            raise DoctorNotFoundError(f"Doctor {doctor_id} not found in this clinic")
        return association

    def ensure_patient(self, patient_id: int, clinic_id: int) -> Patient:
        patient = self.db.query(Patient).filter(
            Patient.id == patient_id,
            Patient.clinic_id == clinic_id,
        ).first()
        if patient is None:
            raise PatientNotFoundError(f"Patient {patient_id} not found in this clinic")
        return patient

    def _validate(self, data: Mapping[str, Any], allow_unassigned_patient: bool) -> AppointmentDraft:
        errors: List[str] = []

        title = data.get("title")
        if not isinstance(title, str):
            errors.append("title must be a string")
        elif len(title.strip()) > MAX_TITLE_LENGTH:
            errors.append(f"title must be at most {MAX_TITLE_LENGTH} characters")

        appointment_type = data.get("type")
        if appointment_type not in APPOINTMENT_TYPES:
            errors.append(f"type must be one of: {', '.join(APPOINTMENT_TYPES)}")

        for field in ("doctor_id", "clinic_id"):
            value = data.get(field)
            if isinstance(value, bool) or not isinstance(value, int):
                errors.append(f"{field} must be an integer id")
        patient_id = data.get("patient_id")
        if patient_id is not None and (isinstance(patient_id, bool) or not isinstance(patient_id, int)):
            errors.append("patient_id must be an integer id")

        try:
            appointment_date, appointment_time, duration = self.validate_window(
                data.get("appointment_date"), data.get("appointment_time"), data.get("duration")
            )
        except AppointmentValidationError as e:
            errors.extend(e.details["errors"] if e.details else [e.message])

        if errors:
            raise AppointmentValidationError("; ".join(errors), details={"errors": errors})

        clinic_id: int = data["clinic_id"]
        doctor_id: int = data["doctor_id"]
        self.ensure_doctor(doctor_id, clinic_id)
        if patient_id is not None:
            self.ensure_patient(patient_id, clinic_id)
        elif not allow_unassigned_patient:
            raise AppointmentValidationError(
                "Missing required fields: patient_id", details={"missing_fields": ["patient_id"]}
            )

        return AppointmentDraft(
            clinic_id=clinic_id,
            doctor_id=doctor_id,
            patient_id=patient_id,
            title=title.strip(),  # type: ignore[union-attr]
            appointment_date=appointment_date,
            appointment_time=appointment_time,
            duration=duration,
            type=appointment_type,  # type: ignore[arg-type]
            description=data.get("description"),
            location=data.get("location"),
            notes=data.get("notes"),
        )
