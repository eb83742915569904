"""
Unit tests for the scheduling gate: authorization, payload validation and
cross-tenant reference checks.
"""

from datetime import time

import pytest

from core.exceptions import (
    AccessDeniedError, AppointmentValidationError, DoctorNotFoundError, PatientNotFoundError
)
from services.scheduling_gate import SchedulingGate
from tests.utils import (
    create_appointment, create_clinic, create_patient, create_user_with_clinic_association, future_date
)


@pytest.fixture
def clinic_setup(db_session):
    clinic = create_clinic(db_session)
    doctor = create_user_with_clinic_association(db_session, clinic, "doctor@example.com")
    admin = create_user_with_clinic_association(db_session, clinic, "admin@example.com", role="admin_staff")
    patient = create_patient(db_session, clinic)
    return clinic, doctor, admin, patient


@pytest.fixture
def gate(db_session, scheduling_config):
    return SchedulingGate(db_session, scheduling_config)


def valid_payload(clinic, doctor, patient, **overrides):
    payload = {
        "clinic_id": clinic.id,
        "doctor_id": doctor.id,
        "patient_id": patient.id,
        "title": "Consulta general",
        "appointment_date": future_date().isoformat(),
        "appointment_time": "09:00",
        "duration": 30,
        "type": "consultation",
    }
    payload.update(overrides)
    return payload


class TestAuthorize:

    def test_doctor_and_admin_staff_may_schedule(self, gate, clinic_setup):
        clinic, doctor, admin, _ = clinic_setup
        assert gate.authorize(doctor.id, clinic.id).role_in_clinic == "doctor"
        assert gate.authorize(admin.id, clinic.id).role_in_clinic == "admin_staff"

    def test_other_roles_are_denied(self, gate, db_session, clinic_setup):
        clinic = clinic_setup[0]
        receptionist = create_user_with_clinic_association(
            db_session, clinic, "reception@example.com", role="receptionist"
        )
        with pytest.raises(AccessDeniedError):
            gate.authorize(receptionist.id, clinic.id)
        assert gate.is_member(receptionist.id, clinic.id)

    def test_pending_or_inactive_membership_is_denied(self, gate, db_session, clinic_setup):
        clinic = clinic_setup[0]
        pending = create_user_with_clinic_association(db_session, clinic, "pending@example.com", status="pending")
        inactive = create_user_with_clinic_association(db_session, clinic, "gone@example.com", is_active=False)
        for user in (pending, inactive):
            with pytest.raises(AccessDeniedError):
                gate.authorize(user.id, clinic.id)
            assert not gate.is_member(user.id, clinic.id)

    def test_non_member_is_denied(self, gate, db_session, clinic_setup):
        _, doctor, _, _ = clinic_setup
        other_clinic = create_clinic(db_session, "Other Clinic")
        with pytest.raises(AccessDeniedError):
            gate.authorize(doctor.id, other_clinic.id)


class TestValidateCreate:

    def test_valid_payload_returns_draft(self, gate, clinic_setup):
        clinic, doctor, _, patient = clinic_setup
        draft = gate.validate_create(valid_payload(clinic, doctor, patient, title="  Revisión  "))

        assert draft.doctor_id == doctor.id
        assert draft.appointment_time == time(9, 0)
        assert draft.duration == 30
        assert draft.title == "Revisión"

    def test_duration_defaults_from_config(self, gate, clinic_setup):
        clinic, doctor, _, patient = clinic_setup
        payload = valid_payload(clinic, doctor, patient)
        del payload["duration"]
        assert gate.validate_create(payload).duration == 30

    def test_missing_fields_are_listed(self, gate, clinic_setup):
        clinic, doctor, _, patient = clinic_setup
        payload = valid_payload(clinic, doctor, patient, title="   ", type=None)
        del payload["patient_id"]

        with pytest.raises(AppointmentValidationError) as exc_info:
            gate.validate_create(payload)
        assert exc_info.value.code == "VALIDATION_ERROR"
        assert set(exc_info.value.details["missing_fields"]) == {"patient_id", "title", "type"}

    @pytest.mark.parametrize("overrides", [
        {"appointment_date": "10/03/2025"},
        {"appointment_date": "2025-02-30"},
        {"appointment_time": "9am"},
        {"appointment_time": "25:00"},
        {"duration": 0},
        {"duration": -15},
        {"type": "surgery"},
        {"title": "x" * 256},
    ])
    def test_malformed_fields_are_rejected(self, gate, clinic_setup, overrides):
        clinic, doctor, _, patient = clinic_setup
        with pytest.raises(AppointmentValidationError) as exc_info:
            gate.validate_create(valid_payload(clinic, doctor, patient, **overrides))
        assert exc_info.value.details["errors"]

    def test_window_crossing_midnight_is_rejected(self, gate, clinic_setup):
        clinic, doctor, _, patient = clinic_setup
        with pytest.raises(AppointmentValidationError, match="same day"):
            gate.validate_create(valid_payload(clinic, doctor, patient, appointment_time="23:45", duration=30))

    def test_window_ending_at_midnight_is_allowed(self, gate, clinic_setup):
        clinic, doctor, _, patient = clinic_setup
        draft = gate.validate_create(valid_payload(clinic, doctor, patient, appointment_time="23:30", duration=30))
        assert draft.appointment_time == time(23, 30)

    def test_doctor_from_another_clinic_is_not_found(self, gate, db_session, clinic_setup):
        clinic, _, admin, patient = clinic_setup
        other_clinic = create_clinic(db_session, "Other Clinic")
        outsider = create_user_with_clinic_association(db_session, other_clinic, "outsider@example.com")

        with pytest.raises(DoctorNotFoundError):
            gate.validate_create(valid_payload(clinic, outsider, patient))
        # Admin staff are members but not doctors
        with pytest.raises(DoctorNotFoundError):
            gate.validate_create(valid_payload(clinic, admin, patient))

    def test_patient_from_another_clinic_is_not_found(self, gate, db_session, clinic_setup):
        clinic, doctor, _, _ = clinic_setup
        other_clinic = create_clinic(db_session, "Other Clinic")
        foreign_patient = create_patient(db_session, other_clinic, "Paciente Externo")

        with pytest.raises(PatientNotFoundError):
            gate.validate_create(valid_payload(clinic, doctor, foreign_patient))


class TestValidateUpdate:

    def test_changes_are_merged_over_the_record(self, gate, db_session, clinic_setup):
        clinic, doctor, _, patient = clinic_setup
        appointment = create_appointment(db_session, clinic, doctor, patient, future_date(), time(9, 0))

        draft = gate.validate_update(appointment, {"appointment_time": "10:00", "duration": 45})
        assert draft.appointment_time == time(10, 0)
        assert draft.duration == 45
        assert draft.title == appointment.title

    def test_clinic_cannot_be_changed(self, gate, db_session, clinic_setup):
        clinic, doctor, _, patient = clinic_setup
        other_clinic = create_clinic(db_session, "Other Clinic")
        appointment = create_appointment(db_session, clinic, doctor, patient, future_date(), time(9, 0))

        assert gate.validate_update(appointment, {"clinic_id": other_clinic.id}).clinic_id == clinic.id

    def test_unassigned_import_may_keep_null_patient(self, gate, db_session, clinic_setup):
        clinic, doctor, _, _ = clinic_setup
        imported = create_appointment(db_session, clinic, doctor, None, future_date(), time(9, 0))

        draft = gate.validate_update(imported, {"title": "Imported follow-up"})
        assert draft.patient_id is None
