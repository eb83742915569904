# pyright: reportMissingTypeStubs=false
"""
Appointment scheduling API endpoints.

Every mutation goes through SchedulingService; errors surface as
SchedulingError subclasses and are rendered by the handlers in main.py.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from auth.dependencies import UserContext, get_current_user
from core.config import get_scheduling_config
from core.database import get_db
from core.exceptions import AppointmentValidationError
from services.appointment_service import SchedulingService
from utils.datetime_utils import parse_date
from api.responses import (
    AppointmentEnvelope, AppointmentListResponse, AppointmentResponse, AssignPatientRequest, AvailabilityResponse,
    CancelAppointmentRequest, CheckAvailabilityRequest, CreateAppointmentRequest, StatusChangeRequest,
    UpdateAppointmentRequest
)

logger = logging.getLogger(__name__)

router = APIRouter()


def get_scheduling_service(db: Session = Depends(get_db)) -> SchedulingService:
    return SchedulingService(db, get_scheduling_config())


def resolve_clinic_id(explicit: Optional[int], current_user: UserContext) -> int:
    """Use the clinic from the request, falling back to the session's clinic."""
    clinic_id = explicit if explicit is not None else current_user.clinic_id
    if clinic_id is None:
        raise AppointmentValidationError(
            "Missing required fields: clinic_id", details={"missing_fields": ["clinic_id"]}
        )
    return clinic_id


@router.post("", summary="Create an appointment")
async def create_appointment(
    request: CreateAppointmentRequest,
    current_user: UserContext = Depends(get_current_user),
    service: SchedulingService = Depends(get_scheduling_service)
) -> AppointmentEnvelope:
    payload = request.model_dump()
    if payload.get("clinic_id") is None:
        payload["clinic_id"] = current_user.clinic_id
    appointment = service.create_appointment(current_user.user_id, payload)
    return AppointmentEnvelope(appointment=AppointmentResponse.from_appointment(appointment))


@router.post("/check-availability", summary="Check whether a doctor's slot is free")
async def check_availability(
    request: CheckAvailabilityRequest,
    current_user: UserContext = Depends(get_current_user),
    service: SchedulingService = Depends(get_scheduling_service)
) -> AvailabilityResponse:
    result = service.check_availability(
        actor_id=current_user.user_id,
        clinic_id=resolve_clinic_id(request.clinic_id, current_user),
        doctor_id=request.doctor_id,
        appointment_date=request.appointment_date,
        appointment_time=request.appointment_time,
        duration=request.duration,
        exclude_appointment_id=request.exclude_appointment_id,
    )
    return AvailabilityResponse(**result)


@router.get("", summary="List appointments")
async def list_appointments(
    clinic_id: Optional[int] = Query(None),
    doctor_id: Optional[int] = Query(None),
    patient_id: Optional[int] = Query(None),
    date_from: Optional[str] = Query(None, description="YYYY-MM-DD"),
    date_to: Optional[str] = Query(None, description="YYYY-MM-DD"),
    status: Optional[List[str]] = Query(None),
    type: Optional[List[str]] = Query(None),
    limit: Optional[int] = Query(None, ge=1, le=500),
    current_user: UserContext = Depends(get_current_user),
    service: SchedulingService = Depends(get_scheduling_service)
) -> AppointmentListResponse:
    appointments = service.list_appointments(
        current_user.user_id,
        resolve_clinic_id(clinic_id, current_user),
        doctor_id=doctor_id,
        patient_id=patient_id,
        date_from=parse_date(date_from) if date_from else None,
        date_to=parse_date(date_to) if date_to else None,
        statuses=status,
        types=type,
        limit=limit,
    )
    return AppointmentListResponse(appointments=[AppointmentResponse.from_appointment(a) for a in appointments])


@router.get("/unassigned-imports", summary="Imported calendar events waiting for a patient")
async def list_unassigned_imports(
    clinic_id: Optional[int] = Query(None),
    current_user: UserContext = Depends(get_current_user),
    service: SchedulingService = Depends(get_scheduling_service)
) -> AppointmentListResponse:
    appointments = service.list_unassigned_imports(current_user.user_id, resolve_clinic_id(clinic_id, current_user))
    return AppointmentListResponse(appointments=[AppointmentResponse.from_appointment(a) for a in appointments])


@router.get("/{appointment_id}", summary="Get an appointment")
async def get_appointment(
    appointment_id: int,
    current_user: UserContext = Depends(get_current_user),
    service: SchedulingService = Depends(get_scheduling_service)
) -> AppointmentEnvelope:
    appointment = service.get_appointment(current_user.user_id, appointment_id)
    return AppointmentEnvelope(appointment=AppointmentResponse.from_appointment(appointment))


@router.put("/{appointment_id}", summary="Edit an appointment")
async def update_appointment(
    appointment_id: int,
    request: UpdateAppointmentRequest,
    current_user: UserContext = Depends(get_current_user),
    service: SchedulingService = Depends(get_scheduling_service)
) -> AppointmentEnvelope:
    appointment = service.update_appointment(
        current_user.user_id, appointment_id, request.model_dump(exclude_unset=True)
    )
    return AppointmentEnvelope(appointment=AppointmentResponse.from_appointment(appointment))


@router.post("/{appointment_id}/status", summary="Change appointment status")
async def change_status(
    appointment_id: int,
    request: StatusChangeRequest,
    current_user: UserContext = Depends(get_current_user),
    service: SchedulingService = Depends(get_scheduling_service)
) -> AppointmentEnvelope:
    appointment = service.change_status(current_user.user_id, appointment_id, request.status, request.reason)
    return AppointmentEnvelope(appointment=AppointmentResponse.from_appointment(appointment))


@router.post("/{appointment_id}/cancel", summary="Cancel an appointment")
async def cancel_appointment(
    appointment_id: int,
    request: CancelAppointmentRequest,
    current_user: UserContext = Depends(get_current_user),
    service: SchedulingService = Depends(get_scheduling_service)
) -> AppointmentEnvelope:
    appointment = service.cancel_appointment(
        current_user.user_id, appointment_id, request.cancelled_by, request.reason
    )
    return AppointmentEnvelope(appointment=AppointmentResponse.from_appointment(appointment))


@router.post("/{appointment_id}/assign-patient", summary="Assign a patient to an imported appointment")
async def assign_patient(
    appointment_id: int,
    request: AssignPatientRequest,
    current_user: UserContext = Depends(get_current_user),
    service: SchedulingService = Depends(get_scheduling_service)
) -> AppointmentEnvelope:
    appointment = service.assign_patient(current_user.user_id, appointment_id, request.patient_id)
    return AppointmentEnvelope(appointment=AppointmentResponse.from_appointment(appointment))
