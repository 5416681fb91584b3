from fastapi import APIRouter, Depends, Query
from typing import List, Optional
import logging

from hospital_booking.config.constants import Role
from hospital_booking.core.dependencies import get_appointment_service, get_booking_orchestrator
from hospital_booking.core.errors import PermissionDeniedError, ValidationError
from hospital_booking.core.middleware import get_current_user, require_roles
from hospital_booking.schemas.appointment import (
    AppointmentOut,
    AppointmentStats,
    AppointmentUpdate,
    BookingRequest,
    BookingResponse,
    StatusUpdate,
)
from hospital_booking.schemas.common import ErrorResponse
from hospital_booking.schemas.payment import PaymentOut, TransactionOut
from hospital_booking.services.appointments import AppointmentService
from hospital_booking.services.booking import BookingOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/appointments", tags=["appointments"])

BOOKING_ROLES = [Role.PATIENT.value, Role.STAFF.value, Role.ADMIN.value]
BOOKING_ERRORS = {
    400: {"model": ErrorResponse, "description": "Invalid booking, payment input or slot conflict"},
    402: {"model": ErrorResponse, "description": "Payment failed, booking rolled back"},
    500: {"model": ErrorResponse, "description": "Rollback incomplete, manual intervention required"},
}
STAFF_ROLES = [Role.STAFF.value, Role.ADMIN.value, Role.DOCTOR.value]


def resolve_patient_id(booking: BookingRequest, caller: dict) -> int:
    """Patients book for themselves; staff must name the patient."""
    if caller["role"] == Role.PATIENT.value:
        if booking.patient_id is not None and booking.patient_id != caller["user_id"]:
            raise PermissionDeniedError("Patients can only book appointments for themselves")
        return caller["user_id"]
    if booking.patient_id is None:
        raise ValidationError("patientId is required", fields={"patient_id": "required"})
    return booking.patient_id


@router.post("", response_model=BookingResponse, status_code=201, responses=BOOKING_ERRORS)
async def book_appointment_route(
    booking: BookingRequest,
    orchestrator: BookingOrchestrator = Depends(get_booking_orchestrator),
    current_user: dict = Depends(require_roles(BOOKING_ROLES)),
):
    """Reserve a slot and settle its payment in one request"""
    patient_id = resolve_patient_id(booking, current_user)
    outcome = await orchestrator.book(booking, patient_id)
    return BookingResponse(
        appointment=AppointmentOut.model_validate(outcome.appointment),
        payment=PaymentOut.model_validate(outcome.payment),
        transaction=TransactionOut.model_validate(outcome.transaction),
    )


@router.get("", response_model=List[AppointmentOut])
async def list_appointments_route(
    skip: int = 0,
    limit: int = Query(100, le=500),
    service: AppointmentService = Depends(get_appointment_service),
    current_user: dict = Depends(get_current_user),
):
    """Appointments visible to the caller"""
    return await service.list_for_caller(current_user, skip=skip, limit=limit)


@router.get("/stats", response_model=AppointmentStats)
async def appointment_stats_route(
    provider_id: Optional[int] = None,
    service: AppointmentService = Depends(get_appointment_service),
    current_user: dict = Depends(require_roles(STAFF_ROLES)),
):
    if current_user["role"] == Role.DOCTOR.value:
        provider_id = current_user["user_id"]
    counts = await service.stats(provider_id)
    return AppointmentStats(provider_id=provider_id, counts=counts)


@router.get("/{appointment_id}", response_model=AppointmentOut)
async def get_appointment_route(
    appointment_id: int,
    service: AppointmentService = Depends(get_appointment_service),
    current_user: dict = Depends(get_current_user),
):
    return await service.get_for_caller(appointment_id, current_user)


@router.put("/{appointment_id}", response_model=AppointmentOut)
async def update_appointment_route(
    appointment_id: int,
    update: AppointmentUpdate,
    service: AppointmentService = Depends(get_appointment_service),
    current_user: dict = Depends(get_current_user),
):
    """Patients edit reason/notes; providers and staff edit notes/status"""
    changes = update.model_dump(exclude_unset=True, exclude_none=True)
    return await service.update(appointment_id, changes, current_user)

@router.patch("/{appointment_id}/cancel", response_model=AppointmentOut)
async def cancel_appointment_route(
    appointment_id: int,
    service: AppointmentService = Depends(get_appointment_service),
    current_user: dict = Depends(get_current_user),
):
    logger.info(f"Attempting to cancel appointment {appointment_id} by user: {current_user}")
    return await service.cancel(appointment_id, current_user)


@router.patch("/{appointment_id}/status", response_model=AppointmentOut)
async def update_status_route(
    appointment_id: int,
    update: StatusUpdate,
    service: AppointmentService = Depends(get_appointment_service),
    current_user: dict = Depends(require_roles(STAFF_ROLES)),
):
    """Provider lifecycle: confirm, complete or mark no-show"""
    return await service.change_status(appointment_id, update.status, current_user)
