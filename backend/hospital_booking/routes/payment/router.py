from fastapi import APIRouter, Depends, Request

from hospital_booking.config.constants import Role
from hospital_booking.core.dependencies import get_appointment_service, get_refund_workflow
from hospital_booking.core.middleware import get_current_user, require_roles
from hospital_booking.payments.charges import calculate_charges
from hospital_booking.schemas.payment import (
    ChargesOut,
    ChargesRequest,
    PaymentOut,
    PaymentValidationOut,
    PaymentValidationRequest,
    RefundResponse,
)
from hospital_booking.services.appointments import AppointmentService
from hospital_booking.services.refunds import RefundWorkflow

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/charges", response_model=ChargesOut)
async def calculate_charges_route(
    body: ChargesRequest,
    request: Request,
    current_user: dict = Depends(get_current_user),
):
    return calculate_charges(body.department, body.duration_minutes, request.app.state.settings.currency)


@router.post("/validate", response_model=PaymentValidationOut)
async def validate_payment_route(
    body: PaymentValidationRequest,
    request: Request,
    current_user: dict = Depends(get_current_user),
):
    """Check payment input before booking; nothing is charged or stored"""
    state = request.app.state
    state.payment_processors.validate(body.payment_input(), state.clock())
    return PaymentValidationOut(valid=True, message="Payment validation successful")

@router.get("/appointment/{appointment_id}", response_model=PaymentOut)
async def get_payment_for_appointment_route(
    appointment_id: int,
    service: AppointmentService = Depends(get_appointment_service),
    current_user: dict = Depends(get_current_user),
):
    return await service.payment_for_caller(appointment_id, current_user)


@router.post("/{payment_id}/refund", response_model=RefundResponse)
async def refund_payment_route(
    payment_id: int,
    workflow: RefundWorkflow = Depends(get_refund_workflow),
    current_user: dict = Depends(require_roles([Role.STAFF.value, Role.ADMIN.value])),
):
    payment = await workflow.refund(payment_id, requested_by=current_user["user_id"])
    return RefundResponse(payment=PaymentOut.model_validate(payment))
