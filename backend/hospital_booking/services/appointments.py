# hospital_booking/services/appointments.py
import logging
from typing import Any, Dict, List, Optional

from hospital_booking.config.constants import AppointmentStatus, Role
from hospital_booking.core.errors import NotFoundError, PermissionDeniedError, ValidationError

logger = logging.getLogger(__name__)

# Provider-driven lifecycle; cancellation has its own path
STATUS_TRANSITIONS = {
    AppointmentStatus.SCHEDULED.value: {
        AppointmentStatus.CONFIRMED.value,
        AppointmentStatus.COMPLETED.value,
        AppointmentStatus.NO_SHOW.value,
    },
    AppointmentStatus.CONFIRMED.value: {
        AppointmentStatus.COMPLETED.value,
        AppointmentStatus.NO_SHOW.value,
    },
}

# Columns each role may edit through a partial update
EDITABLE_FIELDS = {
    Role.PATIENT.value: {"reason", "notes"},
    Role.DOCTOR.value: {"notes", "status"},
    Role.STAFF.value: {"notes", "status"},
    Role.ADMIN.value: {"notes", "status"},
}


def ensure_can_view(appointment, caller: dict) -> None:
    role = caller["role"]
    if role == Role.PATIENT.value and appointment.patient_id != caller["user_id"]:
        raise PermissionDeniedError("Not authorized to view this appointment")
    if role == Role.DOCTOR.value and appointment.provider_id != caller["user_id"]:
        raise PermissionDeniedError("Not authorized to view this appointment")


class AppointmentService:
    """Reads and patient/staff/provider status changes outside the booking saga."""

    def __init__(self, store):
        self.store = store

    async def get_for_caller(self, appointment_id: int, caller: dict):
        appointment = await self.store.get_appointment(appointment_id)
        if appointment is None:
            raise NotFoundError("Appointment not found")
        ensure_can_view(appointment, caller)
        return appointment

    async def list_for_caller(self, caller: dict, skip: int = 0, limit: int = 100) -> List:
        role = caller["role"]
        if role == Role.PATIENT.value:
            return await self.store.list_appointments(patient_id=caller["user_id"], skip=skip, limit=limit)
        if role == Role.DOCTOR.value:
            return await self.store.list_appointments(provider_id=caller["user_id"], skip=skip, limit=limit)
        return await self.store.list_appointments(skip=skip, limit=limit)

    async def cancel(self, appointment_id: int, caller: dict):
        appointment = await self.get_for_caller(appointment_id, caller)
        if appointment.status == AppointmentStatus.CANCELLED.value:
            raise ValidationError("Appointment is already cancelled", fields={"status": appointment.status})
        if not await self.store.cancel_appointment(appointment.id):
            raise ValidationError("Appointment is already cancelled", fields={"status": "cancelled"})
        await self.store.refresh(appointment)
        logger.info(f"Appointment {appointment.id} cancelled by user {caller['user_id']} ({caller['role']})")
        return appointment

    async def change_status(self, appointment_id: int, new_status: AppointmentStatus, caller: dict):
        if caller["role"] == Role.PATIENT.value:
            raise PermissionDeniedError("Patients cannot change appointment status")
        appointment = await self.get_for_caller(appointment_id, caller)
        self._check_transition(appointment, new_status)
        await self.store.set_appointment_status(appointment, new_status.value)
        logger.info(f"Appointment {appointment.id} moved to '{new_status.value}' by user {caller['user_id']}")
        return appointment

    async def stats(self, provider_id: Optional[int] = None) -> Dict[str, int]:
        counts = await self.store.count_appointments_by_status(provider_id)
        return {status.value: counts.get(status.value, 0) for status in AppointmentStatus}

    async def payment_for_caller(self, appointment_id: int, caller: dict):
        appointment = await self.get_for_caller(appointment_id, caller)
        payment = await self.store.get_payment_for_appointment(appointment.id)
        if payment is None:
            raise NotFoundError("Payment not found for this appointment")
        return payment

    async def update(self, appointment_id: int, changes: Dict[str, Any], caller: dict):
        """Partial edit limited to the columns the caller's role may touch."""
        appointment = await self.get_for_caller(appointment_id, caller)
        if not changes:
            raise ValidationError("No changes supplied", fields={"body": "empty update"})

        forbidden = sorted(set(changes) - EDITABLE_FIELDS.get(caller["role"], set()))
        if forbidden:
            raise PermissionDeniedError(
                f"Role '{caller['role']}' cannot change {', '.join(forbidden)}",
                fields={name: "not editable" for name in forbidden},
            )

        values = dict(changes)
        if "status" in values:
            new_status = AppointmentStatus(values["status"])
            self._check_transition(appointment, new_status)
            values["status"] = new_status.value

        await self.store.update_appointment(appointment, values)
        logger.info(f"Appointment {appointment.id} updated {sorted(values)} by user {caller['user_id']}")
        return appointment

    @staticmethod
    def _check_transition(appointment, new_status: AppointmentStatus) -> None:
        allowed = STATUS_TRANSITIONS.get(appointment.status, set())
        if new_status.value not in allowed:
            raise ValidationError(
                f"Cannot move appointment from '{appointment.status}' to '{new_status.value}'",
                fields={"status": "invalid transition"},
            )
