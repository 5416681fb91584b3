# hospital_booking/services/store.py
"""
Persistence port for the booking core.

BookingOrchestrator and RefundWorkflow receive a store at construction
instead of reaching for a global session, so the saga can be driven against
any database (or a test double) deterministically.
"""
from typing import Any, Dict, List, Optional, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from hospital_booking.db.crud import appointment as appointment_crud
from hospital_booking.db.crud import payment as payment_crud
from hospital_booking.db.models.appointment import AppointmentModel
from hospital_booking.db.models.payment import PaymentModel
from hospital_booking.scheduling.slots import Interval, as_utc


class BookingStore(Protocol):
    async def refresh(self, instance) -> None: ...

    async def booked_intervals(self, provider_id: int, window: Interval) -> List[Interval]: ...

    async def add_appointment(self, **fields: Any) -> AppointmentModel: ...

    async def get_appointment(self, appointment_id: int) -> Optional[AppointmentModel]: ...

    async def set_appointment_payment_status(self, appointment: AppointmentModel, payment_status: str) -> bool: ...

    async def cancel_appointment(self, appointment_id: int, payment_status: Optional[str] = None) -> bool: ...

    async def delete_appointment(self, appointment_id: int) -> bool: ...

    async def add_payment(self, **fields: Any) -> PaymentModel: ...

    async def get_payment(self, payment_id: int) -> Optional[PaymentModel]: ...

    async def get_payment_for_appointment(self, appointment_id: int) -> Optional[PaymentModel]: ...

    async def mark_payment_refunded(self, payment: PaymentModel, gateway_response: Dict[str, Any]) -> bool: ...


class SqlAlchemyBookingStore:
    """BookingStore backed by the async SQLAlchemy CRUD layer."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def booked_intervals(self, provider_id: int, window: Interval) -> List[Interval]:
        appointments = await appointment_crud.get_active_appointments_overlapping(
            self.db, provider_id, window.start, window.end
        )
        return [Interval(as_utc(a.starts_at), as_utc(a.ends_at)) for a in appointments]

    async def add_appointment(self, **fields: Any) -> AppointmentModel:
        return await appointment_crud.create_appointment(self.db, **fields)

    async def refresh(self, instance) -> None:
        await self.db.refresh(instance)

    async def get_appointment(self, appointment_id: int) -> Optional[AppointmentModel]:
        return await appointment_crud.get_appointment(self.db, appointment_id)

    async def list_appointments(self, **filters: Any) -> List[AppointmentModel]:
        return await appointment_crud.list_appointments(self.db, **filters)

    async def set_appointment_payment_status(self, appointment: AppointmentModel, payment_status: str) -> bool:
        updated = await appointment_crud.update_payment_status(self.db, appointment.id, payment_status)
        if updated:
            await self.db.refresh(appointment)
        return updated

    async def set_appointment_status(self, appointment: AppointmentModel, status: str) -> bool:
        updated = await appointment_crud.update_status(self.db, appointment.id, status)
        if updated:
            await self.db.refresh(appointment)
        return updated

    async def update_appointment(self, appointment: AppointmentModel, values: Dict[str, Any]) -> bool:
        updated = await appointment_crud.update_appointment_fields(self.db, appointment.id, values)
        if updated:
            await self.db.refresh(appointment)
        return updated

    async def cancel_appointment(self, appointment_id: int, payment_status: Optional[str] = None) -> bool:
        return await appointment_crud.cancel_appointment(self.db, appointment_id, payment_status)

    async def delete_appointment(self, appointment_id: int) -> bool:
        return await appointment_crud.delete_appointment(self.db, appointment_id)

    async def count_appointments_by_status(self, provider_id: Optional[int] = None) -> Dict[str, int]:
        return await appointment_crud.count_appointments_by_status(self.db, provider_id)

    async def add_payment(self, **fields: Any) -> PaymentModel:
        return await payment_crud.create_payment(self.db, **fields)

    async def get_payment(self, payment_id: int) -> Optional[PaymentModel]:
        return await payment_crud.get_payment(self.db, payment_id)

    async def get_payment_for_appointment(self, appointment_id: int) -> Optional[PaymentModel]:
        return await payment_crud.get_payment_by_appointment(self.db, appointment_id)

    async def mark_payment_refunded(self, payment: PaymentModel, gateway_response: Dict[str, Any]) -> bool:
        updated = await payment_crud.mark_payment_refunded(self.db, payment.id, gateway_response)
        if updated:
            await self.db.refresh(payment)
        return updated

