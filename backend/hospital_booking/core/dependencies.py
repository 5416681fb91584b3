# hospital_booking/core/dependencies.py
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from hospital_booking.core.middleware import get_db
from hospital_booking.services.appointments import AppointmentService
from hospital_booking.services.availability import SlotAvailabilityService
from hospital_booking.services.booking import BookingOrchestrator
from hospital_booking.services.refunds import RefundWorkflow
from hospital_booking.services.store import SqlAlchemyBookingStore


def get_store(db: AsyncSession = Depends(get_db)) -> SqlAlchemyBookingStore:
    return SqlAlchemyBookingStore(db)


def get_availability_service(
    request: Request, store: SqlAlchemyBookingStore = Depends(get_store)
) -> SlotAvailabilityService:
    state = request.app.state
    return SlotAvailabilityService(
        store,
        state.slot_engine,
        allowed_durations=state.settings.allowed_durations,
        clock=state.clock,
    )


def get_booking_orchestrator(
    request: Request,
    store: SqlAlchemyBookingStore = Depends(get_store),
    availability: SlotAvailabilityService = Depends(get_availability_service),
) -> BookingOrchestrator:
    state = request.app.state
    return BookingOrchestrator(
        store=store,
        processors=state.payment_processors,
        availability=availability,
        locks=state.provider_locks,
        settings=state.settings,
        notifier=state.notifier,
        clock=state.clock,
    )


def get_refund_workflow(
    request: Request, store: SqlAlchemyBookingStore = Depends(get_store)
) -> RefundWorkflow:
    return RefundWorkflow(store, delay_seconds=request.app.state.settings.refund_delay_seconds)


def get_appointment_service(store: SqlAlchemyBookingStore = Depends(get_store)) -> AppointmentService:
    return AppointmentService(store)
