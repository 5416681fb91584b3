import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select, delete, update, and_, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from hospital_booking.config.constants import AppointmentStatus
from hospital_booking.core.errors import ConflictError
from hospital_booking.db.models.appointment import AppointmentModel
from hospital_booking.db.models.payment import PaymentModel

logger = logging.getLogger(__name__)

CANCELLED = AppointmentStatus.CANCELLED.value


async def create_appointment(
    db: AsyncSession,
    patient_id: int,
    provider_id: int,
    department: str,
    starts_at: datetime,  # Should be UTC datetime
    ends_at: datetime,  # Should be UTC datetime
    duration_minutes: int,
    reason: str,
    payment_method: str,
    payment_status: str,
    amount,
    notes: Optional[str] = None,
) -> AppointmentModel:
    """
    Insert a new appointment with status 'scheduled'.

    The partial unique index on (provider_id, starts_at) is the last line of
    defence against double-booking: a violation is rolled back and surfaced as
    a ConflictError rather than a generic write failure.

    Args:
        db (AsyncSession): The database session.
        patient_id (int): The patient being booked.
        provider_id (int): The provider whose slot is taken.
        department (str): Department the visit belongs to.
        starts_at (datetime): UTC start of the slot.
        ends_at (datetime): UTC end of the slot.
        duration_minutes (int): Slot length.
        reason (str): Reason for the visit.
        payment_method (str): Selected payment method.
        payment_status (str): Initial payment status derived from the method.
        amount: Charged amount.
        notes (Optional[str]): Free text notes.

    Returns:
        AppointmentModel: The persisted appointment.

    Raises:
        ConflictError: The provider already has an active booking at starts_at.
    """
    logger.info(
        f"CRUD: Creating appointment for patient_id={patient_id} with provider_id={provider_id} "
        f"from {starts_at} to {ends_at}"
    )
    new_appointment = AppointmentModel(
        patient_id=patient_id,
        provider_id=provider_id,
        department=department,
        starts_at=starts_at,
        ends_at=ends_at,
        duration_minutes=duration_minutes,
        reason=reason,
        notes=notes,
        status=AppointmentStatus.SCHEDULED.value,
        payment_status=payment_status,
        payment_method=payment_method,
        amount=amount,
    )
    db.add(new_appointment)
    try:
        await db.commit()
    except IntegrityError as e:  # Catches DB-level unique index violations
        await db.rollback()
        logger.warning(
            f"CRUD: Unique slot index rejected appointment for provider_id={provider_id} at {starts_at}: {e.orig}"
        )
        raise ConflictError(
            "This time slot is already booked. Please choose another time.",
            fields={"start_time": "slot already booked"},
        )
    except SQLAlchemyError:
        await db.rollback()
        raise
    await db.refresh(new_appointment)

    logger.info(
        f"CRUD: Created appointment_id={new_appointment.id} with status='{new_appointment.status}'."
    )
    return new_appointment


async def get_appointment(db: AsyncSession, appointment_id: int) -> Optional[AppointmentModel]:
    result = await db.execute(
        select(AppointmentModel).where(AppointmentModel.id == appointment_id)
    )
    return result.scalars().first()


async def get_active_appointments_overlapping(
    db: AsyncSession,
    provider_id: int,
    window_start: datetime,
    window_end: datetime,
) -> List[AppointmentModel]:
    """
    Non-cancelled appointments of a provider that overlap [window_start, window_end).

    Payment status is ignored on purpose: an appointment whose payment is still
    being settled occupies its slot like any other.
    """
    stmt = (
        select(AppointmentModel)
        .where(
            and_(
                AppointmentModel.provider_id == provider_id,
                AppointmentModel.status != CANCELLED,
                AppointmentModel.starts_at < window_end,
                AppointmentModel.ends_at > window_start,
            )
        )
        .order_by(AppointmentModel.starts_at)
    )
    result = await db.execute(stmt)
    appointments = result.scalars().all()
    logger.debug(
        f"CRUD: {len(appointments)} active appointments for provider_id={provider_id} "
        f"between {window_start} and {window_end}"
    )
    return list(appointments)


async def list_appointments(
    db: AsyncSession,
    patient_id: Optional[int] = None,
    provider_id: Optional[int] = None,
    skip: int = 0,
    limit: int = 100,
) -> List[AppointmentModel]:
    query = select(AppointmentModel)
    if patient_id is not None:
        query = query.where(AppointmentModel.patient_id == patient_id)
    if provider_id is not None:
        query = query.where(AppointmentModel.provider_id == provider_id)

    query = query.order_by(AppointmentModel.starts_at.desc()).offset(skip).limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())


async def update_payment_status(
    db: AsyncSession, appointment_id: int, payment_status: str
) -> bool:
    """Set the payment status of an appointment. Returns False if it no longer exists."""
    try:
        result = await db.execute(
            update(AppointmentModel)
            .where(AppointmentModel.id == appointment_id)
            .values(payment_status=payment_status)
        )
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        raise
    updated = result.rowcount > 0
    if not updated:
        logger.warning(
            f"CRUD: Could not set payment_status={payment_status} on missing appointment {appointment_id}"
        )
    return updated


async def update_status(db: AsyncSession, appointment_id: int, status: str) -> bool:
    return await update_appointment_fields(db, appointment_id, {"status": status})


async def update_appointment_fields(
    db: AsyncSession, appointment_id: int, values: Dict[str, Any]
) -> bool:
    """Write the given columns. Returns False if the appointment no longer exists."""
    try:
        result = await db.execute(
            update(AppointmentModel)
            .where(AppointmentModel.id == appointment_id)
            .values(**values)
        )
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        raise
    logger.info(f"CRUD: Updated appointment_id={appointment_id} fields={sorted(values)}")
    return result.rowcount > 0


async def cancel_appointment(
    db: AsyncSession, appointment_id: int, payment_status: Optional[str] = None
) -> bool:
    """
    Mark an appointment cancelled, releasing its slot.

    Returns False when the appointment is missing or already cancelled, which
    makes repeated calls harmless.
    """
    values: Dict[str, Any] = {"status": CANCELLED}
    if payment_status is not None:
        values["payment_status"] = payment_status
    try:
        result = await db.execute(
            update(AppointmentModel)
            .where(
                AppointmentModel.id == appointment_id,
                AppointmentModel.status != CANCELLED,
            )
            .values(**values)
        )
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        raise
    cancelled = result.rowcount > 0
    logger.info(f"CRUD: cancel appointment_id={appointment_id} -> changed={cancelled}")
    return cancelled


async def delete_appointment(db: AsyncSession, appointment_id: int) -> bool:
    """
    Hard delete an appointment. Payment rows survive with their reference cleared.

    Returns False when the row was already gone, so the call is idempotent.
    """
    try:
        await db.execute(
            update(PaymentModel)
            .where(PaymentModel.appointment_id == appointment_id)
            .values(appointment_id=None)
        )
        result = await db.execute(
            delete(AppointmentModel).where(AppointmentModel.id == appointment_id)
        )
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        raise
    deleted = result.rowcount > 0
    logger.info(f"CRUD: hard delete appointment_id={appointment_id} -> removed={deleted}")
    return deleted


async def count_appointments_by_status(
    db: AsyncSession, provider_id: Optional[int] = None
) -> Dict[str, int]:
    query = select(AppointmentModel.status, func.count(AppointmentModel.id)).group_by(
        AppointmentModel.status
    )
    if provider_id is not None:
        query = query.where(AppointmentModel.provider_id == provider_id)
    result = await db.execute(query)
    return {status: count for status, count in result.all()}
