import logging
from typing import Any, Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from hospital_booking.config.constants import PaymentStatus
from hospital_booking.db.models.payment import PaymentModel

logger = logging.getLogger(__name__)


async def create_payment(
    db: AsyncSession,
    appointment_id: Optional[int],
    patient_id: int,
    amount,
    currency: str,
    method: str,
    status: str,
    transaction_id: str,
    gateway_response: Optional[Dict[str, Any]] = None,
    card_details: Optional[Dict[str, Any]] = None,
    insurance_details: Optional[Dict[str, Any]] = None,
    govt_coverage_details: Optional[Dict[str, Any]] = None,
) -> PaymentModel:
    """
    Persist a payment row.

    Raises:
        IntegrityError: the transaction id was already used or the appointment
        already has a payment. The session is rolled back first.
    """
    payment = PaymentModel(
        appointment_id=appointment_id,
        patient_id=patient_id,
        amount=amount,
        currency=currency,
        method=method,
        status=status,
        transaction_id=transaction_id,
        gateway_response=gateway_response or {},
        card_details=card_details,
        insurance_details=insurance_details,
        govt_coverage_details=govt_coverage_details,
    )
    db.add(payment)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.error(
            f"CRUD: Integrity error storing payment {transaction_id} for appointment {appointment_id}",
            exc_info=True,
        )
        raise
    except SQLAlchemyError:
        await db.rollback()
        raise
    await db.refresh(payment)
    logger.info(
        f"CRUD: Stored payment_id={payment.id} status='{payment.status}' txn={payment.transaction_id}"
    )
    return payment


async def get_payment(db: AsyncSession, payment_id: int) -> Optional[PaymentModel]:
    result = await db.execute(select(PaymentModel).where(PaymentModel.id == payment_id))
    return result.scalars().first()


async def get_payment_by_appointment(
    db: AsyncSession, appointment_id: int
) -> Optional[PaymentModel]:
    result = await db.execute(
        select(PaymentModel).where(PaymentModel.appointment_id == appointment_id)
    )
    return result.scalars().first()


async def mark_payment_refunded(
    db: AsyncSession, payment_id: int, gateway_response: Dict[str, Any]
) -> bool:
    """
    Move a payment from 'paid' to 'refunded'.

    The status guard lives in the UPDATE itself so two racing refunds cannot
    both succeed. Returns False when the payment was not 'paid'.
    """
    try:
        result = await db.execute(
            update(PaymentModel)
            .where(
                PaymentModel.id == payment_id,
                PaymentModel.status == PaymentStatus.PAID.value,
            )
            .values(status=PaymentStatus.REFUNDED.value, gateway_response=gateway_response)
        )
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        raise
    return result.rowcount > 0
