# hospital_booking/services/refunds.py
import asyncio
import logging
import uuid
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from hospital_booking.config.constants import PaymentStatus
from hospital_booking.core.errors import NotFoundError, RefundStateError

logger = logging.getLogger(__name__)


class RefundWorkflow:
    """paid -> refunded for a payment, mirrored onto its appointment."""

    def __init__(self, store, delay_seconds: float = 0.0):
        self.store = store
        self.delay_seconds = delay_seconds

    async def refund(self, payment_id: int, requested_by: Optional[int] = None):
        payment = await self.store.get_payment(payment_id)
        if payment is None:
            raise NotFoundError("Payment not found")
        if payment.status != PaymentStatus.PAID.value:
            logger.warning(f"Refund rejected: payment {payment_id} is '{payment.status}', not 'paid'")
            raise RefundStateError(
                f"Only paid payments can be refunded (current status: {payment.status})",
                fields={"status": payment.status},
            )

        # Simulated gateway round-trip
        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)

        gateway_response = dict(payment.gateway_response or {})
        gateway_response["refund"] = {
            "message": "Refund processed",
            "refund_reference": f"RFD-{uuid.uuid4().hex[:10].upper()}",
            "requested_by": requested_by,
        }
        if not await self.store.mark_payment_refunded(payment, gateway_response):
            # Another refund got there between the read and the update
            raise RefundStateError("Only paid payments can be refunded", fields={"status": "changed"})

        if payment.appointment_id is not None:
            await self._mirror_onto_appointment(payment)

        logger.info(f"Payment {payment_id} ({payment.transaction_id}) refunded")
        return payment

    async def _mirror_onto_appointment(self, payment) -> None:
        # The refund is already committed; a stale appointment only needs reconciling
        payment_id, transaction_id, appointment_id = payment.id, payment.transaction_id, payment.appointment_id
        try:
            appointment = await self.store.get_appointment(appointment_id)
            if appointment is not None:
                await self.store.set_appointment_payment_status(appointment, PaymentStatus.REFUNDED.value)
        except SQLAlchemyError:
            logger.warning(
                f"RECONCILE: payment {payment_id} ({transaction_id}) is refunded but appointment "
                f"{appointment_id} payment status could not be updated",
                exc_info=True,
            )
            # A failed write rolls the session back and expires the loaded payment
            await self.store.refresh(payment)
