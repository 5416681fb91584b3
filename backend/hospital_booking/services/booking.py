# hospital_booking/services/booking.py
"""
Booking saga: reserve a provider slot, then settle payment.

Steps run in order and each one is logged:

1. validate slot      -> ConflictError, nothing written
2. validate payment   -> ValidationError, nothing written
3. commit appointment (status=scheduled)
4. settle payment     (skipped for government coverage)
5. reconcile          -> Booked, or record a failed payment, compensate the
                         appointment and raise SettlementError (RolledBack)

Steps 1-3 run under the provider's lock. If compensation itself fails a
CompensationError is raised and logged on its own logger.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from hospital_booking.config.constants import (
    PaymentMethod,
    PaymentStatus,
    TransactionPrefix,
)
from hospital_booking.config.settings import Settings
from hospital_booking.core.errors import (
    CompensationError,
    ConflictError,
    SettlementError,
    ValidationError,
)
from hospital_booking.payments.charges import calculate_charges
from hospital_booking.payments.processors import (
    PaymentProcessor,
    SettlementResult,
    generate_transaction_id,
)
from hospital_booking.payments.registry import PaymentProcessorRegistry
from hospital_booking.scheduling.slots import Interval, as_utc
from hospital_booking.schemas.appointment import BookingRequest
from hospital_booking.schemas.payment import PaymentInput
from hospital_booking.services.availability import Clock, SlotAvailabilityService, utc_now
from hospital_booking.services.locks import ProviderLockRegistry
from hospital_booking.services.notifier import Notifier, notify_booked

logger = logging.getLogger(__name__)
compensation_logger = logging.getLogger("hospital_booking.saga.compensation")


class SagaState(str, Enum):
    BOOKED = "booked"
    REJECTED = "rejected"
    ROLLED_BACK = "rolled_back"


# Appointment payment status written at commit time, before settlement
INITIAL_PAYMENT_STATUS = {
    PaymentMethod.GOVERNMENT_COVERAGE: PaymentStatus.COVERED,
    PaymentMethod.INSURANCE: PaymentStatus.COVERED,
    PaymentMethod.CASH: PaymentStatus.PENDING,
    PaymentMethod.CARD: PaymentStatus.PENDING,
}


@dataclass
class BookingOutcome:
    appointment: object
    payment: object
    transaction: SettlementResult
    state: SagaState = SagaState.BOOKED


@dataclass(frozen=True)
class AppointmentKey:
    """Ids of the committed appointment, still readable after a session rollback."""

    id: int
    patient_id: int


class BookingOrchestrator:
    def __init__(
        self,
        store,
        processors: PaymentProcessorRegistry,
        availability: SlotAvailabilityService,
        locks: ProviderLockRegistry,
        settings: Settings,
        notifier: Optional[Notifier] = None,
        clock: Clock = utc_now,
    ):
        self.store = store
        self.processors = processors
        self.availability = availability
        self.locks = locks
        self.settings = settings
        self.notifier = notifier
        self.clock = clock

    async def book(self, request: BookingRequest, patient_id: int) -> BookingOutcome:
        """
        Run the booking saga for ``patient_id``.

        Raises:
            ValidationError: bad booking fields or payment input (Rejected).
            ConflictError: the slot is taken (Rejected).
            SettlementError: payment failed and the appointment was compensated (RolledBack).
            CompensationError: payment failed and the rollback did not complete.
        """
        now = self.clock()
        start = self._normalize_start(request.start_time)
        duration = request.duration_minutes
        self._validate_booking_fields(start, duration, now)

        processor = self.processors.get(request.payment_method)
        payment_input = request.payment_input()
        amount = calculate_charges(request.department, duration, self.settings.currency)["total"]

        logger.info(
            f"Saga start: patient={patient_id} provider={request.provider_id} start={start} "
            f"duration={duration} method={processor.method.value} amount={amount}"
        )

        async with self.locks.hold(request.provider_id):
            await self._validate_slot(request.provider_id, start, duration)
            self._validate_payment(processor, payment_input, now)
            appointment = await self._commit_appointment(request, patient_id, start, duration, processor, amount)
        key = AppointmentKey(appointment.id, appointment.patient_id)

        try:
            result = await self._settle_payment(processor, amount, payment_input)
        except SettlementError as exc:
            await self._roll_back(key, processor, payment_input, amount, exc)
            raise SettlementError(f"Payment processing failed: {exc.message}") from exc

        return await self._reconcile(appointment, key, processor, payment_input, amount, result)

    # ------------------------------------------------------------------ steps --

    def _normalize_start(self, start: datetime) -> datetime:
        # Naive instants are read as clinic-local wall time
        if start.tzinfo is None:
            start = start.replace(tzinfo=self.availability.engine.clinic_tz)
        return as_utc(start)

    def _validate_booking_fields(self, start: datetime, duration: int, now: datetime) -> None:
        if duration not in self.settings.allowed_durations:
            raise ValidationError(
                f"Duration must be one of {self.settings.allowed_durations} minutes",
                fields={"duration_minutes": "unsupported duration"},
            )
        if start <= as_utc(now):
            raise ValidationError(
                "Appointment time must be in the future",
                fields={"start_time": "must be in the future"},
            )
        if not self.availability.engine.within_working_hours(start, duration):
            raise ValidationError(
                "Appointments must be scheduled during working hours (Mon-Fri: 9AM-5PM, Sat: 9AM-1PM)",
                fields={"start_time": "outside working hours"},
            )

    async def _validate_slot(self, provider_id: int, start: datetime, duration: int) -> None:
        if not await self.availability.is_slot_free(provider_id, start, duration):
            logger.warning(f"Saga rejected: provider {provider_id} is not free at {start} for {duration} minutes")
            raise ConflictError(
                "The selected time slot is no longer available. Please choose another time.",
                fields={"start_time": "slot already booked"},
            )

    def _validate_payment(self, processor: PaymentProcessor, payment_input: PaymentInput, now: datetime) -> None:
        try:
            processor.validate(payment_input, now)
        except ValidationError as exc:
            logger.warning(f"Saga rejected: invalid {processor.method.value} payment input {exc.fields}")
            raise

    async def _commit_appointment(
        self,
        request: BookingRequest,
        patient_id: int,
        start: datetime,
        duration: int,
        processor: PaymentProcessor,
        amount: Decimal,
    ):
        slot = Interval.from_duration(start, duration)
        appointment = await self.store.add_appointment(
            patient_id=patient_id,
            provider_id=request.provider_id,
            department=request.department,
            starts_at=slot.start,
            ends_at=slot.end,
            duration_minutes=duration,
            reason=request.reason,
            notes=request.notes,
            payment_method=processor.method.value,
            payment_status=INITIAL_PAYMENT_STATUS[processor.method].value,
            amount=amount,
        )
        logger.info(f"Saga step commit: appointment {appointment.id} scheduled, awaiting settlement")
        return appointment

    async def _settle_payment(
        self, processor: PaymentProcessor, amount: Decimal, payment_input: PaymentInput
    ) -> SettlementResult:
        now = self.clock()
        immediate = processor.immediate_result(amount, payment_input, now)
        if immediate is not None:
            logger.info(f"Saga step settle skipped for {processor.method.value}: {immediate.transaction_id}")
            return immediate

        try:
            result = await asyncio.wait_for(
                processor.settle(amount, payment_input, now),
                timeout=self.settings.settlement_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.error(
                f"Saga step settle: {processor.method.value} backend timed out after "
                f"{self.settings.settlement_timeout_seconds}s"
            )
            raise SettlementError("Payment settlement timed out")
        except SettlementError as exc:
            logger.error(f"Saga step settle: {processor.method.value} settlement failed: {exc.message}")
            raise
        except Exception as exc:
            logger.error(f"Saga step settle: {processor.method.value} backend error", exc_info=True)
            raise SettlementError(f"Payment backend error: {exc}") from exc

        logger.info(f"Saga step settle: {result.transaction_id} -> {result.status.value}")
        return result

    async def _reconcile(
        self,
        appointment,
        key: AppointmentKey,
        processor: PaymentProcessor,
        payment_input: PaymentInput,
        amount: Decimal,
        result: SettlementResult,
    ) -> BookingOutcome:
        details = {processor.detail_column: result.provider_detail} if processor.detail_column else {}
        try:
            payment = await self.store.add_payment(
                appointment_id=key.id,
                patient_id=key.patient_id,
                amount=amount,
                currency=self.settings.currency,
                method=processor.method.value,
                status=result.status.value,
                transaction_id=result.transaction_id,
                gateway_response=result.gateway_response,
                **details,
            )
        except SQLAlchemyError as exc:
            logger.error(f"Saga step reconcile: settled payment {result.transaction_id} could not be stored", exc_info=True)
            # The backend already settled; only the local record is missing
            compensation_logger.critical(
                f"MANUAL RECONCILIATION REQUIRED: {processor.method.value} settlement {result.transaction_id} "
                f"({result.status.value}, {amount} {self.settings.currency}) for appointment {key.id} "
                f"was not recorded; the booking is being rolled back"
            )
            cause = SettlementError(f"Payment {result.transaction_id} could not be recorded")
            await self._roll_back(key, processor, payment_input, amount, cause)
            raise SettlementError(f"Payment processing failed: {cause.message}") from exc

        payment_id = payment.id

        try:
            await self.store.set_appointment_payment_status(appointment, result.status.value)
        except SQLAlchemyError as exc:
            compensation_logger.critical(
                f"MANUAL RECONCILIATION REQUIRED: payment {payment_id} ({result.transaction_id}) is "
                f"{result.status.value} but appointment {key.id} payment status could not be updated"
            )
            raise CompensationError(
                "Payment recorded but the appointment could not be updated; manual intervention required",
                appointment_id=key.id,
                payment_id=payment_id,
                cause=exc,
            ) from exc

        logger.info(
            f"Saga booked: appointment {key.id} payment {payment_id} "
            f"{result.transaction_id} ({result.status.value})"
        )
        self._notify(appointment, payment)
        return BookingOutcome(appointment=appointment, payment=payment, transaction=result)

    # ----------------------------------------------------------- compensation --

    async def _roll_back(
        self,
        key: AppointmentKey,
        processor: PaymentProcessor,
        payment_input: PaymentInput,
        amount: Decimal,
        cause: SettlementError,
    ) -> None:
        """Record the failed attempt, then undo the committed appointment."""
        failed_payment_id = None
        audit_error = None
        details = {}
        if processor.detail_column:
            details[processor.detail_column] = processor.failure_detail(payment_input)
        try:
            failed_payment = await self.store.add_payment(
                appointment_id=key.id,
                patient_id=key.patient_id,
                amount=amount,
                currency=self.settings.currency,
                method=processor.method.value,
                status=PaymentStatus.FAILED.value,
                transaction_id=generate_transaction_id(TransactionPrefix.FAILED, self.clock()),
                gateway_response={"error": cause.message, "appointment_id": key.id},
                **details,
            )
            failed_payment_id = failed_payment.id
        except SQLAlchemyError as exc:
            audit_error = exc
            compensation_logger.error(
                f"Failed payment for appointment {key.id} could not be recorded: {exc}"
            )

        await self._compensate(key, failed_payment_id, cause)

        if audit_error is not None:
            compensation_logger.critical(
                f"MANUAL RECONCILIATION REQUIRED: appointment {key.id} was rolled back "
                f"but no payment row records the failed attempt ({cause.message})"
            )
            raise CompensationError(
                "Booking rolled back but the failed payment could not be recorded; manual intervention required",
                appointment_id=key.id,
                cause=audit_error,
            ) from audit_error

    async def _compensate(self, key: AppointmentKey, payment_id: Optional[int], cause: SettlementError) -> None:
        mode = self.settings.compensation_mode
        attempts = max(1, self.settings.compensation_max_attempts)
        last_error: Optional[BaseException] = None

        for attempt in range(1, attempts + 1):
            try:
                if mode == "delete":
                    changed = await self.store.delete_appointment(key.id)
                else:
                    changed = await self.store.cancel_appointment(
                        key.id, payment_status=PaymentStatus.FAILED.value
                    )
                logger.info(
                    f"Saga rolled back: appointment {key.id} {mode}d after '{cause.message}' "
                    f"(attempt {attempt}, changed={changed})"
                )
                return
            except Exception as exc:
                last_error = exc
                compensation_logger.error(
                    f"Compensation attempt {attempt}/{attempts} ({mode}) for appointment "
                    f"{key.id} failed: {exc!r}"
                )

        compensation_logger.critical(
            f"MANUAL RECONCILIATION REQUIRED: appointment {key.id} is still scheduled after a "
            f"failed settlement ('{cause.message}'); failed payment id={payment_id}"
        )
        raise CompensationError(
            "Payment failed and the booking could not be rolled back; manual intervention required",
            appointment_id=key.id,
            payment_id=payment_id,
            cause=last_error,
        ) from last_error

    def _notify(self, appointment, payment) -> None:
        if self.notifier is None:
            return
        try:
            notify_booked(self.notifier, appointment, payment)
        except Exception:
            logger.warning(f"Could not schedule notification for appointment {appointment.id}", exc_info=True)
