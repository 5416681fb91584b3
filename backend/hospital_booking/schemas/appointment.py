# hospital_booking/schemas/appointment.py
from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional

from pydantic import Field, field_validator

from hospital_booking.config.constants import AppointmentStatus, PaymentMethod, PaymentStatus
from hospital_booking.scheduling.slots import as_utc
from hospital_booking.schemas.common import ApiModel
from hospital_booking.schemas.payment import (
    CardDetails,
    InsuranceDetails,
    PaymentInput,
    PaymentOut,
    TransactionOut,
)


class BookingRequest(ApiModel):
    patient_id: Optional[int] = None  # defaults to the authenticated patient
    provider_id: int
    department: str = Field(..., min_length=1)
    start_time: datetime
    duration_minutes: int = 30
    reason: str = Field(..., min_length=1)
    notes: Optional[str] = None
    payment_method: PaymentMethod
    card_details: Optional[CardDetails] = None
    insurance_details: Optional[InsuranceDetails] = None

    def payment_input(self) -> PaymentInput:
        return PaymentInput(
            method=self.payment_method,
            card_details=self.card_details,
            insurance_details=self.insurance_details,
        )


class AppointmentOut(ApiModel):
    id: int
    patient_id: int
    provider_id: int
    department: str
    starts_at: datetime
    ends_at: datetime
    duration_minutes: int
    reason: str
    notes: Optional[str] = None
    status: AppointmentStatus
    payment_status: PaymentStatus
    payment_method: PaymentMethod
    amount: Decimal
    created_at: Optional[datetime] = None

    @field_validator("starts_at", "ends_at", "created_at")
    @classmethod
    def _utc(cls, value):
        # SQLite hands back naive datetimes; everything is stored in UTC
        return as_utc(value) if value is not None else value


class BookingResponse(ApiModel):
    appointment: AppointmentOut
    payment: PaymentOut
    transaction: TransactionOut


class StatusUpdate(ApiModel):
    status: AppointmentStatus


class AppointmentStats(ApiModel):
    provider_id: Optional[int] = None
    counts: Dict[str, int]


class AppointmentUpdate(ApiModel):
    """Partial edit. Patients may change reason/notes, providers and staff notes/status."""

    reason: Optional[str] = Field(None, min_length=1)
    notes: Optional[str] = None
    status: Optional[AppointmentStatus] = None
