# hospital_booking/schemas/payment.py
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from hospital_booking.config.constants import PaymentMethod, PaymentStatus
from hospital_booking.schemas.common import ApiModel


# Method-specific inputs are deliberately loose: their rules are enforced by the
# payment processors so a bad card yields a booking ValidationError, not a 422.
class CardDetails(ApiModel):
    card_number: Optional[str] = None
    expiry_date: Optional[str] = None  # MM/YY
    cvv: Optional[str] = None
    card_holder: Optional[str] = None


class InsuranceDetails(ApiModel):
    provider: Optional[str] = None
    policy_number: Optional[str] = None
    coverage_amount: Optional[Decimal] = None


class PaymentInput(ApiModel):
    method: PaymentMethod
    card_details: Optional[CardDetails] = None
    insurance_details: Optional[InsuranceDetails] = None


class PaymentOut(ApiModel):
    id: int
    appointment_id: Optional[int] = None
    patient_id: int
    amount: Decimal
    currency: str
    method: PaymentMethod
    status: PaymentStatus
    transaction_id: str
    card_details: Optional[Dict[str, Any]] = None
    insurance_details: Optional[Dict[str, Any]] = None
    govt_coverage_details: Optional[Dict[str, Any]] = None
    gateway_response: Dict[str, Any] = {}
    created_at: Optional[datetime] = None


class TransactionOut(ApiModel):
    status: PaymentStatus
    transaction_id: str
    gateway_response: Dict[str, Any] = {}


class RefundResponse(ApiModel):
    payment: PaymentOut


class ChargesRequest(ApiModel):
    department: str
    duration_minutes: int = 30


class ChargesOut(ApiModel):
    base_amount: Decimal
    duration_minutes: int
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    currency: str


class PaymentValidationRequest(ApiModel):
    payment_method: PaymentMethod
    amount: Optional[Decimal] = None
    card_details: Optional[CardDetails] = None
    insurance_details: Optional[InsuranceDetails] = None

    def payment_input(self) -> PaymentInput:
        return PaymentInput(
            method=self.payment_method,
            card_details=self.card_details,
            insurance_details=self.insurance_details,
        )


class PaymentValidationOut(ApiModel):
    valid: bool
    message: str
