# hospital_booking/payments/processors.py
import asyncio
import calendar
import logging
import random
import re
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, Optional

from hospital_booking.config.constants import (
    GOVERNMENT_SCHEME,
    PaymentMethod,
    PaymentStatus,
    TransactionPrefix,
)
from hospital_booking.core.errors import SettlementError, ValidationError
from hospital_booking.schemas.payment import CardDetails, InsuranceDetails, PaymentInput

logger = logging.getLogger(__name__)

DeclineDecider = Callable[[], bool]

EXPIRY_PATTERN = re.compile(r"^([0-9]{2})/([0-9]{2})$")
CVV_PATTERN = re.compile(r"^[0-9]{3,4}$")
CARD_NUMBER_PATTERN = re.compile(r"[0-9]{16}")
CARD_SEPARATORS = re.compile(r"[\s-]")


def generate_transaction_id(prefix: TransactionPrefix, now: Optional[datetime] = None) -> str:
    """Build a ``<PREFIX>-<epoch millis>-<random>`` reference."""
    now = now or datetime.now(timezone.utc)
    millis = int(now.timestamp() * 1000)
    return f"{prefix.value}-{millis}-{uuid.uuid4().hex[:8].upper()}"


def probabilistic_decline(rate: float, rng: Callable[[], float] = random.random) -> DeclineDecider:
    """Decline roughly ``rate`` of settlements, like an issuer's risk engine would."""
    def _decide() -> bool:
        return rng() < rate
    return _decide


def never_decline() -> bool:
    return False


def always_decline() -> bool:
    return True


def detect_card_brand(card_number: str) -> str:
    number = CARD_SEPARATORS.sub("", card_number or "")
    if number.startswith("4"):
        return "Visa"
    if re.match(r"^5[1-5]", number):
        return "MasterCard"
    if re.match(r"^3[47]", number):
        return "Amex"
    if re.match(r"^6(?:011|5)", number):
        return "Discover"
    return "Unknown"


@dataclass
class SettlementResult:
    status: PaymentStatus
    transaction_id: str
    provider_detail: Dict[str, Any] = field(default_factory=dict)
    gateway_response: Dict[str, Any] = field(default_factory=dict)


class PaymentProcessor(ABC):
    """One payment backend. ``validate`` gates the saga, ``settle`` finalises it."""

    method: PaymentMethod
    prefix: TransactionPrefix
    # Payment column receiving ``SettlementResult.provider_detail``
    detail_column: Optional[str] = None

    def __init__(self, latency_seconds: float = 0.0):
        self.latency_seconds = latency_seconds

    def validate(self, payment: PaymentInput, now: datetime) -> None:
        """Raise ValidationError when the method-specific input is unusable."""

    def immediate_result(self, amount: Decimal, payment: PaymentInput, now: datetime) -> Optional[SettlementResult]:
        """Outcome known without contacting a backend, or None when settlement is needed."""
        return None

    @abstractmethod
    async def settle(self, amount: Decimal, payment: PaymentInput, now: datetime) -> SettlementResult:
        ...

    def failure_detail(self, payment: PaymentInput) -> Optional[Dict[str, Any]]:
        """Method detail worth keeping on a failed payment row."""
        return None

    async def _simulate_gateway(self):
        if self.latency_seconds > 0:
            await asyncio.sleep(self.latency_seconds)


class GovernmentCoverageProcessor(PaymentProcessor):
    method = PaymentMethod.GOVERNMENT_COVERAGE
    prefix = TransactionPrefix.GOVERNMENT
    detail_column = "govt_coverage_details"

    def immediate_result(self, amount, payment, now):
        transaction_id = generate_transaction_id(self.prefix, now)
        return SettlementResult(
            status=PaymentStatus.COVERED,
            transaction_id=transaction_id,
            provider_detail={"scheme": GOVERNMENT_SCHEME, "reference_number": transaction_id},
            gateway_response={"message": "Government coverage applied successfully"},
        )

    async def settle(self, amount, payment, now):
        return self.immediate_result(amount, payment, now)


class InsuranceProcessor(PaymentProcessor):
    method = PaymentMethod.INSURANCE
    prefix = TransactionPrefix.INSURANCE
    detail_column = "insurance_details"

    def validate(self, payment, now):
        details = payment.insurance_details or InsuranceDetails()
        errors = {}
        if not (details.provider or "").strip():
            errors["insurance_details.provider"] = "Insurance provider is required"
        if not (details.policy_number or "").strip():
            errors["insurance_details.policy_number"] = "Policy number is required"
        if errors:
            raise ValidationError("Invalid insurance details", fields=errors)

    async def settle(self, amount, payment, now):
        await self._simulate_gateway()
        details = payment.insurance_details
        # validate() already ran, but the claim cannot be filed without a provider
        if details is None or not (details.provider or "").strip():
            raise SettlementError("Insurance provider details required")

        return SettlementResult(
            status=PaymentStatus.COVERED,
            transaction_id=generate_transaction_id(self.prefix, now),
            provider_detail=self.failure_detail(payment),
            gateway_response={
                "message": "Insurance claim submitted",
                "provider": details.provider.strip(),
            },
        )

    def failure_detail(self, payment):
        details = payment.insurance_details
        if details is None:
            return None
        return {
            "provider": (details.provider or "").strip() or None,
            "policy_number": (details.policy_number or "").strip() or None,
            "coverage_amount": str(details.coverage_amount) if details.coverage_amount is not None else None,
        }


class CashProcessor(PaymentProcessor):
    method = PaymentMethod.CASH
    prefix = TransactionPrefix.CASH

    async def settle(self, amount, payment, now):
        # Money is collected at the hospital desk later
        return SettlementResult(
            status=PaymentStatus.PENDING,
            transaction_id=generate_transaction_id(self.prefix, now),
            gateway_response={"message": "Payment to be collected at hospital"},
        )


class CardProcessor(PaymentProcessor):
    method = PaymentMethod.CARD
    prefix = TransactionPrefix.CARD
    detail_column = "card_details"

    def __init__(self, decline_decider: DeclineDecider = never_decline, latency_seconds: float = 0.0):
        super().__init__(latency_seconds=latency_seconds)
        self.decline_decider = decline_decider

    @staticmethod
    def _clean_number(card: CardDetails) -> str:
        return CARD_SEPARATORS.sub("", card.card_number or "")

    @staticmethod
    def _expiry(card: CardDetails):
        match = EXPIRY_PATTERN.match((card.expiry_date or "").strip())
        if not match:
            return None
        month, year = int(match.group(1)), 2000 + int(match.group(2))
        if not 1 <= month <= 12:
            return None
        return month, year

    @staticmethod
    def _is_expired(month: int, year: int, now: datetime) -> bool:
        # Cards stay valid through the last day of the printed month
        last_day = calendar.monthrange(year, month)[1]
        expires_at = datetime(year, month, last_day, 23, 59, 59, tzinfo=timezone.utc)
        return expires_at < now

    def validate(self, payment, now):
        card = payment.card_details
        if card is None:
            raise ValidationError("Card details are required", fields={"card_details": "required"})

        errors = {}
        number = self._clean_number(card)
        if not CARD_NUMBER_PATTERN.fullmatch(number):
            errors["card_details.card_number"] = "Invalid card number"

        expiry = self._expiry(card)
        if expiry is None:
            errors["card_details.expiry_date"] = "Invalid expiry date format (MM/YY required)"
        elif self._is_expired(*expiry, now):
            errors["card_details.expiry_date"] = "Card has expired"

        if not CVV_PATTERN.match(card.cvv or ""):
            errors["card_details.cvv"] = "Invalid CVV"

        if len((card.card_holder or "").strip()) < 2:
            errors["card_details.card_holder"] = "Invalid card holder name"

        if errors:
            raise ValidationError("Invalid card details", fields=errors)

    async def settle(self, amount, payment, now):
        card = payment.card_details
        expiry = self._expiry(card) if card else None
        if expiry is None or self._is_expired(*expiry, now):
            raise SettlementError("Card has expired")

        await self._simulate_gateway()

        if self.decline_decider():
            logger.info(f"Card settlement of {amount} declined by issuer")
            raise SettlementError("Payment declined by issuer")

        return SettlementResult(
            status=PaymentStatus.PAID,
            transaction_id=generate_transaction_id(self.prefix, now),
            provider_detail=self.failure_detail(payment),
            gateway_response={
                "message": "Payment processed successfully",
                "auth_code": f"AUTH{uuid.uuid4().hex[:8].upper()}",
            },
        )

    def failure_detail(self, payment):
        card = payment.card_details
        if card is None:
            return None
        number = self._clean_number(card)
        expiry = self._expiry(card)
        return {
            "brand": detect_card_brand(number),
            "last4": number[-4:] if number else None,
            "expiry_month": expiry[0] if expiry else None,
            "expiry_year": expiry[1] if expiry else None,
        }
