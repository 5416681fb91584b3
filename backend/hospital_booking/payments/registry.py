# hospital_booking/payments/registry.py
from datetime import datetime
from typing import Dict, Optional

from hospital_booking.config.constants import PaymentMethod
from hospital_booking.config.settings import Settings
from hospital_booking.core.errors import ValidationError
from hospital_booking.payments.processors import (
    CardProcessor,
    CashProcessor,
    DeclineDecider,
    GovernmentCoverageProcessor,
    InsuranceProcessor,
    PaymentProcessor,
    probabilistic_decline,
)
from hospital_booking.schemas.payment import PaymentInput


class PaymentProcessorRegistry:
    def __init__(self, processors: Dict[PaymentMethod, PaymentProcessor]):
        self._processors = dict(processors)

    def get(self, method) -> PaymentProcessor:
        try:
            return self._processors[PaymentMethod(method)]
        except (KeyError, ValueError):
            raise ValidationError(
                "Invalid payment method", fields={"payment_method": f"unsupported method '{method}'"}
            )

    def validate(self, payment: PaymentInput, now: datetime) -> PaymentProcessor:
        """Pre-flight check of payment input; nothing is settled or stored."""
        processor = self.get(payment.method)
        processor.validate(payment, now)
        return processor

    def __contains__(self, method) -> bool:
        return method in self._processors


def build_processor_registry(
    settings: Settings, decline_decider: Optional[DeclineDecider] = None
) -> PaymentProcessorRegistry:
    """Wire the default processors. The card gateway declines randomly unless a decider is given."""
    latency = settings.simulated_gateway_latency_seconds
    decider = decline_decider or probabilistic_decline(settings.card_decline_rate)
    return PaymentProcessorRegistry(
        {
            PaymentMethod.GOVERNMENT_COVERAGE: GovernmentCoverageProcessor(),
            PaymentMethod.INSURANCE: InsuranceProcessor(latency_seconds=latency),
            PaymentMethod.CASH: CashProcessor(),
            PaymentMethod.CARD: CardProcessor(decline_decider=decider, latency_seconds=latency),
        }
    )
