# hospital_booking/payments/charges.py
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict

from hospital_booking.config.constants import (
    BASE_RATE_MINUTES,
    DEFAULT_BASE_RATE,
    DEPARTMENT_BASE_RATES,
    TAX_RATE,
)

CENTS = Decimal("0.01")


def calculate_charges(department: str, duration_minutes: int = 30, currency: str = "USD") -> Dict[str, Any]:
    """Consultation price: department base rate per 30 minutes plus tax."""
    base_amount = DEPARTMENT_BASE_RATES.get(department, DEFAULT_BASE_RATE)
    subtotal = (base_amount * Decimal(duration_minutes) / Decimal(BASE_RATE_MINUTES)).quantize(
        CENTS, rounding=ROUND_HALF_UP
    )
    tax = (subtotal * TAX_RATE).quantize(CENTS, rounding=ROUND_HALF_UP)
    return {
        "base_amount": base_amount,
        "duration_minutes": duration_minutes,
        "subtotal": subtotal,
        "tax": tax,
        "total": subtotal + tax,
        "currency": currency,
    }
