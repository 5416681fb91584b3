from datetime import time
from decimal import Decimal
from enum import Enum


class AppointmentStatus(str, Enum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    COVERED = "covered"


class PaymentMethod(str, Enum):
    GOVERNMENT_COVERAGE = "govt_coverage"
    INSURANCE = "insurance"
    CASH = "cash"
    CARD = "card"


class Role(str, Enum):
    PATIENT = "patient"
    DOCTOR = "doctor"
    STAFF = "staff"
    ADMIN = "admin"


# Reference prefixes for generated transaction ids
class TransactionPrefix(str, Enum):
    GOVERNMENT = "GOV"
    INSURANCE = "INS"
    CASH = "CASH"
    CARD = "TXN"
    FAILED = "FAIL"


# weekday() -> (opening, closing); Sunday is closed
WORKING_HOURS = {
    0: (time(9, 0), time(17, 0)),
    1: (time(9, 0), time(17, 0)),
    2: (time(9, 0), time(17, 0)),
    3: (time(9, 0), time(17, 0)),
    4: (time(9, 0), time(17, 0)),
    5: (time(9, 0), time(13, 0)),
}

DEPARTMENT_BASE_RATES = {
    "Cardiology": Decimal("100"),
    "Neurology": Decimal("120"),
    "Pediatrics": Decimal("80"),
    "Dermatology": Decimal("90"),
    "Orthopedics": Decimal("110"),
    "General": Decimal("50"),
}
DEFAULT_BASE_RATE = Decimal("50")
BASE_RATE_MINUTES = 30
TAX_RATE = Decimal("0.10")

GOVERNMENT_SCHEME = "National Healthcare"
