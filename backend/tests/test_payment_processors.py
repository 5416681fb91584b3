# tests/test_payment_processors.py
import re
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from hospital_booking.config.constants import PaymentMethod, PaymentStatus, TransactionPrefix
from hospital_booking.core.errors import SettlementError, ValidationError
from hospital_booking.payments.charges import calculate_charges
from hospital_booking.payments.processors import (
    CardProcessor,
    CashProcessor,
    GovernmentCoverageProcessor,
    InsuranceProcessor,
    always_decline,
    detect_card_brand,
    generate_transaction_id,
    never_decline,
    probabilistic_decline,
)
from hospital_booking.payments.registry import PaymentProcessorRegistry, build_processor_registry
from hospital_booking.schemas.payment import PaymentInput
from tests._stubs import NOW, card

AMOUNT = Decimal("110.00")


def card_input(**overrides):
    return PaymentInput(method=PaymentMethod.CARD, card_details=card(**overrides))


def test_transaction_id_format():
    txn = generate_transaction_id(TransactionPrefix.CARD, NOW)
    assert re.match(r"^TXN-\d{13}-[0-9A-F]{8}$", txn)
    assert txn.split("-")[1] == str(int(NOW.timestamp() * 1000))


def test_transaction_ids_are_unique():
    ids = {generate_transaction_id(TransactionPrefix.CASH, NOW) for _ in range(200)}
    assert len(ids) == 200


@pytest.mark.parametrize(
    "number,brand",
    [
        ("4111111111111111", "Visa"),
        ("5500 0000 0000 0004", "MasterCard"),
        ("3400-0000-0000-009", "Amex"),
        ("6011000000000004", "Discover"),
        ("6500000000000002", "Discover"),
        ("9999999999999999", "Unknown"),
    ],
)
def test_detect_card_brand(number, brand):
    assert detect_card_brand(number) == brand


def test_probabilistic_decline_uses_rate():
    assert probabilistic_decline(0.1, rng=lambda: 0.05)() is True
    assert probabilistic_decline(0.1, rng=lambda: 0.5)() is False


def test_valid_card_passes_validation():
    CardProcessor().validate(card_input(), NOW)


def test_card_validation_collects_every_bad_field():
    bad = card_input(card_number="4111", expiry_date="13/35", cvv="12", card_holder="J")
    with pytest.raises(ValidationError) as exc_info:
        CardProcessor().validate(bad, NOW)
    assert set(exc_info.value.fields) == {
        "card_details.card_number",
        "card_details.expiry_date",
        "card_details.cvv",
        "card_details.card_holder",
    }


def test_missing_card_details_is_rejected():
    with pytest.raises(ValidationError):
        CardProcessor().validate(PaymentInput(method=PaymentMethod.CARD), NOW)


def test_card_is_valid_through_end_of_expiry_month():
    processor = CardProcessor()
    last_day = datetime(2030, 1, 31, 23, 0, tzinfo=timezone.utc)
    processor.validate(card_input(expiry_date="01/30"), last_day)
    with pytest.raises(ValidationError) as exc_info:
        processor.validate(card_input(expiry_date="01/30"), datetime(2030, 2, 1, 0, 1, tzinfo=timezone.utc))
    assert exc_info.value.fields["card_details.expiry_date"] == "Card has expired"


async def test_card_settle_paid_with_masked_detail():
    result = await CardProcessor(decline_decider=never_decline).settle(AMOUNT, card_input(), NOW)
    assert result.status == PaymentStatus.PAID
    assert result.transaction_id.startswith("TXN-")
    assert result.provider_detail == {
        "brand": "Visa",
        "last4": "1111",
        "expiry_month": 12,
        "expiry_year": 2035,
    }
    assert result.gateway_response["auth_code"].startswith("AUTH")


async def test_card_settle_declined():
    with pytest.raises(SettlementError, match="declined"):
        await CardProcessor(decline_decider=always_decline).settle(AMOUNT, card_input(), NOW)


async def test_card_settle_rechecks_expiry():
    later = datetime(2036, 1, 1, tzinfo=timezone.utc)
    with pytest.raises(SettlementError, match="expired"):
        await CardProcessor().settle(AMOUNT, card_input(), later)


def test_government_coverage_settles_without_backend():
    result = GovernmentCoverageProcessor().immediate_result(AMOUNT, PaymentInput(method="govt_coverage"), NOW)
    assert result.status == PaymentStatus.COVERED
    assert result.transaction_id.startswith("GOV-")
    assert result.provider_detail["scheme"] == "National Healthcare"
    assert result.provider_detail["reference_number"] == result.transaction_id


def test_insurance_requires_provider_and_policy():
    with pytest.raises(ValidationError) as exc_info:
        InsuranceProcessor().validate(PaymentInput(method="insurance", insurance_details={"provider": " "}), NOW)
    assert set(exc_info.value.fields) == {
        "insurance_details.provider",
        "insurance_details.policy_number",
    }


async def test_insurance_settles_as_covered():
    payment = PaymentInput(
        method="insurance",
        insurance_details={"provider": "Acme Health", "policyNumber": "P-1", "coverageAmount": "500"},
    )
    result = await InsuranceProcessor().settle(AMOUNT, payment, NOW)
    assert result.status == PaymentStatus.COVERED
    assert result.transaction_id.startswith("INS-")
    assert result.provider_detail["policy_number"] == "P-1"


async def test_insurance_settle_without_provider_fails():
    with pytest.raises(SettlementError, match="Insurance provider details required"):
        await InsuranceProcessor().settle(AMOUNT, PaymentInput(method="insurance"), NOW)


async def test_cash_stays_pending():
    result = await CashProcessor().settle(AMOUNT, PaymentInput(method="cash"), NOW)
    assert result.status == PaymentStatus.PENDING
    assert result.transaction_id.startswith("CASH-")


def test_registry_rejects_unknown_method(test_settings):
    registry = build_processor_registry(test_settings, never_decline)
    assert isinstance(registry.get("card"), CardProcessor)
    with pytest.raises(ValidationError):
        registry.get("bitcoin")
    with pytest.raises(ValidationError):
        PaymentProcessorRegistry({}).get(PaymentMethod.CASH)


def test_charges_per_department_and_duration():
    charges = calculate_charges("Cardiology", 30)
    assert charges["subtotal"] == Decimal("100.00")
    assert charges["tax"] == Decimal("10.00")
    assert charges["total"] == Decimal("110.00")

    longer = calculate_charges("Pediatrics", 45)
    assert longer["subtotal"] == Decimal("120.00")
    assert longer["total"] == Decimal("132.00")

    assert calculate_charges("Unlisted", 30)["total"] == Decimal("55.00")


def test_non_ascii_digits_are_not_a_card_number():
    full_width = "４１１１１１１１１１１１１１１１"
    with pytest.raises(ValidationError) as exc_info:
        CardProcessor().validate(card_input(card_number=full_width, cvv="１２３"), NOW)
    assert set(exc_info.value.fields) == {"card_details.card_number", "card_details.cvv"}


def test_registry_preflight_validation(test_settings):
    registry = build_processor_registry(test_settings, never_decline)
    assert isinstance(registry.validate(card_input(), NOW), CardProcessor)
    with pytest.raises(ValidationError) as exc_info:
        registry.validate(card_input(cvv="12"), NOW)
    assert "card_details.cvv" in exc_info.value.fields
