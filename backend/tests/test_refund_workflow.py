# tests/test_refund_workflow.py
import pytest

from hospital_booking.core.errors import NotFoundError, RefundStateError
from hospital_booking.services.refunds import RefundWorkflow
from tests._stubs import StaleAppointmentStore, booking_request, card


async def book_paid(make_orchestrator):
    request = booking_request(payment_method="card", card_details=card())
    return await make_orchestrator().book(request, patient_id=1)


async def test_paid_payment_is_refunded(make_orchestrator, store):
    outcome = await book_paid(make_orchestrator)

    payment = await RefundWorkflow(store).refund(outcome.payment.id, requested_by=99)

    assert payment.status == "refunded"
    refund = payment.gateway_response["refund"]
    assert refund["refund_reference"].startswith("RFD-")
    assert refund["requested_by"] == 99
    # the settlement response is kept alongside the refund
    assert payment.gateway_response["auth_code"].startswith("AUTH")

    appointment = await store.get_appointment(outcome.appointment.id)
    assert appointment.payment_status == "refunded"


async def test_second_refund_is_rejected(make_orchestrator, store):
    outcome = await book_paid(make_orchestrator)
    workflow = RefundWorkflow(store)
    await workflow.refund(outcome.payment.id)

    with pytest.raises(RefundStateError) as exc_info:
        await workflow.refund(outcome.payment.id)
    assert exc_info.value.fields["status"] == "refunded"


@pytest.mark.parametrize("method", ["cash", "govt_coverage"])
async def test_unpaid_payment_cannot_be_refunded(make_orchestrator, store, method):
    outcome = await make_orchestrator().book(booking_request(payment_method=method), patient_id=1)

    with pytest.raises(RefundStateError):
        await RefundWorkflow(store).refund(outcome.payment.id)

    payment = await store.get_payment(outcome.payment.id)
    assert payment.status != "refunded"


async def test_missing_payment(store):
    with pytest.raises(NotFoundError):
        await RefundWorkflow(store).refund(12345)


async def test_stale_appointment_is_logged_not_raised(make_orchestrator, db_session, caplog):
    outcome = await book_paid(make_orchestrator)
    payment_id, appointment_id = outcome.payment.id, outcome.appointment.id

    payment = await RefundWorkflow(StaleAppointmentStore(db_session)).refund(payment_id)

    assert payment.status == "refunded"
    warnings = [r.getMessage() for r in caplog.records if r.levelname == "WARNING"]
    assert any(f"payment {payment_id}" in m and f"appointment {appointment_id}" in m for m in warnings)
