# tests/test_api.py
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from hospital_booking.core.auth import create_token_for_caller
from hospital_booking.main import create_app
from hospital_booking.payments.processors import always_decline, never_decline
from tests._stubs import fixed_clock

CARD = {
    "cardNumber": "4111111111111111",
    "expiryDate": "12/35",
    "cvv": "123",
    "cardHolder": "Jane Doe",
}


def auth(user_id, role):
    return {"Authorization": f"Bearer {create_token_for_caller(user_id, role)}"}


PATIENT = auth(1, "patient")
STAFF = auth(50, "staff")
DOCTOR = auth(7, "doctor")


def booking_body(**overrides):
    body = {
        "providerId": 7,
        "department": "Cardiology",
        "startTime": "2030-01-07T09:00:00Z",
        "durationMinutes": 30,
        "reason": "Chest pain",
        "paymentMethod": "card",
        "cardDetails": CARD,
    }
    body.update(overrides)
    return body


@pytest.fixture
def make_client(make_settings):
    clients = []

    def _make(decline_decider=never_decline, **overrides):
        settings = make_settings(create_tables_on_startup=True, **overrides)
        client = TestClient(create_app(settings=settings, decline_decider=decline_decider, clock=fixed_clock))
        client.__enter__()
        clients.append(client)
        return client

    yield _make
    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def client(make_client):
    return make_client()


def test_health_is_public(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_routes_require_a_token(client):
    assert client.get("/appointments").status_code == 401
    assert client.post("/appointments", json=booking_body()).status_code == 401
    bad = {"Authorization": "Bearer not-a-jwt"}
    assert client.get("/appointments", headers=bad).status_code == 401


def test_book_with_card(client):
    response = client.post("/appointments", json=booking_body(), headers=PATIENT)
    assert response.status_code == 201

    body = response.json()
    assert body["appointment"]["patientId"] == 1
    assert body["appointment"]["status"] == "scheduled"
    assert body["appointment"]["paymentStatus"] == "paid"
    assert Decimal(str(body["appointment"]["amount"])) == Decimal("110.00")
    assert body["payment"]["status"] == "paid"
    assert body["payment"]["cardDetails"]["last4"] == "1111"
    assert body["transaction"]["transactionId"].startswith("TXN-")


def test_declined_card_is_payment_failed(make_client):
    client = make_client(decline_decider=always_decline)
    response = client.post("/appointments", json=booking_body(), headers=PATIENT)
    assert response.status_code == 402
    assert response.json()["error"] == "payment_failed"

    slots = client.get("/providers/7/slots", params={"date": "2030-01-07"}, headers=PATIENT).json()
    assert len(slots) == 16


def test_invalid_card_is_validation_error(client):
    body = booking_body(cardDetails={**CARD, "cvv": "12"})
    response = client.post("/appointments", json=body, headers=PATIENT)
    assert response.status_code == 400
    data = response.json()
    assert data["error"] == "validation_error"
    assert "card_details.cvv" in data["fields"]
    assert client.get("/appointments", headers=PATIENT).json() == []


def test_double_booking_is_a_conflict(client):
    assert client.post("/appointments", json=booking_body(), headers=PATIENT).status_code == 201

    clash = booking_body(startTime="2030-01-07T09:15:00Z", durationMinutes=15, patientId=3)
    response = client.post("/appointments", json=clash, headers=STAFF)
    assert response.status_code == 400
    assert response.json()["error"] == "conflict"


def test_slots_shrink_after_booking(client):
    params = {"date": "2030-01-07", "duration": 30}
    assert len(client.get("/providers/7/slots", params=params, headers=PATIENT).json()) == 16

    client.post("/appointments", json=booking_body(paymentMethod="govt_coverage"), headers=PATIENT)

    slots = client.get("/providers/7/slots", params=params, headers=PATIENT).json()
    assert len(slots) == 15
    assert slots[0].startswith("2030-01-07T09:30:00")


def test_sunday_has_no_slots(client):
    response = client.get("/providers/7/slots", params={"date": "2030-01-06"}, headers=PATIENT)
    assert response.status_code == 200
    assert response.json() == []


def test_patient_cannot_book_for_someone_else(client):
    response = client.post("/appointments", json=booking_body(patientId=2), headers=PATIENT)
    assert response.status_code == 403


def test_staff_must_name_the_patient(client):
    response = client.post("/appointments", json=booking_body(), headers=STAFF)
    assert response.status_code == 400
    assert "patient_id" in response.json()["fields"]


def test_refund_flow(client):
    booked = client.post("/appointments", json=booking_body(), headers=PATIENT).json()
    payment_id = booked["payment"]["id"]

    assert client.post(f"/payments/{payment_id}/refund", headers=PATIENT).status_code == 403

    response = client.post(f"/payments/{payment_id}/refund", headers=STAFF)
    assert response.status_code == 200
    assert response.json()["payment"]["status"] == "refunded"

    again = client.post(f"/payments/{payment_id}/refund", headers=STAFF)
    assert again.status_code == 400
    assert again.json()["error"] == "invalid_state"


def test_payment_lookup_by_appointment(client):
    booked = client.post("/appointments", json=booking_body(), headers=PATIENT).json()
    appointment_id = booked["appointment"]["id"]

    response = client.get(f"/payments/appointment/{appointment_id}", headers=PATIENT)
    assert response.status_code == 200
    assert response.json()["transactionId"] == booked["payment"]["transactionId"]

    assert client.get("/payments/appointment/999", headers=PATIENT).status_code == 404


def test_cancel_and_status_routes(client):
    booked = client.post("/appointments", json=booking_body(), headers=PATIENT).json()
    appointment_id = booked["appointment"]["id"]

    confirmed = client.patch(f"/appointments/{appointment_id}/status", json={"status": "confirmed"}, headers=DOCTOR)
    assert confirmed.json()["status"] == "confirmed"
    assert client.patch(f"/appointments/{appointment_id}/status", json={"status": "completed"}, headers=PATIENT).status_code == 403

    cancelled = client.patch(f"/appointments/{appointment_id}/cancel", headers=PATIENT)
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "cancelled"


def test_stats_for_doctor(client):
    client.post("/appointments", json=booking_body(), headers=PATIENT)
    response = client.get("/appointments/stats", headers=DOCTOR)
    assert response.status_code == 200
    body = response.json()
    assert body["providerId"] == 7
    assert body["counts"]["scheduled"] == 1


def test_charges(client):
    response = client.post("/payments/charges", json={"department": "Neurology", "durationMinutes": 60}, headers=PATIENT)
    assert response.status_code == 200
    body = response.json()
    assert Decimal(str(body["total"])) == Decimal("264.00")
    assert body["currency"] == "USD"


def test_missing_reason_is_validation_error(client):
    body = booking_body()
    del body["reason"]
    response = client.post("/appointments", json=body, headers=PATIENT)
    assert response.status_code == 400
    data = response.json()
    assert data["error"] == "validation_error"
    assert "reason" in data["fields"]


def test_unknown_payment_method_is_validation_error(client):
    response = client.post("/appointments", json=booking_body(paymentMethod="bitcoin"), headers=PATIENT)
    assert response.status_code == 400
    assert "paymentMethod" in response.json()["fields"]


def test_slots_for_past_date_are_rejected(client):
    response = client.get("/providers/7/slots", params={"date": "2029-12-31"}, headers=PATIENT)
    assert response.status_code == 400
    assert response.json()["fields"] == {"date": "must be today or later"}


def test_slots_only_for_bookable_durations(client):
    response = client.get("/providers/7/slots", params={"date": "2030-01-07", "duration": 20}, headers=PATIENT)
    assert response.status_code == 400
    assert response.json()["error"] == "validation_error"


def test_update_appointment_by_role(client):
    booked = client.post("/appointments", json=booking_body(), headers=PATIENT).json()
    appointment_id = booked["appointment"]["id"]

    edited = client.put(f"/appointments/{appointment_id}", json={"reason": "Follow-up"}, headers=PATIENT)
    assert edited.status_code == 200
    assert edited.json()["reason"] == "Follow-up"

    refused = client.put(f"/appointments/{appointment_id}", json={"status": "confirmed"}, headers=PATIENT)
    assert refused.status_code == 403

    confirmed = client.put(
        f"/appointments/{appointment_id}", json={"status": "confirmed", "notes": "Fasting"}, headers=DOCTOR
    )
    assert confirmed.status_code == 200
    assert confirmed.json()["status"] == "confirmed"
    assert confirmed.json()["notes"] == "Fasting"

    assert client.put(f"/appointments/{appointment_id}", json={"reason": "x"}, headers=STAFF).status_code == 403


def test_payment_validation_writes_nothing(client):
    good = client.post("/payments/validate", json={"paymentMethod": "card", "cardDetails": CARD}, headers=PATIENT)
    assert good.status_code == 200
    assert good.json() == {"valid": True, "message": "Payment validation successful"}

    bad = client.post(
        "/payments/validate",
        json={"paymentMethod": "card", "cardDetails": {**CARD, "cvv": "12"}},
        headers=PATIENT,
    )
    assert bad.status_code == 400
    assert "card_details.cvv" in bad.json()["fields"]

    assert client.get("/appointments", headers=STAFF).json() == []
