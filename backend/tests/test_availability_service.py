# tests/test_availability_service.py
import pytest

from hospital_booking.core.errors import ValidationError
from hospital_booking.services.availability import SlotAvailabilityService
from tests._stubs import MONDAY, NOW, at, booking_request


def service_at(store, slot_engine, test_settings, now=NOW):
    return SlotAvailabilityService(
        store, slot_engine, allowed_durations=test_settings.allowed_durations, clock=lambda: now
    )


async def test_past_date_is_rejected(store, slot_engine, test_settings):
    availability = service_at(store, slot_engine, test_settings, now=at(8))
    with pytest.raises(ValidationError) as exc_info:
        await availability.list_available_slots(7, NOW.date(), 30)
    assert "date" in exc_info.value.fields


async def test_today_lists_only_instants_after_now(store, slot_engine, test_settings):
    availability = service_at(store, slot_engine, test_settings, now=at(12))
    slots = await availability.list_available_slots(7, MONDAY, 30)
    assert slots[0] == at(12, 30)
    assert len(slots) == 9


async def test_unsupported_duration_is_rejected(store, slot_engine, test_settings):
    availability = service_at(store, slot_engine, test_settings)
    with pytest.raises(ValidationError) as exc_info:
        await availability.list_available_slots(7, MONDAY, 20)
    assert exc_info.value.fields == {"duration": "unsupported duration"}


async def test_listed_slot_is_bookable(store, slot_engine, test_settings, make_orchestrator):
    availability = service_at(store, slot_engine, test_settings)
    [first, *_] = await availability.list_available_slots(7, MONDAY, 45)

    outcome = await make_orchestrator().book(
        booking_request(start_time=first, duration_minutes=45), patient_id=1
    )
    assert outcome.appointment.duration_minutes == 45
