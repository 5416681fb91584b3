from fastapi import APIRouter, Depends, Query, Request
from typing import List, Optional
from datetime import date, datetime

from hospital_booking.core.dependencies import get_availability_service
from hospital_booking.core.middleware import get_current_user
from hospital_booking.services.availability import SlotAvailabilityService

router = APIRouter(prefix="/providers", tags=["providers"])


@router.get("/{provider_id}/slots", response_model=List[datetime])
async def list_slots_route(
    provider_id: int,
    request: Request,
    day: date = Query(..., alias="date"),
    duration: Optional[int] = Query(None, description="Slot length in minutes"),
    availability: SlotAvailabilityService = Depends(get_availability_service),
    current_user: dict = Depends(get_current_user),
):
    """Free start instants for a provider on a day, ascending"""
    if duration is None:
        duration = request.app.state.settings.default_slot_minutes
    return await availability.list_available_slots(provider_id, day, duration)
