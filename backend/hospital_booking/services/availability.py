# hospital_booking/services/availability.py
import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Iterable, List, Optional

from hospital_booking.core.errors import ValidationError
from hospital_booking.scheduling.slots import Interval, SlotAvailabilityEngine, as_utc

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SlotAvailabilityService:
    """
    Feeds a provider's stored bookings into the pure slot engine.

    The engine knows nothing about "now", so past days and instants that have
    already started are filtered out here against the injected clock.
    """

    def __init__(
        self,
        store,
        engine: SlotAvailabilityEngine,
        allowed_durations: Optional[Iterable[int]] = None,
        clock: Clock = utc_now,
    ):
        self.store = store
        self.engine = engine
        self.allowed_durations = list(allowed_durations) if allowed_durations is not None else None
        self.clock = clock

    def _day_window(self, day: date) -> Interval:
        tz = self.engine.clinic_tz
        start = datetime.combine(day, time.min, tzinfo=tz)
        end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
        return Interval(as_utc(start), as_utc(end))

    def _validate_duration(self, duration_minutes: int) -> None:
        if duration_minutes <= 0:
            raise ValidationError(
                "Duration must be a positive number of minutes",
                fields={"duration": "must be positive"},
            )
        if self.allowed_durations is not None and duration_minutes not in self.allowed_durations:
            raise ValidationError(
                f"Duration must be one of {self.allowed_durations} minutes",
                fields={"duration": "unsupported duration"},
            )

    async def list_available_slots(self, provider_id: int, day: date, duration_minutes: int) -> List[datetime]:
        self._validate_duration(duration_minutes)
        now = as_utc(self.clock())
        today = now.astimezone(self.engine.clinic_tz).date()
        if day < today:
            raise ValidationError(
                "Cannot list slots for a past date",
                fields={"date": "must be today or later"},
            )

        booked = await self.store.booked_intervals(provider_id, self._day_window(day))
        slots = [
            start
            for start in self.engine.list_available_slots(day, duration_minutes, booked)
            if start > now
        ]
        logger.info(
            f"Provider {provider_id} has {len(slots)} free {duration_minutes}-minute slots on {day}"
        )
        return slots

    async def is_slot_free(self, provider_id: int, start: datetime, duration_minutes: int) -> bool:
        candidate = Interval.from_duration(start, duration_minutes)
        booked = await self.store.booked_intervals(provider_id, candidate)
        return self.engine.is_slot_free(start, duration_minutes, booked)
