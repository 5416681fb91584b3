# hospital_booking/scheduling/slots.py
"""
Pure slot arithmetic for a provider's working day.

Nothing here touches the database or the clock: callers hand in the day, the
slot length and the intervals already booked, and get back deterministic,
ascending lists of free start instants.
"""
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Dict, Iterable, List, Optional, Tuple

from hospital_booking.config.constants import WORKING_HOURS


def as_utc(value: datetime) -> datetime:
    """Normalise a datetime to UTC. Naive values are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class Interval:
    """Half-open [start, end) time range."""

    start: datetime
    end: datetime

    @classmethod
    def from_duration(cls, start: datetime, duration_minutes: int) -> "Interval":
        start = as_utc(start)
        return cls(start, start + timedelta(minutes=duration_minutes))

    def overlaps(self, other: "Interval") -> bool:
        # Touching endpoints do not overlap
        return self.start < other.end and self.end > other.start


class SlotAvailabilityEngine:
    def __init__(
        self,
        working_hours: Optional[Dict[int, Tuple[time, time]]] = None,
        clinic_tz: Optional[tzinfo] = None,
    ):
        self.working_hours = WORKING_HOURS if working_hours is None else working_hours
        self.clinic_tz = clinic_tz or timezone.utc

    def working_window(self, day: date) -> Optional[Interval]:
        """Opening/closing bounds for ``day`` in UTC, or None when closed."""
        hours = self.working_hours.get(day.weekday())
        if hours is None:
            return None
        opens, closes = hours
        start = datetime.combine(day, opens, tzinfo=self.clinic_tz)
        end = datetime.combine(day, closes, tzinfo=self.clinic_tz)
        return Interval(as_utc(start), as_utc(end))

    def candidate_slots(self, day: date, duration_minutes: int) -> List[Interval]:
        """Contiguous slots of ``duration_minutes`` inside the working window.

        A trailing partial slot that would run past closing time is dropped.
        """
        if duration_minutes <= 0:
            raise ValueError("duration_minutes must be positive")
        window = self.working_window(day)
        if window is None:
            return []

        step = timedelta(minutes=duration_minutes)
        slots = []
        current = window.start
        while current + step <= window.end:
            slots.append(Interval(current, current + step))
            current += step
        return slots

    def list_available_slots(
        self,
        day: date,
        duration_minutes: int,
        booked: Iterable[Interval],
    ) -> List[datetime]:
        booked = list(booked)
        return [
            slot.start.astimezone(self.clinic_tz)
            for slot in self.candidate_slots(day, duration_minutes)
            if not any(slot.overlaps(existing) for existing in booked)
        ]

    def is_slot_free(
        self,
        start: datetime,
        duration_minutes: int,
        booked: Iterable[Interval],
    ) -> bool:
        candidate = Interval.from_duration(start, duration_minutes)
        return not any(candidate.overlaps(existing) for existing in booked)

    def within_working_hours(self, start: datetime, duration_minutes: int) -> bool:
        """True when the whole [start, start+duration) lies inside opening hours."""
        local_start = as_utc(start).astimezone(self.clinic_tz)
        window = self.working_window(local_start.date())
        if window is None:
            return False
        candidate = Interval.from_duration(start, duration_minutes)
        return window.start <= candidate.start and candidate.end <= window.end
