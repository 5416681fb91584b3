# hospital_booking/services/locks.py
import asyncio
from contextlib import asynccontextmanager
from typing import Dict


class ProviderLockRegistry:
    """
    One asyncio.Lock per provider, shared by every booking in this process.

    Held from the slot check until the appointment row is committed so two
    requests for the same provider cannot both pass the check. Across
    processes the unique slot index still rejects exact duplicates.
    """

    def __init__(self):
        self._locks: Dict[int, asyncio.Lock] = {}

    def lock_for(self, provider_id: int) -> asyncio.Lock:
        lock = self._locks.get(provider_id)
        if lock is None:
            lock = self._locks[provider_id] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def hold(self, provider_id: int):
        async with self.lock_for(provider_id):
            yield
