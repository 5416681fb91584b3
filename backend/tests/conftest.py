"""
Shared pytest fixtures.

Every test gets its own SQLite file through aiosqlite, so the saga runs
against a real database with the same unique slot index as production.
"""
import os

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test.db")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import pytest
import pytest_asyncio

from hospital_booking.config.settings import Settings
from hospital_booking.db.base import create_tables, get_engine, get_session_factory
from hospital_booking.payments.processors import never_decline
from hospital_booking.payments.registry import build_processor_registry
from hospital_booking.scheduling.slots import SlotAvailabilityEngine
from hospital_booking.services.availability import SlotAvailabilityService
from hospital_booking.services.booking import BookingOrchestrator
from hospital_booking.services.locks import ProviderLockRegistry
from hospital_booking.services.store import SqlAlchemyBookingStore
from tests._stubs import fixed_clock


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'booking.db'}"


@pytest.fixture
def make_settings(db_url):
    def _make(**overrides) -> Settings:
        values = {
            "database_url": db_url,
            "secret_key": "test-secret-key",
            "settlement_timeout_seconds": 2.0,
        }
        values.update(overrides)
        return Settings(**values)

    return _make


@pytest.fixture
def test_settings(make_settings) -> Settings:
    return make_settings()


@pytest_asyncio.fixture
async def engine(db_url):
    engine = await get_engine(db_url)
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return await get_session_factory(engine)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(db_session) -> SqlAlchemyBookingStore:
    return SqlAlchemyBookingStore(db_session)


@pytest.fixture
def slot_engine() -> SlotAvailabilityEngine:
    return SlotAvailabilityEngine()


@pytest.fixture
def provider_locks() -> ProviderLockRegistry:
    return ProviderLockRegistry()


@pytest.fixture
def make_orchestrator(store, test_settings, slot_engine, provider_locks):
    """Build an orchestrator; every collaborator can be overridden per test."""

    def _make(
        store=store,
        settings=test_settings,
        decline_decider=never_decline,
        notifier=None,
        locks=provider_locks,
    ) -> BookingOrchestrator:
        return BookingOrchestrator(
            store=store,
            processors=build_processor_registry(settings, decline_decider),
            availability=SlotAvailabilityService(
                store, slot_engine, allowed_durations=settings.allowed_durations, clock=fixed_clock
            ),
            locks=locks,
            settings=settings,
            notifier=notifier,
            clock=fixed_clock,
        )

    return _make
