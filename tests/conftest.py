"""Pytest configuration and shared fixtures."""

import asyncio

import pytest

from shared.events.bus import EventBus
from shared.storage.store import MemoryHub, MemoryStore
from shared.utils.ids import IdGenerator
from shared.utils.scheduler import ManualClock, Scheduler
from services.admin.services.admin_service import AdminService
from services.booking.services.booking_service import BookingService
from services.monitoring.services.monitor_service import MonitorService

BOOKING_KEY = "moodCafeBookings"
ADMIN_KEY = "moodCafeAdminData"


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def hub() -> MemoryHub:
    return MemoryHub()


@pytest.fixture
def store(hub) -> MemoryStore:
    return MemoryStore(hub)


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def ids(clock) -> IdGenerator:
    return IdGenerator(clock)


@pytest.fixture
def scheduler(clock) -> Scheduler:
    return Scheduler(clock)


@pytest.fixture
def booking_service(store, bus, ids, clock) -> BookingService:
    return BookingService(store, bus, ids=ids, clock=clock, storage_key=BOOKING_KEY)


@pytest.fixture
def admin_service(store, bus, ids, clock) -> AdminService:
    service = AdminService(
        store, bus, ids=ids, clock=clock,
        storage_key=ADMIN_KEY,
        sync_strategy="merge"
    )
    service.attach()
    return service


@pytest.fixture
def monitor_service(bus, scheduler, admin_service) -> MonitorService:
    return MonitorService(
        bus, scheduler, admin=admin_service,
        debounce_ms=250,
        page_view_throttle_ms=1000,
        error_cooldown_ms=5000,
        error_retention_seconds=3600,
        max_errors=100,
        popular_items_limit=10,
        cleanup_interval_seconds=300
    )


@pytest.fixture
def collect(bus):
    """Collect every broadcast published on a channel of the shared bus."""

    def _collect(channel: str) -> list:
        received = []
        bus.subscribe(channel, received.append)
        return received

    return _collect


class FakeRedis:
    """Async stand-in for the Redis calls RedisStore and DistributedLock make.

    Every call yields to the event loop, like a real round trip.
    """

    def __init__(self):
        self.values = {}
        self.published = []

    async def get(self, key):
        await asyncio.sleep(0)
        return self.values.get(key)

    async def set(self, key, value, nx=False, ex=None):
        await asyncio.sleep(0)
        if nx and key in self.values:
            return None
        self.values[key] = value
        return True

    async def publish(self, channel, message):
        await asyncio.sleep(0)
        self.published.append((channel, message))

    async def eval(self, script, numkeys, key, identifier):
        await asyncio.sleep(0)
        if self.values.get(key) == identifier:
            del self.values[key]
            return 1
        return 0


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()
