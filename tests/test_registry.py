"""
Tests for the discovery registry.

Discovery runs against a fake search client and a fake clock, so scan
timing and eviction are fully controlled by the test.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import FakeConnection

from bravia_remote.core.events import DeviceFoundEvent, DeviceLostEvent, Event
from bravia_remote.device.registry import DiscoveryRegistry
from bravia_remote.device.tv import BraviaTv
from bravia_remote.protocol.ssdp import SEARCH_SERVICE

USN = "uuid:1234abcd-0000-1111-2222-333344445555::" + SEARCH_SERVICE
DEVICE_ID = "1234abcd-0000-1111-2222-333344445555"


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class FakeSearchClient:
    """Records searches and lets the test inject responses."""

    def __init__(self, on_response) -> None:
        self.on_response = on_response
        self.searches: list[str] = []
        self.started = False
        self.stopped = 0

    async def start(self) -> None:
        self.started = True

    def search(self, search_target: str) -> None:
        self.searches.append(search_target)

    async def stop(self) -> None:
        self.stopped += 1

    def respond(self, usn: str, host: str = "192.168.1.20", st: str = SEARCH_SERVICE) -> None:
        self.on_response({"ST": st, "USN": usn}, (host, 1900))


def _headers(usn: str = USN, st: str = SEARCH_SERVICE) -> dict[str, str]:
    return {"ST": st, "USN": usn, "LOCATION": "http://192.168.1.20:52323/dmr.xml"}


def _make_device(host: str, device_id: str) -> BraviaTv:
    return BraviaTv(host, device_id, connection=FakeConnection())


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry(clock: FakeClock) -> DiscoveryRegistry:
    return DiscoveryRegistry(
        interval=1.0,
        missing_threshold=3,
        device_factory=_make_device,
        client_factory=FakeSearchClient,
        clock=clock,
    )


@pytest.fixture
async def events(registry: DiscoveryRegistry) -> list[Event]:
    collected: list[Event] = []

    async def collect(event: Event) -> None:
        collected.append(event)

    await registry.events.subscribe("*", collect)
    return collected


class TestDeviceTracking:
    """Found, refreshed and lost devices."""

    async def test_first_response_creates_device(self, registry: DiscoveryRegistry, events: list) -> None:
        await registry.handle_response(_headers(), ("192.168.1.20", 1900))

        assert DEVICE_ID in registry
        device = registry.get_device_by_id(DEVICE_ID)
        assert device is not None
        assert device.host == "192.168.1.20"
        assert len(events) == 1
        assert isinstance(events[0], DeviceFoundEvent)
        assert events[0].device is device

    async def test_repeat_response_only_refreshes(
        self, registry: DiscoveryRegistry, clock: FakeClock, events: list
    ) -> None:
        await registry.handle_response(_headers(), ("192.168.1.20", 1900))
        device = registry.get_device_by_id(DEVICE_ID)

        clock.now += 2.5
        await registry.handle_response(_headers(), ("192.168.1.20", 1900))

        assert len(events) == 1
        assert registry.get_device_by_id(DEVICE_ID) is device
        record = registry.get_record(DEVICE_ID)
        assert record is not None
        assert record.last_seen == clock.now

    async def test_other_search_targets_ignored(self, registry: DiscoveryRegistry, events: list) -> None:
        await registry.handle_response(
            _headers(st="urn:schemas-upnp-org:device:MediaRenderer:1"), ("192.168.1.30", 1900)
        )
        assert len(registry) == 0
        assert events == []

    async def test_response_without_uuid_ignored(self, registry: DiscoveryRegistry) -> None:
        await registry.handle_response(_headers(usn="no-id-here"), ("192.168.1.30", 1900))
        assert len(registry) == 0

    async def test_eviction_after_threshold(
        self, registry: DiscoveryRegistry, clock: FakeClock, events: list
    ) -> None:
        """A device missing for threshold * interval seconds is lost exactly once."""
        await registry.handle_response(_headers(), ("192.168.1.20", 1900))

        clock.now += 2.9
        assert await registry.evict_missing() == []
        assert DEVICE_ID in registry

        clock.now += 0.1
        lost = await registry.evict_missing()
        assert [tv.id for tv in lost] == [DEVICE_ID]
        assert DEVICE_ID not in registry

        clock.now += 5.0
        assert await registry.evict_missing() == []

        lost_events = [e for e in events if isinstance(e, DeviceLostEvent)]
        assert len(lost_events) == 1
        assert lost_events[0].device is lost[0]

    async def test_evicted_device_is_not_disconnected(
        self, registry: DiscoveryRegistry, clock: FakeClock
    ) -> None:
        await registry.handle_response(_headers(), ("192.168.1.20", 1900))
        device = registry.get_device_by_id(DEVICE_ID)
        assert device is not None

        clock.now += 10
        await registry.evict_missing()
        assert device.state.value == "idle"

    async def test_returning_device_gets_new_facade(
        self, registry: DiscoveryRegistry, clock: FakeClock, events: list
    ) -> None:
        await registry.handle_response(_headers(), ("192.168.1.20", 1900))
        first = registry.get_device_by_id(DEVICE_ID)

        clock.now += 10
        await registry.evict_missing()
        await registry.handle_response(_headers(), ("192.168.1.21", 1900))

        second = registry.get_device_by_id(DEVICE_ID)
        assert second is not None
        assert second is not first
        assert second.host == "192.168.1.21"
        assert [e.event_type for e in events] == ["founddevice", "lostdevice", "founddevice"]

    async def test_get_all_devices(self, registry: DiscoveryRegistry) -> None:
        await registry.handle_response(_headers(), ("192.168.1.20", 1900))
        await registry.handle_response(
            _headers(usn="uuid:other::" + SEARCH_SERVICE), ("192.168.1.21", 1900)
        )

        ids = sorted(tv.id for tv in registry.get_all_devices())
        assert ids == sorted([DEVICE_ID, "other"])
        assert sorted(registry) == ids
        assert registry.get_device_by_id("missing") is None

    async def test_disconnect_all(self, registry: DiscoveryRegistry) -> None:
        device = MagicMock()
        device.disconnect = AsyncMock()
        registry._device_factory = lambda host, device_id: device

        await registry.handle_response(_headers(), ("192.168.1.20", 1900))
        await registry.disconnect_all()

        device.disconnect.assert_awaited_once()
        assert len(registry) == 0

    def test_empty_registry_is_truthy(self, registry: DiscoveryRegistry) -> None:
        assert len(registry) == 0
        assert registry


class TestDiscoverySession:
    """discover() and cancel_discovery() with the scan task running."""

    async def test_first_search_runs_shortly_after_discover(self, registry: DiscoveryRegistry) -> None:
        await registry.discover()
        client = registry._client
        assert isinstance(client, FakeSearchClient)
        assert client.started

        await asyncio.sleep(0.2)
        assert client.searches == [SEARCH_SERVICE]

        await registry.cancel_discovery()

    async def test_responses_are_applied_by_scan_task(self, registry: DiscoveryRegistry) -> None:
        await registry.discover(interval=5.0)
        client = registry._client
        assert isinstance(client, FakeSearchClient)

        client.respond(USN)
        await asyncio.sleep(0.05)
        assert DEVICE_ID in registry

        await registry.cancel_discovery()

    async def test_discover_overrides_settings(self, registry: DiscoveryRegistry) -> None:
        await registry.discover(interval=2.0, missing_threshold=5)
        assert registry.interval == 2.0
        assert registry.missing_threshold == 5
        assert registry.is_discovering
        await registry.cancel_discovery()

    async def test_invalid_settings(self, registry: DiscoveryRegistry) -> None:
        with pytest.raises(ValueError):
            await registry.discover(interval=0)

    async def test_cancel_twice(self, registry: DiscoveryRegistry) -> None:
        await registry.discover()
        client = registry._client
        assert isinstance(client, FakeSearchClient)

        await registry.cancel_discovery()
        await registry.cancel_discovery()
        assert client.stopped == 1
        assert not registry.is_discovering

    async def test_cancel_without_discover(self, registry: DiscoveryRegistry) -> None:
        await registry.cancel_discovery()
        assert not registry.is_discovering

    async def test_cancel_keeps_devices(self, registry: DiscoveryRegistry, clock: FakeClock) -> None:
        await registry.discover()
        await registry.handle_response(_headers(), ("192.168.1.20", 1900))

        await registry.cancel_discovery()
        clock.now += 100
        assert DEVICE_ID in registry
