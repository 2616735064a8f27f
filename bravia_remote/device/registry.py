"""
Discovery Registry - liveness-tracked set of known televisions.

The registry runs periodic SSDP searches. The first response from an
unknown device id creates a BraviaTv and fires `founddevice`; later
responses only refresh the record's last-seen time. After every search,
records that have not been seen for `missing_threshold * interval`
seconds are evicted and `lostdevice` fires once for each.

Evicted televisions are not disconnected; that stays with whoever
received the `founddevice` event. A television that comes back after
eviction gets a fresh record and a fresh BraviaTv.

All mutations of the device map happen on the scan task: search
responses are queued by the UDP callback and applied between scans.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterator, Protocol

from bravia_remote.config import DeviceSettings
from bravia_remote.core.events import DeviceFoundEvent, DeviceLostEvent, EventBus
from bravia_remote.device.tv import BraviaTv
from bravia_remote.protocol.ssdp import (
    SEARCH_SERVICE,
    ResponseHandler,
    SSDPClient,
    extract_device_id,
)

logger = logging.getLogger(__name__)

DEFAULT_SCAN_INTERVAL = 10.0
MISSING_THRESHOLD = 3

# Delay before the first search after discover()
INITIAL_SCAN_DELAY = 0.1


class SearchClient(Protocol):
    """What the registry needs from a discovery transport."""

    async def start(self) -> None: ...

    def search(self, search_target: str) -> None: ...

    async def stop(self) -> None: ...


DeviceFactory = Callable[[str, str], BraviaTv]
SearchClientFactory = Callable[[ResponseHandler], SearchClient]


@dataclass
class DeviceRecord:
    """A television known to the registry."""

    id: str
    address: str
    last_seen: float
    device: BraviaTv


class DiscoveryRegistry:
    """
    Registry of televisions found by SSDP discovery.

    Attributes:
        events: Bus carrying DeviceFoundEvent and DeviceLostEvent.
        interval: Seconds between searches.
        missing_threshold: Searches a device may miss before eviction.
    """

    def __init__(
        self,
        *,
        interval: float = DEFAULT_SCAN_INTERVAL,
        missing_threshold: int = MISSING_THRESHOLD,
        search_target: str = SEARCH_SERVICE,
        bind_host: str = "0.0.0.0",
        device_settings: DeviceSettings | None = None,
        device_factory: DeviceFactory | None = None,
        client_factory: SearchClientFactory | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize an empty registry.

        Args:
            interval: Default seconds between searches.
            missing_threshold: Default missed searches before eviction.
            search_target: SSDP search target (ST) to look for.
            bind_host: Local address for the default SSDP client.
            device_settings: Settings for televisions created by the
                default device factory.
            device_factory: Builds a BraviaTv from (host, device_id).
            client_factory: Builds the discovery transport from a
                response callback.
            clock: Monotonic time source for last-seen bookkeeping.
        """
        self.interval = interval
        self.missing_threshold = missing_threshold
        self.search_target = search_target
        self.events = EventBus()

        self._device_settings = device_settings or DeviceSettings()
        self._device_factory = device_factory or self._create_device
        self._client_factory = client_factory or (
            lambda on_response: SSDPClient(on_response, host=bind_host)
        )
        self._clock = clock

        self._records: dict[str, DeviceRecord] = {}
        self._responses: asyncio.Queue[tuple[dict[str, str], tuple[str, int]]] = asyncio.Queue()
        self._client: SearchClient | None = None
        self._scan_task: asyncio.Task[None] | None = None

    def _create_device(self, host: str, device_id: str) -> BraviaTv:
        settings = self._device_settings
        return BraviaTv(
            host,
            device_id,
            port=settings.control_port,
            serialize_commands=settings.serialize_commands,
            response_timeout=settings.response_timeout,
        )

    @property
    def is_discovering(self) -> bool:
        """Check if a discovery session is running."""
        return self._scan_task is not None and not self._scan_task.done()

    async def discover(
        self,
        interval: float | None = None,
        missing_threshold: int | None = None,
    ) -> None:
        """
        Start periodic discovery.

        The first search goes out shortly after this call; the rest every
        `interval` seconds.

        Args:
            interval: Seconds between searches.
            missing_threshold: Searches a device may miss before eviction.
        """
        if self.is_discovering:
            logger.warning("Discovery already running")
            return

        if interval is not None:
            self.interval = interval
        if missing_threshold is not None:
            self.missing_threshold = missing_threshold
        if self.interval <= 0 or self.missing_threshold < 1:
            raise ValueError("interval must be positive and missing_threshold at least 1")

        self._client = self._client_factory(self._on_response)
        await self._client.start()
        self._scan_task = asyncio.create_task(self._scan_loop())

        logger.info(
            "Discovery started (interval %.1fs, missing threshold %d)",
            self.interval,
            self.missing_threshold,
        )

    async def cancel_discovery(self) -> None:
        """
        Stop the scan timer and the discovery transport.

        Known devices are neither evicted nor disconnected. Safe to call
        more than once.
        """
        task = self._scan_task
        client = self._client
        self._scan_task = None
        self._client = None

        if task is None and client is None:
            return

        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        if client is not None:
            await client.stop()

        logger.info("Discovery cancelled")

    def get_all_devices(self) -> list[BraviaTv]:
        """
        Get a list of all currently known televisions.

        Returns:
            A list of all tracked devices (copy, safe to iterate).
        """
        return [record.device for record in self._records.values()]

    def get_device_by_id(self, device_id: str) -> BraviaTv | None:
        """
        Look up a television by its device id.

        Returns:
            The television, or None if not known.
        """
        record = self._records.get(device_id)
        return record.device if record else None

    def get_record(self, device_id: str) -> DeviceRecord | None:
        """Look up the registry record for a device id."""
        return self._records.get(device_id)

    async def disconnect_all(self) -> None:
        """
        Disconnect every known television and clear the registry.

        This is typically called during shutdown.
        """
        records = list(self._records.values())
        self._records.clear()

        for record in records:
            try:
                await record.device.disconnect()
            except Exception as e:
                logger.warning("Error disconnecting %s: %s", record.id, e)

        logger.info("All televisions disconnected (%d total)", len(records))

    def _on_response(self, headers: dict[str, str], addr: tuple[str, int]) -> None:
        """Discovery transport callback; queued for the scan task."""
        self._responses.put_nowait((headers, addr))

    async def _scan_loop(self) -> None:
        loop = asyncio.get_running_loop()
        next_scan = loop.time() + INITIAL_SCAN_DELAY

        while True:
            remaining = next_scan - loop.time()
            if remaining <= 0:
                await self.scan()
                next_scan = max(next_scan + self.interval, loop.time())
                continue

            try:
                headers, addr = await asyncio.wait_for(self._responses.get(), remaining)
            except asyncio.TimeoutError:
                continue

            try:
                await self.handle_response(headers, addr)
            except Exception as e:
                logger.exception("Error handling discovery response from %s: %s", addr[0], e)

    async def scan(self) -> None:
        """Issue one search, then evict devices that have gone missing."""
        if self._client is not None:
            self._client.search(self.search_target)
        await self.evict_missing()

    async def handle_response(self, headers: dict[str, str], addr: tuple[str, int]) -> None:
        """Process one discovery response."""
        if headers.get("ST") != self.search_target:
            return

        device_id = extract_device_id(headers.get("USN"))
        if device_id is None:
            logger.debug("Ignoring response from %s without a device id", addr[0])
            return

        await self._handle_device_found(addr[0], device_id)

    async def _handle_device_found(self, host: str, device_id: str) -> None:
        """
        Track one sighting of a device.

        An unseen id gets a new record and a founddevice event; a known id
        only has its last-seen time refreshed.
        """
        now = self._clock()

        record = self._records.get(device_id)
        if record is not None:
            record.last_seen = now
            return

        logger.info("Found television: %s at %s", device_id, host)
        device = self._device_factory(host, device_id)
        self._records[device_id] = DeviceRecord(
            id=device_id,
            address=host,
            last_seen=now,
            device=device,
        )
        await self.events.publish(DeviceFoundEvent(device=device))

    async def evict_missing(self) -> list[BraviaTv]:
        """
        Evict every record not seen for missing_threshold * interval seconds.

        Returns:
            The evicted televisions.
        """
        max_age = self.missing_threshold * self.interval
        now = self._clock()

        expired = [record for record in self._records.values() if now - record.last_seen >= max_age]
        for record in expired:
            del self._records[record.id]
            logger.info("Lost television: %s (not seen for %.1fs)", record.id, now - record.last_seen)

        for record in expired:
            await self.events.publish(DeviceLostEvent(device=record.device))

        return [record.device for record in expired]

    def __len__(self) -> int:
        """Return the number of known televisions."""
        return len(self._records)

    def __contains__(self, device_id: object) -> bool:
        """Check if a television with the given id is known."""
        return device_id in self._records

    def __iter__(self) -> Iterator[str]:
        """Iterate over known device ids."""
        return iter(self._records)

    def __bool__(self) -> bool:
        """A registry instance is always truthy, even when empty."""
        return True
