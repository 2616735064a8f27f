"""
Bravia Remote - Main Server Module

This module contains the BraviaRemoteServer class that runs discovery
and the HTTP control surface and manages the application lifecycle.
"""

import asyncio
import logging
import signal

from bravia_remote.config import RemoteConfig, get_config
from bravia_remote.core.events import DeviceFoundEvent, DeviceLostEvent, Event, TvNotificationEvent
from bravia_remote.device.registry import DiscoveryRegistry
from bravia_remote.protocol.errors import NotConnected, TransportError
from bravia_remote.web.server import WebServer

logger = logging.getLogger(__name__)


class BraviaRemoteServer:
    """
    Main server that coordinates all components.

    The server manages:
    - Discovery registry (periodic SSDP searches)
    - Web server for the REST control API
    """

    def __init__(
        self,
        config: RemoteConfig | None = None,
        *,
        registry: DiscoveryRegistry | None = None,
    ) -> None:
        """
        Initialize the server.

        Args:
            config: Configuration to run with (default: get_config()).
            registry: Registry to use instead of one built from config.
        """
        self.config = config or get_config()

        discovery = self.config.discovery
        self.registry = registry or DiscoveryRegistry(
            interval=discovery.interval,
            missing_threshold=discovery.missing_threshold,
            search_target=discovery.search_target,
            bind_host=discovery.bind_host,
            device_settings=self.config.device,
        )

        self.web_server: WebServer | None = None

        # Server state
        self._running = False
        self._shutdown_event: asyncio.Event | None = None

    async def start(self) -> None:
        """Start all server components."""
        logger.info("Starting Bravia Remote server")

        self._running = True
        self._shutdown_event = asyncio.Event()

        await self.registry.events.subscribe("founddevice", self._on_device_found)
        await self.registry.events.subscribe("lostdevice", self._on_device_lost)

        await self.registry.discover()

        web = self.config.web
        if web.enabled:
            self.web_server = WebServer(self.registry)
            await self.web_server.start(host=web.host, port=web.port)

        logger.info("Bravia Remote server started successfully")

    async def stop(self) -> None:
        """Stop all server components gracefully."""
        if not self._running:
            return

        logger.info("Stopping Bravia Remote server...")
        self._running = False

        # Stop Web server first
        if self.web_server:
            await self.web_server.stop()
            self.web_server = None

        await self.registry.cancel_discovery()
        await self.registry.disconnect_all()
        await self.registry.events.clear()

        if self._shutdown_event:
            self._shutdown_event.set()

        logger.info("Bravia Remote server stopped")

    async def run(self) -> None:
        """
        Run the server until shutdown is requested.

        This method starts all components and waits for a shutdown signal
        (SIGINT or SIGTERM).
        """
        await self.start()

        loop = asyncio.get_running_loop()

        def handle_signal() -> None:
            logger.info("Received shutdown signal")
            if self._shutdown_event:
                self._shutdown_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, handle_signal)
            except NotImplementedError:
                # Signal handlers not supported on Windows
                pass

        if self._shutdown_event:
            await self._shutdown_event.wait()

        await self.stop()

    @property
    def is_running(self) -> bool:
        """Check if the server is currently running."""
        return self._running

    @property
    def known_devices(self) -> int:
        """Get the number of currently known televisions."""
        return len(self.registry)

    async def _on_device_found(self, event: Event) -> None:
        if not isinstance(event, DeviceFoundEvent) or event.device is None:
            return
        logger.info("Television available: %s", event.device)
        await event.device.events.subscribe("*", self._on_notification)

        # Notifications only flow over an open connection
        try:
            await event.device.connect()
        except (TransportError, NotConnected) as e:
            logger.warning("Could not connect to %s: %s", event.device, e)

    async def _on_device_lost(self, event: Event) -> None:
        if not isinstance(event, DeviceLostEvent) or event.device is None:
            return
        logger.info("Television gone: %s", event.device)

    async def _on_notification(self, event: Event) -> None:
        if isinstance(event, TvNotificationEvent):
            logger.info("%s: %s %r", event.device_id, event.event_type, event.value)
