"""
Television facade for bravia_remote.

This module defines the BraviaTv class which represents one television
reachable over the Simple IP control protocol. Its public surface is
generated from the command registry when the object is built: every
exposed name becomes an Accessor offering the operations its commands
allow.

    tv = BraviaTv("192.168.1.20", "a1b2c3")
    await tv.volume.set(20)
    level = await tv.volume.get()
    await tv.is_on.toggle()
    await tv.send_ir_code("home")
    await tv.disconnect()
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Mapping

from bravia_remote.core.events import EventBus, TvNotificationEvent
from bravia_remote.protocol.commands import (
    DEFAULT_REGISTRY,
    CommandDescriptor,
    CommandRegistry,
    Operation,
)
from bravia_remote.protocol.connection import CONTROL_PORT, Subscription, TvConnection
from bravia_remote.protocol.correlator import Correlator
from bravia_remote.protocol.errors import CommandTableError, NotConnected, UnsupportedOperation
from bravia_remote.protocol.frames import NO_PARAMETER, Frame, MessageKind
from bravia_remote.protocol.notifications import NotificationDispatcher

logger = logging.getLogger(__name__)


def _ignore_frame(frame: Frame) -> None:
    pass


class TvState(Enum):
    """Connection state of a television."""

    IDLE = "idle"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class Accessor:
    """
    The operations exposed under one name on a television.

    Only the operations listed in `operations` are available; the others
    raise UnsupportedOperation.
    """

    def __init__(
        self,
        tv: "BraviaTv",
        name: str,
        descriptors: Mapping[Operation, CommandDescriptor],
    ) -> None:
        self._tv = tv
        self.name = name
        self._descriptors = descriptors

    @property
    def operations(self) -> tuple[Operation, ...]:
        return tuple(self._descriptors)

    def supports(self, operation: Operation) -> bool:
        return operation in self._descriptors

    def _descriptor(self, operation: Operation) -> CommandDescriptor:
        try:
            return self._descriptors[operation]
        except KeyError:
            raise UnsupportedOperation(f"{self.name} does not support {operation.value}") from None

    async def get(self, param: Any = None) -> Any:
        """Read the current value. A few enquiries take an argument."""
        descriptor = self._descriptor(Operation.GET)
        parameter = NO_PARAMETER if param is None else descriptor.mapper.encode(param)
        return await self._tv._request(descriptor, MessageKind.ENQUIRY, parameter, descriptor.mapper.decode)

    async def set(self, value: Any) -> None:
        """Change the value."""
        descriptor = self._descriptor(Operation.SET)
        parameter = descriptor.mapper.encode(value)
        await self._tv._request(descriptor, MessageKind.CONTROL, parameter)

    async def toggle(self) -> None:
        """Ask the television to flip the current state."""
        descriptor = self._descriptor(Operation.TOGGLE)
        await self._tv._request(descriptor, MessageKind.CONTROL, NO_PARAMETER)

    async def __call__(self, *args: Any) -> Any:
        """Run a custom action such as sending an IR code."""
        descriptor = self._descriptor(Operation.INVOKE)
        correlator = await self._tv._ensure_connected()
        return await descriptor.action(correlator, descriptor.code, *args)  # type: ignore[misc]

    def __repr__(self) -> str:
        ops = ", ".join(op.value for op in self._descriptors)
        return f"Accessor({self.name!r}, [{ops}])"


class BraviaTv:
    """
    Represents one Bravia television.

    Each BraviaTv owns one persistent connection, a correlator for
    request/answer traffic and a notification dispatcher that republishes
    pushed state changes on `events`.

    If the television drops the socket the state falls back to IDLE and the
    next operation (or connect()) dials again. Only disconnect() is final.

    Attributes:
        events: Per-device event bus for notification events.
    """

    def __init__(
        self,
        host: str,
        device_id: str,
        port: int = CONTROL_PORT,
        *,
        connection: Any | None = None,
        registry: CommandRegistry | None = None,
        serialize_commands: bool = True,
        response_timeout: float | None = None,
    ) -> None:
        """
        Initialize a television facade. No connection is made yet.

        Args:
            host: Television IP address.
            device_id: Stable device identifier (from discovery).
            port: Control port (default 20060).
            connection: Transport to use instead of a new TvConnection.
            registry: Command registry (default: the built-in table).
            serialize_commands: Queue requests that share a command code.
            response_timeout: Optional seconds to wait for each answer.
        """
        self._id = device_id
        self._host = host
        self._port = port
        self._registry = registry or DEFAULT_REGISTRY
        self._connection = connection if connection is not None else TvConnection(host, port)
        self._state = TvState.IDLE
        self._connect_lock = asyncio.Lock()

        self._serialize_commands = serialize_commands
        self._response_timeout = response_timeout

        self.events = EventBus()
        self._correlator: Correlator | None = None
        self._dispatcher: NotificationDispatcher | None = None
        self._watch: Subscription | None = None

        accessors: dict[str, Accessor] = {}
        for name, descriptors in self._registry.surface.items():
            if hasattr(type(self), name):
                raise CommandTableError(f"Exposed name {name!r} clashes with a BraviaTv attribute")
            accessors[name] = Accessor(self, name, descriptors)
        self._accessors = accessors

        logger.debug("BraviaTv created for %s (%s)", device_id, host)

    @property
    def id(self) -> str:
        """Get the television's unique identifier."""
        return self._id

    @property
    def host(self) -> str:
        """Get the television's IP address."""
        return self._host

    @property
    def port(self) -> int:
        return self._port

    @property
    def state(self) -> TvState:
        return self._state

    @property
    def is_connected(self) -> bool:
        """Check if the control connection is open."""
        return self._state == TvState.CONNECTED

    @property
    def operations(self) -> dict[str, tuple[str, ...]]:
        """Exposed name -> names of the operations it supports."""
        return {
            name: tuple(op.value for op in accessor.operations)
            for name, accessor in self._accessors.items()
        }

    def accessor(self, name: str) -> Accessor:
        """
        Look up an accessor by exposed name.

        Raises:
            KeyError: If no command is exposed under that name.
        """
        return self._accessors[name]

    def __getattr__(self, name: str) -> Accessor:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self._accessors[name]
        except KeyError:
            raise AttributeError(f"{type(self).__name__!r} has no attribute {name!r}") from None

    def __dir__(self) -> list[str]:
        return sorted(set(super().__dir__()) | set(self._accessors))

    async def connect(self) -> None:
        """
        Open the control connection and start listening for notifications.

        Raises:
            NotConnected: If the television was disconnected.
            TransportError: If the television can't be reached.
        """
        async with self._connect_lock:
            if self._state == TvState.DISCONNECTED:
                raise NotConnected(f"{self._id} has been disconnected")
            if self._state == TvState.CONNECTED:
                return

            if self._dispatcher is not None:
                await self._dispatcher.stop()

            await self._connection.open()
            if self._state == TvState.DISCONNECTED:
                raise NotConnected(f"{self._id} was disconnected while connecting")

            # Each connection gets its own FrameStream, so attach fresh listeners
            frames = self._connection.frames
            self._correlator = Correlator(
                self._connection,
                frames,
                serialize=self._serialize_commands,
                timeout=self._response_timeout,
            )
            self._dispatcher = NotificationDispatcher(frames, self._registry, self._publish_notification)
            self._dispatcher.start()
            self._watch = frames.subscribe(_ignore_frame, self._on_connection_lost)

            self._state = TvState.CONNECTED
            logger.info("Connected to television %s at %s", self._id, self._host)

    async def disconnect(self) -> None:
        """Close the connection and drop all subscriptions. Safe to call more than once."""
        if self._state == TvState.DISCONNECTED:
            return

        logger.info("Disconnecting television %s", self._id)
        self._state = TvState.DISCONNECTED

        if self._watch is not None:
            self._watch.cancel()
            self._watch = None
        if self._dispatcher is not None:
            await self._dispatcher.stop()
        await self._connection.close()
        await self.events.clear()

    def _on_connection_lost(self, exc: BaseException) -> None:
        """The television dropped the socket; the next operation dials again."""
        self._watch = None
        if self._state != TvState.CONNECTED:
            return
        logger.warning("Lost connection to television %s: %s", self._id, exc)
        self._state = TvState.IDLE

    async def _ensure_connected(self) -> Correlator:
        if self._state == TvState.DISCONNECTED:
            raise NotConnected(f"{self._id} has been disconnected")
        if self._state == TvState.IDLE:
            await self.connect()

        correlator = self._correlator
        if correlator is None or self._state != TvState.CONNECTED:
            raise NotConnected(f"{self._id} is not connected")
        return correlator

    async def _request(
        self,
        descriptor: CommandDescriptor,
        kind: MessageKind,
        parameter: str,
        decoder: Any = None,
    ) -> Any:
        correlator = await self._ensure_connected()
        logger.debug("%s: %s %s %s", self._id, kind.name, descriptor.code, parameter)
        return await correlator.send(descriptor.code, kind, parameter, decoder)

    async def _publish_notification(self, name: str, value: Any) -> None:
        logger.debug("%s: %s -> %r", self._id, name, value)
        await self.events.publish(TvNotificationEvent(event_type=name, device_id=self._id, value=value))

    def __repr__(self) -> str:
        """Return a string representation for debugging."""
        return f"BraviaTv(id={self._id!r}, host={self._host!r}, state={self._state.name})"

    def __str__(self) -> str:
        """Return a human-readable string representation."""
        return f"{self._id} ({self._host})"
