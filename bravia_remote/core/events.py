"""
Event Bus for bravia_remote.

This module provides a simple pub/sub event system for decoupled
communication between components. There is no global bus: the discovery
registry and every television own their own EventBus.

Event types:
- founddevice: Discovery saw a television for the first time
- lostdevice: A television missed too many discovery scans
- power-changed, volume-changed, mute-changed, channel-changed,
  input-changed, picture-mute-changed, pip-changed: state notifications
  pushed by a television

Usage:
    async def on_volume(event: TvNotificationEvent) -> None:
        print(f"{event.device_id} volume is now {event.value}")

    await tv.events.subscribe("volume-changed", on_volume)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Coroutine

if TYPE_CHECKING:
    from bravia_remote.device.tv import BraviaTv

logger = logging.getLogger(__name__)

# Type alias for event handlers
EventHandler = Callable[["Event"], Coroutine[Any, Any, None]]


@dataclass
class Event:
    """Base class for all events."""

    event_type: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert event to dictionary for JSON serialization."""
        return {"type": self.event_type}


@dataclass
class DeviceFoundEvent(Event):
    """Fired when discovery sees a television for the first time."""

    event_type: str = field(default="founddevice", init=False)
    device: BraviaTv | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.event_type,
            "device_id": self.device.id if self.device else "",
            "host": self.device.host if self.device else "",
        }


@dataclass
class DeviceLostEvent(Event):
    """Fired when a television stops answering discovery."""

    event_type: str = field(default="lostdevice", init=False)
    device: BraviaTv | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.event_type,
            "device_id": self.device.id if self.device else "",
            "host": self.device.host if self.device else "",
        }


@dataclass
class TvNotificationEvent(Event):
    """A state change pushed by a television (event_type is the event name)."""

    device_id: str = ""
    value: Any = None

    def to_dict(self) -> dict[str, Any]:
        value = self.value
        if hasattr(value, "_asdict"):
            value = value._asdict()
        return {
            "type": self.event_type,
            "device_id": self.device_id,
            "value": value,
        }


class EventBus:
    """
    Simple async pub/sub event bus.

    Supports:
    - Multiple handlers per event type
    - Global wildcard subscriptions ("*")
    - Async handlers
    - Error isolation (one handler failing doesn't affect others)
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = {}
        self._lock = asyncio.Lock()

    async def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """
        Subscribe to events of a specific type.

        Args:
            event_type: Event type to subscribe to, or "*" for all events.
            handler: Async function to call when event is published.
        """
        async with self._lock:
            if event_type not in self._handlers:
                self._handlers[event_type] = []
            self._handlers[event_type].append(handler)
            logger.debug("Subscribed to %s: %s", event_type, handler)

    async def unsubscribe(self, event_type: str, handler: EventHandler) -> bool:
        """
        Unsubscribe a handler from an event type.

        Returns True if handler was found and removed.
        """
        async with self._lock:
            if event_type in self._handlers:
                try:
                    self._handlers[event_type].remove(handler)
                    logger.debug("Unsubscribed from %s: %s", event_type, handler)
                    return True
                except ValueError:
                    pass
            return False

    async def publish(self, event: Event) -> int:
        """
        Publish an event to all subscribed handlers.

        Args:
            event: The event to publish.

        Returns:
            Number of handlers that received the event.
        """
        event_type = event.event_type
        handlers_called = 0

        # Collect matching handlers
        async with self._lock:
            matching_handlers: list[EventHandler] = list(self._handlers.get(event_type, []))
            if event_type != "*":
                matching_handlers.extend(self._handlers.get("*", []))

        # Call handlers outside of lock
        for handler in matching_handlers:
            try:
                await handler(event)
                handlers_called += 1
            except Exception as e:
                logger.exception("Error in event handler for %s: %s", event_type, e)

        if handlers_called > 0:
            logger.debug("Published %s to %d handlers", event_type, handlers_called)

        return handlers_called

    async def clear(self) -> None:
        """Remove all subscriptions."""
        async with self._lock:
            self._handlers.clear()
            logger.debug("Cleared all event subscriptions")

    def handler_count(self, event_type: str) -> int:
        """Number of handlers subscribed to exactly this event type."""
        return len(self._handlers.get(event_type, []))
