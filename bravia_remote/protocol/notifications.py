"""
Notification dispatch.

Televisions push Notification frames whenever state changes on the set
itself (remote control, front panel). The dispatcher holds one standing
subscription on the connection's FrameStream, turns every Notification
with a known code into a named event, and hands it to a publish
coroutine. Unknown codes are ignored so newer firmware can't break us.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable

from bravia_remote.protocol.commands import CommandRegistry
from bravia_remote.protocol.connection import FrameStream, Subscription
from bravia_remote.protocol.errors import DecodingError
from bravia_remote.protocol.frames import Frame, MessageKind

logger = logging.getLogger(__name__)

Publisher = Callable[[str, Any], Awaitable[None]]


def dispatch(frame: Frame, registry: CommandRegistry) -> tuple[str, Any] | None:
    """
    Map one frame to an (event name, value) pair.

    Returns None for non-notification frames and unknown codes.

    Raises:
        DecodingError: If the parameter doesn't decode.
    """
    if frame.kind is not MessageKind.NOTIFICATION:
        return None

    event_name = registry.event_name(frame.code)
    if event_name is None:
        return None

    descriptor = registry[frame.code]
    return event_name, descriptor.mapper.decode(frame.parameter)


class NotificationDispatcher:
    """
    Standing consumer of Notification frames.

    Frames are queued by the stream callback and published in order by a
    background task, so slow event handlers never stall the reader.
    """

    def __init__(
        self,
        frames: FrameStream,
        registry: CommandRegistry,
        publish: Publisher,
    ) -> None:
        self._frames = frames
        self._registry = registry
        self._publish = publish
        self._queue: asyncio.Queue[Frame | None] = asyncio.Queue()
        self._subscription: Subscription | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Subscribe to the stream and start publishing events."""
        if self._subscription is not None:
            return

        self._subscription = self._frames.subscribe(self._on_frame, self._on_close)
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Unsubscribe and stop the publishing task. Safe to call more than once."""
        if self._subscription is not None:
            self._subscription.cancel()

        task = self._task
        self._task = None
        if task is None:
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def _on_frame(self, frame: Frame) -> None:
        if frame.kind is MessageKind.NOTIFICATION:
            self._queue.put_nowait(frame)

    def _on_close(self, exc: BaseException) -> None:
        logger.debug("Notification stream closed: %s", exc)
        self._queue.put_nowait(None)

    async def _run(self) -> None:
        while True:
            frame = await self._queue.get()
            if frame is None:
                break

            try:
                event = dispatch(frame, self._registry)
            except DecodingError as e:
                logger.warning("Dropping notification %s: %s", frame.code, e)
                continue

            if event is None:
                logger.debug("Ignoring notification for unknown code %s", frame.code)
                continue

            name, value = event
            try:
                await self._publish(name, value)
            except Exception as e:
                logger.exception("Error publishing %s: %s", name, e)
