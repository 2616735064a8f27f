"""
Control connection to a Bravia television.

The television listens for the Simple IP control protocol on TCP port
20060. One persistent connection carries both directions: our Control and
Enquiry frames out, Answer and Notification frames in.

All inbound bytes are decoded once by a single reader task and published
on the connection's FrameStream. Everything that wants to observe frames
(the correlator waiting for an answer, the notification dispatcher)
subscribes to that one stream; nothing else reads the socket.
"""

import asyncio
import logging
from typing import Callable

from bravia_remote.protocol.errors import NotConnected, TransportError
from bravia_remote.protocol.frames import Frame, FrameDecoder

logger = logging.getLogger(__name__)

# TCP port of the Simple IP control service
CONTROL_PORT = 20060

READ_CHUNK_SIZE = 1024

FrameCallback = Callable[[Frame], None]
CloseCallback = Callable[[BaseException], None]


class Subscription:
    """Handle for one FrameStream subscriber."""

    def __init__(
        self,
        stream: "FrameStream",
        on_frame: FrameCallback,
        on_close: CloseCallback | None,
    ) -> None:
        self._stream = stream
        self.on_frame = on_frame
        self.on_close = on_close
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        """Stop receiving frames. Safe to call more than once."""
        if not self._active:
            return
        self._active = False
        self._stream._remove(self)


class FrameStream:
    """
    Broadcast channel of inbound frames for one connection.

    Subscribers are plain callbacks invoked in subscription order for every
    frame, in the order frames were received. A subscriber may cancel its
    own subscription from inside its callback.
    """

    def __init__(self) -> None:
        self._subscribers: list[Subscription] = []
        self._close_exc: BaseException | None = None

    @property
    def closed(self) -> bool:
        return self._close_exc is not None

    def subscribe(
        self,
        on_frame: FrameCallback,
        on_close: CloseCallback | None = None,
    ) -> Subscription:
        """
        Register a subscriber.

        Raises:
            BraviaError: The exception the stream was closed with, if any.
        """
        exc = self._close_exc
        if exc is not None:
            raise type(exc)(str(exc)) from exc

        subscription = Subscription(self, on_frame, on_close)
        self._subscribers.append(subscription)
        return subscription

    def publish(self, frame: Frame) -> None:
        """Deliver a frame to every active subscriber."""
        for subscription in list(self._subscribers):
            if not subscription.active:
                continue
            try:
                subscription.on_frame(frame)
            except Exception as e:
                logger.exception("Frame subscriber failed on %s: %s", frame.code, e)

    def close(self, exc: BaseException) -> None:
        """
        End the stream.

        Every subscriber's on_close is called once with exc; later
        subscriptions are rejected with it.
        """
        if self._close_exc is not None:
            return
        self._close_exc = exc

        subscribers = self._subscribers
        self._subscribers = []
        for subscription in subscribers:
            subscription._active = False
            if subscription.on_close is None:
                continue
            try:
                subscription.on_close(exc)
            except Exception as e:
                logger.exception("Frame subscriber failed on close: %s", e)

    def _remove(self, subscription: Subscription) -> None:
        try:
            self._subscribers.remove(subscription)
        except ValueError:
            pass

    def __len__(self) -> int:
        return len(self._subscribers)


class TvConnection:
    """
    Persistent TCP connection to one television.

    If the television hangs up (or a read or write fails) the current
    FrameStream is closed with a TransportError and the socket is dropped.
    The next open() or send() dials again and starts a fresh FrameStream.
    Only close() is final.

    Attributes:
        host: Television IP address or hostname.
        port: Control port (default 20060).
        frames: Stream of decoded inbound frames.
    """

    def __init__(self, host: str, port: int = CONTROL_PORT) -> None:
        self.host = host
        self.port = port
        self.frames = FrameStream()

        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._read_task: asyncio.Task[None] | None = None
        self._open_lock = asyncio.Lock()
        self._closed = False

    @property
    def is_open(self) -> bool:
        return self._writer is not None and not self._closed

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def open(self) -> None:
        """
        Open the socket and start the reader task.

        Raises:
            NotConnected: If the connection was already closed.
            TransportError: If the television can't be reached.
        """
        async with self._open_lock:
            if self._closed:
                raise NotConnected(f"Connection to {self.host} is closed")
            if self._writer is not None:
                return

            try:
                reader, writer = await asyncio.open_connection(self.host, self.port)
            except OSError as e:
                raise TransportError(f"Could not connect to {self.host}:{self.port}: {e}") from e

            # close() may have run while we were dialing
            if self._closed:
                writer.close()
                raise NotConnected(f"Connection to {self.host} was closed while connecting")

            if self.frames.closed:
                self.frames = FrameStream()
            self._reader, self._writer = reader, writer
            self._read_task = asyncio.create_task(self._read_loop(reader))
            logger.info("Connected to %s:%d", self.host, self.port)

    async def send(self, data: bytes) -> None:
        """
        Write one frame, opening the connection first if needed.

        Raises:
            NotConnected: If the connection was closed.
            TransportError: If the write fails.
        """
        if self._closed:
            raise NotConnected(f"Connection to {self.host} is closed")
        if self._writer is None:
            await self.open()

        writer = self._writer
        if writer is None or self._closed:
            raise NotConnected(f"Connection to {self.host} is closed")

        try:
            writer.write(data)
            await writer.drain()
        except (ConnectionError, OSError) as e:
            logger.warning("Failed to send to %s: %s", self.host, e)
            error = TransportError(f"Write to {self.host} failed: {e}")
            self._drop(error)
            raise error from e

        logger.debug("Sent %r to %s", data, self.host)

    async def close(self) -> None:
        """Close the connection. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True

        self.frames.close(NotConnected(f"Connection to {self.host} was closed"))

        if self._read_task is not None:
            self._read_task.cancel()
            try:
                await self._read_task
            except asyncio.CancelledError:
                pass
            self._read_task = None

        if self._writer is not None:
            try:
                self._writer.close()
                await self._writer.wait_closed()
            except (ConnectionError, OSError):
                pass  # Already gone
            self._writer = None
            self._reader = None

        logger.info("Disconnected from %s:%d", self.host, self.port)

    async def _read_loop(self, reader: asyncio.StreamReader) -> None:
        """Read raw bytes and publish every complete frame."""
        decoder = FrameDecoder()
        try:
            while True:
                chunk = await reader.read(READ_CHUNK_SIZE)
                if not chunk:
                    logger.info("Connection to %s closed by device", self.host)
                    self._drop(TransportError(f"Connection to {self.host} closed by device"))
                    break

                for frame in decoder.feed(chunk):
                    self.frames.publish(frame)
        except (ConnectionError, OSError) as e:
            logger.warning("Read from %s failed: %s", self.host, e)
            self._drop(TransportError(f"Read from {self.host} failed: {e}"))

    def _drop(self, error: TransportError) -> None:
        """Forget a broken socket and end the current FrameStream with error."""
        writer = self._writer
        self._reader = None
        self._writer = None
        if self._read_task is not None and self._read_task is not asyncio.current_task():
            self._read_task.cancel()
        self._read_task = None

        if writer is not None:
            writer.close()
        self.frames.close(error)

    def __repr__(self) -> str:
        return f"TvConnection(host={self.host!r}, port={self.port}, open={self.is_open})"
