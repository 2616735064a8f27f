"""
Request/answer correlation over a shared frame stream.

The protocol has no request ids. An answer is recognized only by its kind
(Answer) and its command code, so the correlator sends a frame and then
takes the first Answer frame with the same code that appears on the
connection's FrameStream:

    send ──► subscribe ──► write frame ──► first matching Answer ──► unsubscribe

With two requests for the same code in flight, the first observer would
take whichever answer arrives first, even the one meant for the second
request. By default requests are therefore serialized per command code:
a second request for a code is not written until the first has resolved.
Requests for different codes still overlap freely.
"""

import asyncio
import logging
from typing import Any, Callable, Protocol

from bravia_remote.protocol.connection import FrameStream
from bravia_remote.protocol.errors import GenericFailure, NoSuchThing, ResponseTimeout
from bravia_remote.protocol.frames import (
    GENERIC_FAILURE,
    NO_SUCH_THING_FAILURE,
    Frame,
    MessageKind,
    encode_frame,
)

logger = logging.getLogger(__name__)

Decoder = Callable[[str], Any]


class FrameSink(Protocol):
    """Anything frames can be written to."""

    async def send(self, data: bytes) -> None: ...


class Correlator:
    """
    Sends commands and resolves them with their answers.

    Attributes:
        serialize: Whether requests sharing a command code wait for each
            other. Disabling this restores the raw take-first behavior.
        timeout: Optional seconds to wait for an answer.
    """

    def __init__(
        self,
        sink: FrameSink,
        frames: FrameStream,
        *,
        serialize: bool = True,
        timeout: float | None = None,
    ) -> None:
        self._sink = sink
        self._frames = frames
        self.serialize = serialize
        self.timeout = timeout
        self._locks: dict[str, asyncio.Lock] = {}

    async def send(
        self,
        code: str,
        kind: MessageKind,
        parameter: str,
        decoder: Decoder | None = None,
    ) -> Any:
        """
        Send one frame and wait for its answer.

        Args:
            code: 4-character command code.
            kind: CONTROL or ENQUIRY.
            parameter: 16-character parameter.
            decoder: Converts the answer parameter; without one the call
                resolves to None.

        Returns:
            The decoded answer, or None.

        Raises:
            EncodingError: If the frame can't be built.
            GenericFailure: If the device answered with 16 x 'F'.
            NoSuchThing: If the device answered with 16 x 'N'.
            NotConnected: If the connection is closed.
            TransportError: If the write fails or the stream ends.
            ResponseTimeout: If a timeout is set and no answer arrives.
        """
        data = encode_frame(kind, code, parameter)

        if not self.serialize:
            answer = await self._exchange(code, data)
        else:
            lock = self._locks.setdefault(code, asyncio.Lock())
            async with lock:
                answer = await self._exchange(code, data)

        if answer == GENERIC_FAILURE:
            raise GenericFailure(code)
        if answer == NO_SUCH_THING_FAILURE:
            raise NoSuchThing(code)

        if decoder is None:
            return None
        return decoder(answer)

    async def _exchange(self, code: str, data: bytes) -> str:
        """Write data and return the parameter of the first matching answer."""
        loop = asyncio.get_running_loop()
        answer: asyncio.Future[str] = loop.create_future()

        def on_frame(frame: Frame) -> None:
            if answer.done():
                return
            if frame.kind is MessageKind.ANSWER and frame.code == code:
                answer.set_result(frame.parameter)
                subscription.cancel()

        def on_close(exc: BaseException) -> None:
            if not answer.done():
                answer.set_exception(exc)

        # Subscribe before writing so a fast answer can't be missed
        subscription = self._frames.subscribe(on_frame, on_close)
        try:
            await self._sink.send(data)
            logger.debug("Awaiting answer for %s", code)

            if self.timeout is None:
                return await answer
            try:
                return await asyncio.wait_for(answer, self.timeout)
            except asyncio.TimeoutError:
                raise ResponseTimeout(f"No answer for {code} within {self.timeout}s") from None
        finally:
            subscription.cancel()
            if not answer.done():
                answer.cancel()
            elif not answer.cancelled():
                # Mark a close error as retrieved when the write already failed
                answer.exception()

    def in_flight(self, code: str) -> bool:
        """Check whether a serialized request for code is outstanding."""
        lock = self._locks.get(code)
        return lock is not None and lock.locked()
