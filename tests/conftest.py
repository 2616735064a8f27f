"""
Shared test helpers.

FakeConnection stands in for TvConnection: it records written frames and
lets a test push Answer and Notification frames onto its FrameStream as if
the television had sent them.
"""

from __future__ import annotations

import asyncio

import pytest

from bravia_remote.protocol.connection import FrameStream
from bravia_remote.protocol.errors import NotConnected, TransportError
from bravia_remote.protocol.frames import Frame, MessageKind


class FakeConnection:
    """In-memory replacement for TvConnection."""

    def __init__(self, answers: dict[str, str] | None = None) -> None:
        self.frames = FrameStream()
        self.sent: list[bytes] = []
        self.open_count = 0
        self.closed = False
        # code -> parameter answered automatically right after each write
        self.answers = dict(answers or {})

    async def open(self) -> None:
        if self.closed:
            raise NotConnected("closed")
        if self.frames.closed:
            self.frames = FrameStream()
        self.open_count += 1

    async def send(self, data: bytes) -> None:
        if self.closed:
            raise NotConnected("closed")
        self.sent.append(data)

        code = data[3:7].decode("ascii")
        if code in self.answers:
            parameter = self.answers[code]
            asyncio.get_running_loop().call_soon(self.answer, code, parameter)

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.frames.close(NotConnected("closed"))

    def hang_up(self) -> None:
        """End the current stream the way a television dropping the socket does."""
        self.frames.close(TransportError("closed by device"))

    def answer(self, code: str, parameter: str) -> None:
        self.frames.publish(Frame(MessageKind.ANSWER, code, parameter))

    def notify(self, code: str, parameter: str) -> None:
        self.frames.publish(Frame(MessageKind.NOTIFICATION, code, parameter))


async def wait_for_sent(connection: FakeConnection, count: int) -> None:
    """Let the event loop run until `count` frames have been written."""
    for _ in range(100):
        if len(connection.sent) >= count:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"expected {count} frames, got {len(connection.sent)}")


async def settle() -> None:
    """Give background tasks a few loop iterations."""
    for _ in range(10):
        await asyncio.sleep(0)


@pytest.fixture
def connection() -> FakeConnection:
    """A fake television connection with no automatic answers."""
    return FakeConnection()
