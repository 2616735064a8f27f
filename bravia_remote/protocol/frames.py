"""
Frame codec for the Bravia Simple IP control protocol.

Every message on the wire is a fixed 24-byte ASCII line:

    *S  K  CCCC  PPPPPPPPPPPPPPPP  \\n
    |   |  |     |                 terminator
    |   |  |     parameter (16 chars)
    |   |  command code (4 uppercase letters)
    |   kind: C(ontrol), E(nquiry), A(nswer), N(otification)
    header

The client only ever sends Control and Enquiry frames and only ever
receives Answer and Notification frames. Anything else arriving on the
socket is treated as noise and dropped.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum

from bravia_remote.protocol.errors import EncodingError

logger = logging.getLogger(__name__)

HEADER = "*S"
FOOTER = "\n"

CODE_LENGTH = 4
PARAMETER_LENGTH = 16
FRAME_LENGTH = len(HEADER) + 1 + CODE_LENGTH + PARAMETER_LENGTH + len(FOOTER)

# Parameter sentinels
NO_PARAMETER = "#" * PARAMETER_LENGTH
SUCCESS = "0" * PARAMETER_LENGTH
GENERIC_FAILURE = "F" * PARAMETER_LENGTH
NO_SUCH_THING_FAILURE = "N" * PARAMETER_LENGTH
POWER_OFF = "0" * PARAMETER_LENGTH
POWER_ON = "0" * (PARAMETER_LENGTH - 1) + "1"

# Unterminated garbage beyond this size is discarded by FrameDecoder
MAX_BUFFER_SIZE = 4096

CODE_PATTERN = re.compile(r"[A-Z]{4}")
INBOUND_PATTERN = re.compile(r"\*S([AN])([A-Z]{4})(.{16})\n")


class MessageKind(Enum):
    """Frame kind character."""

    CONTROL = "C"
    ENQUIRY = "E"
    ANSWER = "A"
    NOTIFICATION = "N"


@dataclass(frozen=True)
class Frame:
    """One decoded protocol frame."""

    kind: MessageKind
    code: str
    parameter: str

    def encode(self) -> bytes:
        """Serialize this frame back to wire bytes."""
        return encode_frame(self.kind, self.code, self.parameter)


def is_valid_code(code: str) -> bool:
    """Check that a command code is exactly four uppercase ASCII letters."""
    return isinstance(code, str) and CODE_PATTERN.fullmatch(code) is not None


def encode_frame(kind: MessageKind, code: str, parameter: str) -> bytes:
    """
    Build the wire bytes for a frame.

    The codec does not pad: the parameter must already be exactly 16
    characters (value mappers are responsible for padding).

    Args:
        kind: Frame kind.
        code: 4-character uppercase command code.
        parameter: 16-character parameter.

    Returns:
        The 24-byte frame.

    Raises:
        EncodingError: If the code or parameter has the wrong shape.
    """
    if not is_valid_code(code):
        raise EncodingError(f"Command code must be 4 uppercase letters, got {code!r}")
    if not isinstance(parameter, str) or len(parameter) != PARAMETER_LENGTH:
        raise EncodingError(
            f"Parameter must be exactly {PARAMETER_LENGTH} characters, got {parameter!r}"
        )
    if "\n" in parameter or not parameter.isascii():
        raise EncodingError(f"Parameter must be printable ASCII, got {parameter!r}")

    return f"{HEADER}{kind.value}{code}{parameter}{FOOTER}".encode("ascii")


def decode_frame(data: bytes | str) -> Frame | None:
    """
    Find the first inbound frame in a chunk of data.

    Only Answer and Notification frames are recognized. Partial or
    malformed data yields None rather than an error.
    """
    if isinstance(data, bytes):
        # latin-1 maps every byte to exactly one character
        data = data.decode("latin-1")

    match = INBOUND_PATTERN.search(data)
    if match is None:
        return None

    kind, code, parameter = match.groups()
    return Frame(kind=MessageKind(kind), code=code, parameter=parameter)


class FrameDecoder:
    """
    Incremental decoder for a raw byte stream.

    A single read may carry zero, one or several frames, or end in the
    middle of one. Complete lines are decoded; the tail is kept until
    the rest of it arrives.
    """

    def __init__(self) -> None:
        self._buffer = b""

    def feed(self, chunk: bytes) -> list[Frame]:
        """Add bytes to the buffer and return every complete frame."""
        self._buffer += chunk
        frames: list[Frame] = []

        while True:
            newline = self._buffer.find(b"\n")
            if newline < 0:
                break

            line = self._buffer[: newline + 1]
            self._buffer = self._buffer[newline + 1 :]

            frame = decode_frame(line)
            if frame is not None:
                frames.append(frame)
            elif logger.isEnabledFor(logging.DEBUG):
                logger.debug("Dropping unparseable line: %r", line)

        if len(self._buffer) > MAX_BUFFER_SIZE:
            logger.debug("Discarding %d bytes of unterminated data", len(self._buffer))
            self._buffer = b""

        return frames

    def reset(self) -> None:
        """Forget any buffered partial frame."""
        self._buffer = b""
