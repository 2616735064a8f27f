"""
Exception types for the Bravia control protocol.

Errors fall into four groups:
- Local encoding problems (the caller passed a value the wire format can't carry)
- Failures reported by the television itself (answer frames of all 'F' or 'N')
- Connection state problems (closed connection, transport failures)
- Static configuration problems (a malformed command table)
"""


class BraviaError(Exception):
    """Base exception for everything raised by bravia_remote."""

    pass


class EncodingError(BraviaError, ValueError):
    """A value does not fit the wire grammar of its mapper or frame field."""

    pass


class DecodingError(BraviaError, ValueError):
    """A parameter received from the device could not be decoded."""

    pass


class DeviceError(BraviaError):
    """The device answered a command with a failure code."""

    def __init__(self, code: str, message: str | None = None) -> None:
        self.code = code
        super().__init__(message or f"{code}: {self.__class__.__name__}")


class GenericFailure(DeviceError):
    """The device answered with the generic failure parameter (16 x 'F')."""

    def __init__(self, code: str) -> None:
        super().__init__(code, f"Device reported a failure for {code}")


class NoSuchThing(DeviceError):
    """The device has no such thing to get or set (16 x 'N')."""

    def __init__(self, code: str) -> None:
        super().__init__(code, f"Device has no such thing for {code}")


class NotConnected(BraviaError):
    """An operation was attempted on a disconnected device."""

    pass


class TransportError(BraviaError, ConnectionError):
    """The underlying connection failed while a command was in flight."""

    pass


class ResponseTimeout(TransportError):
    """No answer arrived within the configured response timeout."""

    pass


class CommandTableError(BraviaError):
    """The static command table is malformed."""

    pass


class UnsupportedOperation(BraviaError):
    """The requested operation is not offered by this accessor."""

    pass
