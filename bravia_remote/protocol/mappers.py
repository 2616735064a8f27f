"""
Value mappers for Bravia command parameters.

A mapper translates between a Python value and the 16-character wire
parameter of one command. Stateless built-ins cover the common types
(boolean, numeric, '#'-padded strings); the remaining mappers implement
the composite formats used by individual commands.

    mapper.encode(value) -> 16-char parameter
    mapper.decode(parameter) -> value

Encoders never pad or truncate silently: a value that does not fit the
grammar raises EncodingError.
"""

import re
from collections.abc import Mapping, Sequence
from enum import Enum, IntEnum
from typing import Any, NamedTuple

from bravia_remote.protocol.errors import DecodingError, EncodingError
from bravia_remote.protocol.frames import PARAMETER_LENGTH, POWER_OFF, POWER_ON

MAX_NUMERIC = 10**PARAMETER_LENGTH - 1


class InputType(IntEnum):
    """Input terminal types, by their wire ordinal."""

    TV = 0
    HDMI = 1
    SCART = 2
    COMPOSITE = 3
    COMPONENT = 4
    MIRRORING = 5
    PC_RGB = 6

    @property
    def label(self) -> str:
        """Name used in input strings such as 'hdmi2' or 'pc-rgb1'."""
        return self.name.lower().replace("_", "-")

    @classmethod
    def from_label(cls, label: str) -> "InputType":
        return cls[label.upper().replace("-", "_")]


class InputSource(str, Enum):
    """Broadcast input sources accepted by ISRC."""

    DVBT = "dvbt"
    DVBC = "dvbc"
    DVBS = "dvbs"
    ISDBT = "isdbt"
    ISDBBS = "isdbbs"
    ISDBCS = "isdbcs"
    ANTENNA = "antenna"
    CABLE = "cable"
    ISDBGT = "isdbgt"


class SceneSetting(str, Enum):
    """Picture scene settings accepted by SCEN."""

    AUTO = "auto"
    AUTO_24P_SYNC = "auto24pSync"
    GENERAL = "general"


class Channel(NamedTuple):
    """A major.minor channel number."""

    channel: int
    subchannel: int

    def __str__(self) -> str:
        return f"{self.channel}.{self.subchannel}"


class TripletChannel(NamedTuple):
    """A DVB triplet (original network id, transport stream id, service id)."""

    original_network_id: int
    transport_stream_id: int
    service_id: int

    def __str__(self) -> str:
        return ".".join(str(part) for part in self)


def is_true(value: Any) -> bool:
    """Interpret the loose truthy values accepted for boolean commands."""
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "on", "yes")
    if isinstance(value, bool):
        return value
    return value == 1


def _pad_right(text: str, fill: str = "#") -> str:
    if len(text) > PARAMETER_LENGTH:
        raise EncodingError(f"{text!r} is longer than {PARAMETER_LENGTH} characters")
    return text.ljust(PARAMETER_LENGTH, fill)


def _strip_fill(parameter: str) -> str:
    return parameter.rstrip("#")


def _parse_int(text: str, base: int = 10) -> int:
    try:
        return int(text, base)
    except ValueError:
        raise DecodingError(f"Not a number: {text!r}") from None


class ValueMapper:
    """Base mapper: identity in both directions."""

    name = "identity"

    def encode(self, value: Any) -> str:
        return str(value)

    def decode(self, parameter: str) -> Any:
        return parameter

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class BooleanMapper(ValueMapper):
    name = "boolean"

    def encode(self, value: Any) -> str:
        return POWER_ON if is_true(value) else POWER_OFF

    def decode(self, parameter: str) -> bool:
        return parameter == POWER_ON


class NumericMapper(ValueMapper):
    name = "numeric"

    def encode(self, value: Any) -> str:
        if isinstance(value, bool):
            raise EncodingError(f"Expected an integer, got {value!r}")
        try:
            number = int(value)
        except (TypeError, ValueError):
            raise EncodingError(f"Expected an integer, got {value!r}") from None
        if isinstance(value, float) and number != value:
            raise EncodingError(f"Expected an integer, got {value!r}")
        if not 0 <= number <= MAX_NUMERIC:
            raise EncodingError(f"{number} is outside 0..{MAX_NUMERIC}")
        return str(number).zfill(PARAMETER_LENGTH)

    def decode(self, parameter: str) -> int:
        return _parse_int(parameter)


class NetworkStringMapper(ValueMapper):
    """Left-justified text right-padded with '#'."""

    name = "network"

    def encode(self, value: Any) -> str:
        return _pad_right(str(value))

    def decode(self, parameter: str) -> str:
        return _strip_fill(parameter)


class EnumStringMapper(NetworkStringMapper):
    """'#'-padded text restricted to the values of an Enum."""

    def __init__(self, enum: type[Enum]) -> None:
        self.enum = enum
        self.name = enum.__name__

    def encode(self, value: Any) -> str:
        raw = value.value if isinstance(value, self.enum) else str(value)
        try:
            member = self.enum(raw)
        except ValueError:
            raise EncodingError(f"Unknown {self.enum.__name__}: {value!r}") from None
        return _pad_right(member.value)

    def decode(self, parameter: str) -> Enum:
        text = _strip_fill(parameter)
        try:
            return self.enum(text)
        except ValueError:
            raise DecodingError(f"Unknown {self.enum.__name__}: {text!r}") from None

    def __repr__(self) -> str:
        return f"EnumStringMapper({self.enum.__name__})"


class ChannelMapper(ValueMapper):
    """
    Major.minor channel numbers.

    The major number is left-padded to 8 digits, the minor number is
    written like a decimal fraction and right-padded with '0' to 7 digits:
    channel 12.3 becomes '00000012.3000000'.
    """

    name = "channel"

    MAJOR_WIDTH = 8
    MINOR_WIDTH = 7

    def _coerce(self, value: Any) -> tuple[int, int]:
        if isinstance(value, str):
            parts = re.split(r"[.-]", value.strip())
            if len(parts) != 2 or not all(part.isdigit() for part in parts):
                raise EncodingError(f"Invalid channel: {value!r}")
            return int(parts[0]), int(parts[1])
        if isinstance(value, Mapping):
            try:
                return int(value["channel"]), int(value["subchannel"])
            except (KeyError, TypeError, ValueError):
                raise EncodingError(f"Invalid channel: {value!r}") from None
        if isinstance(value, Sequence) and len(value) == 2:
            try:
                return int(value[0]), int(value[1])
            except (TypeError, ValueError):
                raise EncodingError(f"Invalid channel: {value!r}") from None
        raise EncodingError(f"Invalid channel: {value!r}")

    def encode(self, value: Any) -> str:
        major, minor = self._coerce(value)
        major_text = str(major)
        minor_text = str(minor)
        if major < 0 or minor < 0 or len(major_text) > self.MAJOR_WIDTH or len(minor_text) > self.MINOR_WIDTH:
            raise EncodingError(f"Channel out of range: {value!r}")
        return major_text.zfill(self.MAJOR_WIDTH) + "." + minor_text.ljust(self.MINOR_WIDTH, "0")

    def decode(self, parameter: str) -> Channel:
        major, sep, minor = parameter.partition(".")
        if not sep:
            raise DecodingError(f"Invalid channel parameter: {parameter!r}")
        minor = minor.rstrip("0") or "0"
        return Channel(_parse_int(major), _parse_int(minor))


class TripletChannelMapper(ValueMapper):
    """Three 16-bit numbers, hex encoded to 4 digits each, then '#'-padded."""

    name = "triplet"

    PATTERN = re.compile(r"([0-9A-Fa-f]{4})([0-9A-Fa-f]{4})([0-9A-Fa-f]{4})#{4}")

    def encode(self, value: Any) -> str:
        if isinstance(value, str):
            parts = value.strip().split(".")
        elif isinstance(value, Sequence):
            parts = list(value)
        else:
            raise EncodingError(f"Invalid triplet channel: {value!r}")

        if len(parts) != 3:
            raise EncodingError(f"Triplet channel needs three parts: {value!r}")

        try:
            numbers = [int(part) for part in parts]
        except (TypeError, ValueError):
            raise EncodingError(f"Invalid triplet channel: {value!r}") from None
        if any(not 0 <= n <= 0xFFFF for n in numbers):
            raise EncodingError(f"Triplet channel part out of range: {value!r}")

        return _pad_right("".join(f"{n:04x}" for n in numbers))

    def decode(self, parameter: str) -> TripletChannel:
        match = self.PATTERN.fullmatch(parameter)
        if match is None:
            raise DecodingError(f"Invalid triplet channel parameter: {parameter!r}")
        return TripletChannel(*(int(group, 16) for group in match.groups()))


class InputMapper(ValueMapper):
    """
    Input terminal strings such as 'tv', 'hdmi2' or 'component1'.

    Encoded as the input type ordinal (8 digits) followed by the
    terminal number (8 digits).
    """

    name = "input"

    WIDTH = 8
    PATTERN = re.compile(r"(hdmi|scart|composite|component|mirroring|pc-rgb)(\d{1,4})")

    def encode(self, value: Any) -> str:
        text = str(value).strip().lower()
        if text == "tv":
            return "0" * PARAMETER_LENGTH

        match = self.PATTERN.fullmatch(text)
        if match is None:
            raise EncodingError(f"Invalid input: {value!r}")

        kind, number = match.groups()
        ordinal = InputType.from_label(kind).value
        return str(ordinal).zfill(self.WIDTH) + number.zfill(self.WIDTH)

    def decode(self, parameter: str) -> str:
        ordinal = _parse_int(parameter[: self.WIDTH])
        number = _parse_int(parameter[self.WIDTH :])
        try:
            kind = InputType(ordinal)
        except ValueError:
            raise DecodingError(f"Unknown input type ordinal: {ordinal}") from None

        if kind is InputType.TV:
            return "tv"
        return f"{kind.label}{number}"


class IrCodeMapper(ValueMapper):
    """Names of remote-control buttons, sent as their index in a fixed list."""

    name = "ircode"

    def __init__(self, codes: Sequence[str]) -> None:
        self.codes = tuple(codes)
        # Later duplicates win
        self._index = {code: index for index, code in enumerate(self.codes)}

    def encode(self, value: Any) -> str:
        try:
            index = self._index[value]
        except (KeyError, TypeError):
            raise EncodingError(f"Unknown IR code: {value!r}") from None
        return str(index).zfill(PARAMETER_LENGTH)

    def decode(self, parameter: str) -> Any:
        raise DecodingError("IR codes are send-only")

    def __contains__(self, name: object) -> bool:
        return name in self._index

    def __repr__(self) -> str:
        return f"IrCodeMapper({len(self.codes)} codes)"


# Shared stateless instances
IDENTITY = ValueMapper()
BOOLEAN = BooleanMapper()
NUMERIC = NumericMapper()
NETWORK = NetworkStringMapper()
CHANNEL = ChannelMapper()
TRIPLET_CHANNEL = TripletChannelMapper()
INPUT = InputMapper()
INPUT_SOURCE = EnumStringMapper(InputSource)
SCENE_SETTING = EnumStringMapper(SceneSetting)

BUILTIN_MAPPERS: dict[str, ValueMapper] = {
    "identity": IDENTITY,
    "boolean": BOOLEAN,
    "numeric": NUMERIC,
    "network": NETWORK,
}
