"""
Command registry for Bravia televisions.

The registry is built once from a static table. Each row names a 4-letter
command code, a behavior kind, the name the command is exposed under on a
device, and the mapper that converts its parameter:

    property  get (Enquiry) and set (Control)
    toggle    toggle (Control with the no-value parameter)
    readonly  get (Enquiry)
    action    a custom operation supplied with the row (the IR sender)

Rows that share an exposed name are merged into one accessor, so POWR
(property) and TPOW (toggle) together give `is_on` a get, a set and a
toggle. The table is validated when the registry is constructed; a bad
row stops the import of this module.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Iterable, Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Callable

from bravia_remote.protocol.errors import CommandTableError
from bravia_remote.protocol.frames import MessageKind, is_valid_code
from bravia_remote.protocol.mappers import (
    BUILTIN_MAPPERS,
    CHANNEL,
    IDENTITY,
    INPUT,
    INPUT_SOURCE,
    SCENE_SETTING,
    TRIPLET_CHANNEL,
    IrCodeMapper,
    ValueMapper,
)

if TYPE_CHECKING:
    from bravia_remote.protocol.correlator import Correlator

logger = logging.getLogger(__name__)


class CommandKind(Enum):
    """Behavior kind of a command."""

    PROPERTY = "property"
    TOGGLE = "toggle"
    READONLY = "readonly"
    ACTION = "action"


class Operation(Enum):
    """Operations a device accessor can offer."""

    GET = "get"
    SET = "set"
    TOGGLE = "toggle"
    INVOKE = "invoke"


KIND_OPERATIONS: dict[CommandKind, tuple[Operation, ...]] = {
    CommandKind.PROPERTY: (Operation.GET, Operation.SET),
    CommandKind.TOGGLE: (Operation.TOGGLE,),
    CommandKind.READONLY: (Operation.GET,),
    CommandKind.ACTION: (Operation.INVOKE,),
}


class ControlAction:
    """
    Action that sends its argument as a Control frame.

    The argument is encoded with the action's mapper; the answer carries
    no value.
    """

    def __init__(self, mapper: ValueMapper) -> None:
        self.mapper = mapper

    async def __call__(self, correlator: Correlator, code: str, value: Any) -> None:
        await correlator.send(code, MessageKind.CONTROL, self.mapper.encode(value))


ActionHandler = Callable[["Correlator", str, Any], Awaitable[Any]]

# (code, kind, exposed name, builtin mapper name | mapper | action)
CommandRow = tuple[str, CommandKind, str, "str | ValueMapper | ControlAction | None"]


@dataclass(frozen=True)
class CommandDescriptor:
    """Static description of one command code."""

    code: str
    kind: CommandKind
    name: str
    mapper: ValueMapper = IDENTITY
    event_name: str | None = None
    action: ActionHandler | None = None

    @property
    def operations(self) -> tuple[Operation, ...]:
        return KIND_OPERATIONS[self.kind]


class CommandRegistry:
    """
    Read-only lookup of command descriptors.

    Lookups by code are dictionary lookups. The derived device surface
    maps each exposed name to the descriptor that implements each of its
    operations.
    """

    def __init__(
        self,
        rows: Iterable[CommandRow],
        events: Mapping[str, str] | None = None,
    ) -> None:
        """
        Build and validate the registry.

        Args:
            rows: Command table rows.
            events: Mapping of notification code to event name.

        Raises:
            CommandTableError: On malformed codes, duplicate codes, unknown
                mappers, clashing operations, or events for unknown codes.
        """
        events = dict(events or {})
        by_code: dict[str, CommandDescriptor] = {}
        surface: dict[str, dict[Operation, CommandDescriptor]] = {}

        for row in rows:
            descriptor = self._build_descriptor(row, events)

            if descriptor.code in by_code:
                raise CommandTableError(f"Duplicate command code: {descriptor.code}")
            by_code[descriptor.code] = descriptor

            operations = surface.setdefault(descriptor.name, {})
            for operation in descriptor.operations:
                if operation in operations:
                    raise CommandTableError(
                        f"{descriptor.name}.{operation.value} is defined by both "
                        f"{operations[operation].code} and {descriptor.code}"
                    )
                operations[operation] = descriptor

        for code in events:
            if code not in by_code:
                raise CommandTableError(f"Event defined for unknown command code: {code!r}")

        self._by_code = MappingProxyType(by_code)
        self._surface = MappingProxyType(
            {name: MappingProxyType(ops) for name, ops in surface.items()}
        )
        self._events = MappingProxyType(events)

        logger.debug(
            "Command registry built: %d commands, %d accessors, %d events",
            len(by_code),
            len(surface),
            len(events),
        )

    @staticmethod
    def _build_descriptor(row: CommandRow, events: Mapping[str, str]) -> CommandDescriptor:
        try:
            code, kind, name, kind_data = row
        except (TypeError, ValueError):
            raise CommandTableError(f"Malformed command row: {row!r}") from None

        if not is_valid_code(code):
            raise CommandTableError(f"Command code must be 4 uppercase letters: {code!r}")
        if not isinstance(kind, CommandKind):
            raise CommandTableError(f"{code}: unknown command kind {kind!r}")
        if not name or not name.isidentifier():
            raise CommandTableError(f"{code}: exposed name must be an identifier, got {name!r}")

        action: ActionHandler | None = None
        if kind is CommandKind.ACTION:
            if not callable(kind_data):
                raise CommandTableError(f"{code}: action rows need an implementation")
            action = kind_data
            mapper = getattr(kind_data, "mapper", IDENTITY)
        elif kind_data is None:
            mapper = IDENTITY
        elif isinstance(kind_data, str):
            if kind_data not in BUILTIN_MAPPERS:
                raise CommandTableError(f"{code}: unknown mapper type {kind_data!r}")
            mapper = BUILTIN_MAPPERS[kind_data]
        elif isinstance(kind_data, ValueMapper):
            mapper = kind_data
        else:
            raise CommandTableError(f"{code}: invalid mapper {kind_data!r}")

        return CommandDescriptor(
            code=code,
            kind=kind,
            name=name,
            mapper=mapper,
            event_name=events.get(code),
            action=action,
        )

    def get(self, code: str) -> CommandDescriptor | None:
        """Look up a descriptor by command code."""
        return self._by_code.get(code)

    def __getitem__(self, code: str) -> CommandDescriptor:
        return self._by_code[code]

    def event_name(self, code: str) -> str | None:
        """Get the event name for a notification code, if it has one."""
        return self._events.get(code)

    @property
    def events(self) -> Mapping[str, str]:
        return self._events

    @property
    def surface(self) -> Mapping[str, Mapping[Operation, CommandDescriptor]]:
        """Exposed name -> operation -> descriptor."""
        return self._surface

    def __contains__(self, code: object) -> bool:
        return code in self._by_code

    def __iter__(self) -> Iterator[CommandDescriptor]:
        return iter(self._by_code.values())

    def __len__(self) -> int:
        return len(self._by_code)


# Remote-control button names; the wire value is the position in this list.
IR_CODES: tuple[str, ...] = (
    "power_off", "input", "gguide", "epg", "favorites", "display", "home",
    "options", "return", "up", "down", "right", "left", "confirm", "red",
    "green", "yellow", "blue", "num1", "num2", "num3", "num4", "num5", "num6",
    "num7", "num8", "num9", "num0", "num11", "num12", "volume_up",
    "volume_down", "mute", "channel_up", "channel_down", "subtitle",
    "closed_caption", "enter", "dot", "analog", "teletext", "exit", "analog",
    "*ad", "digital", "analog?", "bs", "cs", "bs-cs", "ddata", "pic_off",
    "tv_radio", "theater", "sen", "internet_widgets", "internet_video",
    "netflix", "scene_select", "mode3d", "imanual", "audio", "wide", "jump",
    "pap", "myepg", "program_description", "write_chapter", "trackid",
    "ten_key", "applicast", "actvila", "delete_video", "photo_frame",
    "tv_pause", "key_pad", "media", "sync_menu", "forward", "play", "rewind",
    "previous", "stop", "next", "record", "pause", "eject", "flash_plus",
    "flash_minus", "top_menu", "popup_menu", "rakuraku_start",
    "one_touch_time_rec", "one_touch_view", "one_touch_rec", "one_touch_stop",
    "discovery", "football_mode", "social", "tv_power", "media_audio_track",
    "tv", "tv_input", "tv_antenna_cable", "wake_up", "sleep", "sleep_timer",
    "tv_analog", "video_1", "video_2", "analog_rgb_1", "picture_mode",
    "component_1", "component_2", "dpad_center", "cursor_up", "cursor_down",
    "cursor_left", "cursor_right", "shop_remote_control_forced_dynamic",
    "demo_mode", "digital_toggle", "demo_surround", "audio_mix_up",
    "audio_mix_down", "hdmi_1", "hdmi_2", "hdmi_3", "hdmi_4", "assists",
    "action_menu", "help", "tv_satellite", "wireless_subwoofer",
)

IR_CODE = IrCodeMapper(IR_CODES)

COMMAND_TABLE: tuple[CommandRow, ...] = (
    ("IRCC", CommandKind.ACTION, "send_ir_code", ControlAction(IR_CODE)),
    ("POWR", CommandKind.PROPERTY, "is_on", "boolean"),
    ("TPOW", CommandKind.TOGGLE, "is_on", None),
    ("VOLU", CommandKind.PROPERTY, "volume", "numeric"),
    ("AMUT", CommandKind.PROPERTY, "is_muted", "boolean"),
    ("CHNN", CommandKind.PROPERTY, "channel", CHANNEL),
    ("TCHN", CommandKind.PROPERTY, "triplet_channel", TRIPLET_CHANNEL),
    ("ISRC", CommandKind.PROPERTY, "input_source", INPUT_SOURCE),
    ("INPT", CommandKind.PROPERTY, "input", INPUT),
    ("PMUT", CommandKind.PROPERTY, "is_picture_muted", "boolean"),
    ("TPMU", CommandKind.TOGGLE, "is_picture_muted", None),
    ("PIPI", CommandKind.PROPERTY, "is_pip_enabled", "boolean"),
    ("TPIP", CommandKind.TOGGLE, "is_pip_enabled", None),
    ("TPPP", CommandKind.TOGGLE, "pip_position", None),
    ("BADR", CommandKind.READONLY, "broadcast_address", "network"),
    ("MADR", CommandKind.READONLY, "mac_address", "network"),
    ("SCEN", CommandKind.PROPERTY, "scene_setting", SCENE_SETTING),
)

EVENT_TABLE: dict[str, str] = {
    "POWR": "power-changed",
    "VOLU": "volume-changed",
    "AMUT": "mute-changed",
    "CHNN": "channel-changed",
    "INPT": "input-changed",
    "PMUT": "picture-mute-changed",
    "PIPI": "pip-changed",
}

DEFAULT_REGISTRY = CommandRegistry(COMMAND_TABLE, EVENT_TABLE)
