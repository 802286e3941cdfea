"""Registry of the MAVLink message types that the monitor knows how to decode
and describe.

Each message type is described by an immutable MessageDescriptor_ that holds
the payload layout of the message on the wire, the CRC_EXTRA byte that is
folded into the checksum of the frames of this type, and a template that
turns the decoded fields into a human-readable description. Fields are
stored in wire order, i.e. sorted by the size of their base type, as
mandated by the MAVLink 1.0 protocol.
"""

import struct

from dataclasses import dataclass
from enum import IntEnum
from math import isfinite
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, Mapping, Optional, Tuple, Union

from .errors import PayloadDecodeError

__all__ = (
    "DEFAULT_REGISTRY",
    "DecodedMessage",
    "FieldSpec",
    "FieldType",
    "MessageDescriptor",
    "MessageRegistry",
    "format_float32",
)


FieldValue = Union[int, float, bytes, Tuple[Union[int, float], ...]]


class FieldType(IntEnum):
    """Base types of MAVLink message fields, numbered as in
    ``mavlink_types.h``.
    """

    CHAR = 0
    UINT8_T = 1
    INT8_T = 2
    UINT16_T = 3
    INT16_T = 4
    UINT32_T = 5
    INT32_T = 6
    UINT64_T = 7
    INT64_T = 8
    FLOAT = 9
    DOUBLE = 10

    @property
    def struct_code(self) -> str:
        """Format character of this type for the ``struct`` module."""
        return _STRUCT_CODES[self]

    @property
    def size(self) -> int:
        """Size of a single value of this type on the wire, in bytes."""
        return struct.calcsize("<" + _STRUCT_CODES[self])


_STRUCT_CODES: Dict[FieldType, str] = {
    FieldType.CHAR: "c",
    FieldType.UINT8_T: "B",
    FieldType.INT8_T: "b",
    FieldType.UINT16_T: "H",
    FieldType.INT16_T: "h",
    FieldType.UINT32_T: "I",
    FieldType.INT32_T: "i",
    FieldType.UINT64_T: "Q",
    FieldType.INT64_T: "q",
    FieldType.FLOAT: "f",
    FieldType.DOUBLE: "d",
}


def format_float32(value: float) -> str:
    """Formats a single-precision float with the shortest decimal text that
    converts back to the same single-precision value, so 0.1 received from
    the wire is shown as ``0.1`` and not as ``0.10000000149011612``.
    """
    if not isfinite(value):
        return str(value)

    packer = struct.Struct("<f")
    (expected,) = packer.unpack(packer.pack(value))
    text = repr(expected)
    for digits in range(1, 10):
        candidate = float(f"{value:.{digits}g}")
        if packer.unpack(packer.pack(candidate))[0] == expected:
            text = repr(candidate)
            break

    return text


@dataclass(frozen=True)
class FieldSpec:
    """Layout of a single field in the payload of a MAVLink message."""

    name: str
    """Name of the field."""

    type: FieldType
    """Base type of the field."""

    offset: int
    """Byte offset of the field from the start of the payload."""

    array_length: int = 0
    """Number of items if the field is an array, zero for scalars."""

    @property
    def size(self) -> int:
        """Number of bytes the field occupies in the payload."""
        return self.type.size * max(self.array_length, 1)

    @property
    def end(self) -> int:
        """Offset of the first byte after the field."""
        return self.offset + self.size

    def read(self, payload: Union[bytes, bytearray]) -> FieldValue:
        """Reads the value of this field from the given payload.

        Raises:
            PayloadDecodeError: if the payload is too short to contain the
                field
        """
        if self.end > len(payload):
            raise PayloadDecodeError(
                f"field {self.name!r} needs {self.end} bytes, payload has "
                f"{len(payload)}"
            )

        code = self.type.struct_code
        if self.type is FieldType.CHAR:
            raw = bytes(payload[self.offset : self.end])
            return raw.split(b"\x00", 1)[0]

        if self.array_length:
            return struct.unpack_from(
                f"<{self.array_length}{code}", payload, self.offset
            )

        (value,) = struct.unpack_from(f"<{code}", payload, self.offset)
        return value

    def render(self, value: FieldValue) -> str:
        """Converts a value of this field into text."""
        if self.type is FieldType.FLOAT:
            if isinstance(value, tuple):
                return "[" + ", ".join(format_float32(v) for v in value) + "]"
            return format_float32(value)  # type: ignore
        elif isinstance(value, bytes):
            return value.decode("ascii", "ignore")
        elif isinstance(value, tuple):
            return "[" + ", ".join(str(v) for v in value) + "]"
        else:
            return str(value)


def layout(*fields: Tuple) -> Tuple[FieldSpec, ...]:
    """Lays out the given fields one after another, starting from offset zero.

    Each argument is a tuple consisting of a field name, a field type and an
    optional array length.
    """
    result = []
    offset = 0
    for spec in fields:
        item = FieldSpec(spec[0], spec[1], offset, *spec[2:])
        result.append(item)
        offset = item.end
    return tuple(result)


@dataclass(frozen=True)
class MessageDescriptor:
    """Static description of a single MAVLink message type."""

    id: int
    """Numeric identifier of the message type."""

    name: str
    """Name of the message type, e.g. ``HEARTBEAT``."""

    crc_extra: int
    """Seed byte folded into the checksum of frames of this type."""

    fields: Tuple[FieldSpec, ...]
    """Layout of the payload, in wire order."""

    template: str
    """Format string that produces the description of a decoded message from
    its rendered fields.
    """

    @property
    def field_names(self) -> Tuple[str, ...]:
        return tuple(f.name for f in self.fields)

    @property
    def payload_length(self) -> int:
        """Length of a complete payload of this message type, in bytes."""
        return max((f.end for f in self.fields), default=0)

    def decode(self, payload: Union[bytes, bytearray]) -> "DecodedMessage":
        """Decodes the given payload according to the layout of this message
        type.

        Raises:
            PayloadDecodeError: if the payload is shorter than the layout of
                the message requires
        """
        if len(payload) < self.payload_length:
            raise PayloadDecodeError(
                f"{self.name} payload too short: got {len(payload)} bytes, "
                f"expected {self.payload_length}"
            )
        values = {f.name: f.read(payload) for f in self.fields}
        return DecodedMessage(self, MappingProxyType(values))


@dataclass(frozen=True)
class DecodedMessage:
    """Typed field values extracted from the payload of a single frame."""

    descriptor: MessageDescriptor
    values: Mapping[str, FieldValue]

    def __getitem__(self, key: str) -> FieldValue:
        return self.values[key]

    def format(self) -> str:
        """Returns the human-readable description of the message."""
        rendered = {
            f.name: f.render(self.values[f.name]) for f in self.descriptor.fields
        }
        return self.descriptor.template.format(**rendered)


class MessageRegistry:
    """Immutable mapping from message type identifiers to message
    descriptors.
    """

    _descriptors: Mapping[int, MessageDescriptor]

    def __init__(self, descriptors: Iterable[MessageDescriptor] = ()):
        """Constructor.

        Parameters:
            descriptors: the message descriptors to register. Each message
                type identifier may appear at most once.
        """
        by_id: Dict[int, MessageDescriptor] = {}
        for descriptor in descriptors:
            if descriptor.id in by_id:
                raise ValueError(f"duplicate message type id: {descriptor.id}")
            by_id[descriptor.id] = descriptor
        self._descriptors = MappingProxyType(by_id)

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._descriptors

    def __iter__(self) -> Iterator[MessageDescriptor]:
        return iter(self._descriptors.values())

    def __len__(self) -> int:
        return len(self._descriptors)

    def crc_extra_for(self, message_id: int) -> int:
        """Returns the CRC_EXTRA byte of the given message type, or zero if
        the message type is not known.
        """
        descriptor = self._descriptors.get(message_id)
        return descriptor.crc_extra if descriptor else 0

    def describe(self, message_id: int, payload: Union[bytes, bytearray]) -> str:
        """Returns a human-readable description of a message with the given
        type and payload.

        Unknown message types and payloads that cannot be decoded produce a
        generic description containing the numeric message type only.
        """
        descriptor = self._descriptors.get(message_id)
        if descriptor is not None:
            try:
                return descriptor.decode(payload).format()
            except PayloadDecodeError:
                pass
        return f"OTHER Message id {message_id} received"

    def lookup(self, message_id: int) -> Optional[MessageDescriptor]:
        """Returns the descriptor of the given message type or ``None`` if
        the message type is not known.
        """
        return self._descriptors.get(message_id)


# message IDs
MAVLINK_MSG_ID_HEARTBEAT = 0
MAVLINK_MSG_ID_SYS_STATUS = 1
MAVLINK_MSG_ID_ATTITUDE = 30
MAVLINK_MSG_ID_LOCAL_POSITION_NED = 32
MAVLINK_MSG_ID_GLOBAL_POSITION_INT = 33
MAVLINK_MSG_ID_VFR_HUD = 74
MAVLINK_MSG_ID_POSITION_TARGET_GLOBAL_INT = 87
MAVLINK_MSG_ID_HIGHRES_IMU = 105
MAVLINK_MSG_ID_BATTERY_STATUS = 147


HEARTBEAT = MessageDescriptor(
    MAVLINK_MSG_ID_HEARTBEAT,
    "HEARTBEAT",
    50,
    layout(
        ("custom_mode", FieldType.UINT32_T),
        ("type", FieldType.UINT8_T),
        ("autopilot", FieldType.UINT8_T),
        ("base_mode", FieldType.UINT8_T),
        ("system_status", FieldType.UINT8_T),
        ("mavlink_version", FieldType.UINT8_T),
    ),
    "HEARTBEAT mavlink_version: {mavlink_version}",
)

SYS_STATUS = MessageDescriptor(
    MAVLINK_MSG_ID_SYS_STATUS,
    "SYS_STATUS",
    124,
    layout(
        ("onboard_control_sensors_present", FieldType.UINT32_T),
        ("onboard_control_sensors_enabled", FieldType.UINT32_T),
        ("onboard_control_sensors_health", FieldType.UINT32_T),
        ("load", FieldType.UINT16_T),
        ("voltage_battery", FieldType.UINT16_T),
        ("current_battery", FieldType.INT16_T),
        ("drop_rate_comm", FieldType.UINT16_T),
        ("errors_comm", FieldType.UINT16_T),
        ("errors_count1", FieldType.UINT16_T),
        ("errors_count2", FieldType.UINT16_T),
        ("errors_count3", FieldType.UINT16_T),
        ("errors_count4", FieldType.UINT16_T),
        ("battery_remaining", FieldType.INT8_T),
    ),
    "SYS_STATUS comms drop rate: {drop_rate_comm}%",
)

ATTITUDE = MessageDescriptor(
    MAVLINK_MSG_ID_ATTITUDE,
    "ATTITUDE",
    39,
    layout(
        ("time_boot_ms", FieldType.UINT32_T),
        ("roll", FieldType.FLOAT),
        ("pitch", FieldType.FLOAT),
        ("yaw", FieldType.FLOAT),
        ("rollspeed", FieldType.FLOAT),
        ("pitchspeed", FieldType.FLOAT),
        ("yawspeed", FieldType.FLOAT),
    ),
    "ATTITUDE roll: {roll} pitch: {pitch} yaw: {yaw}",
)

LOCAL_POSITION_NED = MessageDescriptor(
    MAVLINK_MSG_ID_LOCAL_POSITION_NED,
    "LOCAL_POSITION_NED",
    185,
    layout(
        ("time_boot_ms", FieldType.UINT32_T),
        ("x", FieldType.FLOAT),
        ("y", FieldType.FLOAT),
        ("z", FieldType.FLOAT),
        ("vx", FieldType.FLOAT),
        ("vy", FieldType.FLOAT),
        ("vz", FieldType.FLOAT),
    ),
    "LOCAL_POSITION_NED",
)

GLOBAL_POSITION_INT = MessageDescriptor(
    MAVLINK_MSG_ID_GLOBAL_POSITION_INT,
    "GLOBAL_POSITION_INT",
    104,
    layout(
        ("time_boot_ms", FieldType.UINT32_T),
        ("lat", FieldType.INT32_T),
        ("lon", FieldType.INT32_T),
        ("alt", FieldType.INT32_T),
        ("relative_alt", FieldType.INT32_T),
        ("vx", FieldType.INT16_T),
        ("vy", FieldType.INT16_T),
        ("vz", FieldType.INT16_T),
        ("hdg", FieldType.UINT16_T),
    ),
    "GLOBAL_POSITION_INT",
)

VFR_HUD = MessageDescriptor(
    MAVLINK_MSG_ID_VFR_HUD,
    "VFR_HUD",
    20,
    layout(
        ("airspeed", FieldType.FLOAT),
        ("groundspeed", FieldType.FLOAT),
        ("alt", FieldType.FLOAT),
        ("climb", FieldType.FLOAT),
        ("heading", FieldType.INT16_T),
        ("throttle", FieldType.UINT16_T),
    ),
    "VFR_HUD heading: {heading} degrees",
)

POSITION_TARGET_GLOBAL_INT = MessageDescriptor(
    MAVLINK_MSG_ID_POSITION_TARGET_GLOBAL_INT,
    "POSITION_TARGET_GLOBAL_INT",
    150,
    layout(
        ("time_boot_ms", FieldType.UINT32_T),
        ("lat_int", FieldType.INT32_T),
        ("lon_int", FieldType.INT32_T),
        ("alt", FieldType.FLOAT),
        ("vx", FieldType.FLOAT),
        ("vy", FieldType.FLOAT),
        ("vz", FieldType.FLOAT),
        ("afx", FieldType.FLOAT),
        ("afy", FieldType.FLOAT),
        ("afz", FieldType.FLOAT),
        ("yaw", FieldType.FLOAT),
        ("yaw_rate", FieldType.FLOAT),
        ("type_mask", FieldType.UINT16_T),
        ("coordinate_frame", FieldType.UINT8_T),
    ),
    "POSITION_TARGET_GLOBAL_INT",
)

HIGHRES_IMU = MessageDescriptor(
    MAVLINK_MSG_ID_HIGHRES_IMU,
    "HIGHRES_IMU",
    93,
    layout(
        ("time_usec", FieldType.UINT64_T),
        ("xacc", FieldType.FLOAT),
        ("yacc", FieldType.FLOAT),
        ("zacc", FieldType.FLOAT),
        ("xgyro", FieldType.FLOAT),
        ("ygyro", FieldType.FLOAT),
        ("zgyro", FieldType.FLOAT),
        ("xmag", FieldType.FLOAT),
        ("ymag", FieldType.FLOAT),
        ("zmag", FieldType.FLOAT),
        ("abs_pressure", FieldType.FLOAT),
        ("diff_pressure", FieldType.FLOAT),
        ("pressure_alt", FieldType.FLOAT),
        ("temperature", FieldType.FLOAT),
        ("fields_updated", FieldType.UINT16_T),
    ),
    "HIGHRES_IMU Pressure: {abs_pressure} millibar",
)

BATTERY_STATUS = MessageDescriptor(
    MAVLINK_MSG_ID_BATTERY_STATUS,
    "BATTERY_STATUS",
    154,
    layout(
        ("current_consumed", FieldType.INT32_T),
        ("energy_consumed", FieldType.INT32_T),
        ("temperature", FieldType.INT16_T),
        ("voltages", FieldType.UINT16_T, 10),
        ("current_battery", FieldType.INT16_T),
        ("id", FieldType.UINT8_T),
        ("battery_function", FieldType.UINT8_T),
        ("type", FieldType.UINT8_T),
        ("battery_remaining", FieldType.INT8_T),
    ),
    "BATTERY_STATUS current consumed: {current_consumed} mAh",
)


DEFAULT_REGISTRY = MessageRegistry(
    [
        HEARTBEAT,
        SYS_STATUS,
        ATTITUDE,
        LOCAL_POSITION_NED,
        GLOBAL_POSITION_INT,
        VFR_HUD,
        POSITION_TARGET_GLOBAL_INT,
        HIGHRES_IMU,
        BATTERY_STATUS,
    ]
)
"""Registry of the message types that the monitor describes by default."""
