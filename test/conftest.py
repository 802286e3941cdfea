from pytest import fixture
from struct import pack
from typing import Callable, Optional

from mavlink_monitor.checksum import X25CRC
from mavlink_monitor.messages import DEFAULT_REGISTRY


FrameFactory = Callable[..., bytes]


def encode_frame(
    message_id: int,
    payload: bytes = b"",
    *,
    sequence: int = 0,
    system_id: int = 1,
    component_id: int = 1,
    crc_extra: Optional[int] = None,
) -> bytes:
    """Encodes a MAVLink 1.0 frame with a valid checksum. The CRC_EXTRA byte
    is taken from the default registry unless given explicitly.
    """
    if crc_extra is None:
        crc_extra = DEFAULT_REGISTRY.crc_extra_for(message_id)
    header = bytes([len(payload), sequence, system_id, component_id, message_id])
    crc = X25CRC.of_frame(header, payload, crc_extra).crc
    return b"\xfe" + header + payload + pack("<H", crc)


@fixture
def make_frame() -> FrameFactory:
    return encode_frame


@fixture
def heartbeat_frame() -> bytes:
    # custom_mode, type, autopilot, base_mode, system_status, mavlink_version
    return encode_frame(0, pack("<IBBBBB", 0, 2, 12, 0, 4, 3))


@fixture
def attitude_frame() -> bytes:
    return encode_frame(30, pack("<Iffffff", 1000, 0.1, 0.2, 0.3, 0, 0, 0))
