"""Assorted helper functions that do not fit elsewhere."""

from anyio import current_time, sleep_until
from sys import platform
from typing import AsyncIterator, Optional

__all__ = (
    "is_macos",
    "looks_like_flight_controller_vid_pid_pair",
    "periodic",
)


KNOWN_VID_PID_PAIRS = {
    (0x1209, 0x5740),  # ArduPilot ChibiOS boards
    (0x1209, 0x5741),  # ArduPilot ChibiOS boards, bootloader
    (0x0483, 0x5740),  # STM32 virtual COM port
    (0x26AC, 0x0011),  # 3D Robotics PX4 FMU
    (0x26AC, 0x0032),  # 3D Robotics PX4 FMU v5
    (0x2DAE, 0x1016),  # CubePilot Cube Orange
    (0x2DAE, 0x1011),  # CubePilot Cube Black
}
"""USB vendor and product ID pairs of known flight controllers."""

KNOWN_USB_SERIAL_VIDS = {
    0x0403,  # FTDI, used by SiK telemetry radios
    0x10C4,  # Silicon Labs CP210x
    0x1A86,  # WCH CH340
}
"""USB vendor IDs of USB-to-serial adapters commonly used with telemetry
radios.
"""


def is_macos() -> bool:
    """Returns whether we are running on macOS."""
    return platform == "darwin"


def looks_like_flight_controller_vid_pid_pair(
    vid: Optional[int], pid: Optional[int]
) -> bool:
    """Returns whether the given USB vendor and product ID pair belongs to a
    device that is likely to speak MAVLink: a flight controller or a USB to
    serial adapter of a telemetry radio.
    """
    if vid is None:
        return False
    return (vid, pid) in KNOWN_VID_PID_PAIRS or vid in KNOWN_USB_SERIAL_VIDS


async def periodic(interval: float) -> AsyncIterator[None]:
    """Asynchronous generator that yields immediately and then once in every
    ``interval`` seconds, without accumulating drift.
    """
    deadline = current_time()
    while True:
        yield
        deadline += interval
        await sleep_until(deadline)
