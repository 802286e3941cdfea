from __future__ import annotations

from typing import TYPE_CHECKING, AsyncIterable, Callable, Optional, Sequence

from anyio import to_thread
from serial.tools.list_ports import comports

from mavlink_monitor.utils import (
    is_macos,
    looks_like_flight_controller_vid_pid_pair,
    periodic,
)

from .base import PortEvent, Scanner

if TYPE_CHECKING:
    from serial.tools.list_ports_common import ListPortInfo

__all__ = ("SerialPortScanner",)


PortFilter = Callable[["ListPortInfo"], bool]


class SerialPortScanner(Scanner):
    """Scanner that polls the list of serial ports regularly and reports the
    ports that look like flight controllers or telemetry radios as they are
    connected to or disconnected from the system.
    """

    interval: float
    """Number of seconds between consecutive scans."""

    _filter: PortFilter
    """Function that decides whether a port is relevant to the monitor."""

    def __init__(
        self, *, interval: float = 1, port_filter: Optional[PortFilter] = None
    ):
        """Constructor.

        Parameters:
            interval: number of seconds between consecutive scans
            port_filter: function that decides whether a port should be
                reported; defaults to a heuristic that looks at the name of
                the port on macOS and at the USB vendor and product IDs
                elsewhere
        """
        self.interval = interval
        self._filter = port_filter or self._looks_like_mavlink_port

    async def run(self) -> AsyncIterable[PortEvent]:
        attached: dict[str, str] = {}

        async for _ in periodic(self.interval):
            ports: Sequence[ListPortInfo] = await to_thread.run_sync(comports)
            names: set[str] = set()

            for port in ports:
                if not self._filter(port):
                    continue

                names.add(port.name)
                if port.name not in attached:
                    attached[port.name] = port.device
                    yield PortEvent(port.device, attached=True)

            for name in sorted(set(attached.keys()) - names):
                yield PortEvent(attached.pop(name), attached=False)

    @staticmethod
    def _looks_like_mavlink_port(port: ListPortInfo) -> bool:
        if is_macos():
            # On macOS, we can simply check whether the port name starts with
            # "cu.usbserial" or "cu.usbmodem"
            return port.name.startswith("cu.usbserial") or port.name.startswith(
                "cu.usbmodem"
            )

        # On all other platforms, we should check whether the port has a VID/PID
        # corresponding to a known autopilot or USB-to-serial adapter.
        vid, pid = port.vid, port.pid
        return looks_like_flight_controller_vid_pid_pair(vid, pid)
