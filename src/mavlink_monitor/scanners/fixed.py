from anyio import sleep
from typing import AsyncIterable, Iterable

from .base import PortEvent, Scanner

__all__ = ("FixedPortList",)


class FixedPortList(Scanner):
    """Scanner that simply iterates over a list of fixed ports and reports
    each of them as attached, one by one.
    """

    _ports: Iterable[str]
    """The ports that the scanner iterates over."""

    def __init__(self, ports: Iterable[str]):
        self._ports = ports

    async def run(self) -> AsyncIterable[PortEvent]:
        for port in self._ports:
            await sleep(0)  # checkpoint
            yield PortEvent(port)
