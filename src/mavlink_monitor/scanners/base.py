"""Interface specification for scanner tasks that report serial ports as
they appear and disappear, based on external events.
"""

from abc import abstractmethod
from dataclasses import dataclass
from typing import AsyncIterable

__all__ = ("PortEvent", "Scanner")


@dataclass(frozen=True)
class PortEvent:
    """Event reported by a scanner when a port appears or disappears."""

    port: str
    """The name of the port, suitable for opening it with ``pyserial``."""

    attached: bool = True
    """Whether the port was attached (``True``) or detached (``False``)."""


class Scanner:
    """Base class for scanner tasks that report serial ports that the monitor
    may connect to.
    """

    @abstractmethod
    def run(self) -> AsyncIterable[PortEvent]:
        """Runs the scanner task.

        Yields:
            port events whenever the scanner notices that a port was attached
            or detached
        """
        raise NotImplementedError
