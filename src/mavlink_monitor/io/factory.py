from .base import Transport

__all__ = ("create_transport",)


def create_transport(spec: str, **kwds) -> Transport:
    """Creates a transport from a specification string.

    The specification string is the name of a serial port (e.g.,
    ``/dev/ttyUSB0`` or ``COM3``) or any URL that ``pyserial`` understands,
    such as ``socket://localhost:5760`` for a TCP link to a simulator. Keyword
    arguments are forwarded to SerialPortTransport.from_url_ so they can be
    used to override the default baud rate, parity and stop bits.
    """
    from .serial import SerialPortTransport

    return SerialPortTransport.from_url(spec, **kwds)
