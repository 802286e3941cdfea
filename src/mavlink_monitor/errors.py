__all__ = ("MonitorError", "PayloadDecodeError")


class MonitorError(RuntimeError):
    """Superclass for all errors emitted from the monitor."""


class PayloadDecodeError(MonitorError):
    """Error raised when the payload of a known message type cannot be
    decoded according to its field layout.
    """

    pass
