from .base import Transport, EndOfStream
from .factory import create_transport

__all__ = ("EndOfStream", "Transport", "create_transport")
