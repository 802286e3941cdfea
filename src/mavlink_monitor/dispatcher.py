"""Glue between the frame decoder and the message registry that turns raw
bytes into human-readable message descriptions.
"""

from typing import Callable, Iterable, Iterator, Optional

from .decoder import Complete, Frame, FrameDecoder, Invalid
from .messages import DEFAULT_REGISTRY, MessageRegistry

__all__ = ("DropHandler", "MessageDispatcher")


DropHandler = Callable[[Invalid], None]
"""Type alias for functions that are notified about frames dropped by the
decoder of a dispatcher.
"""


class MessageDispatcher:
    """Dispatcher that feeds incoming bytes into the decoder of a single
    channel and describes each frame that the decoder completes.

    The dispatcher inherits the state of its decoder: feeding the same bytes
    twice into the same dispatcher does not yield the same descriptions
    twice. Create a new dispatcher to start from scratch.
    """

    decoder: FrameDecoder
    """The frame decoder of the channel."""

    registry: MessageRegistry
    """The message registry used to describe completed frames."""

    _on_drop: Optional[DropHandler]
    """Optional handler to call for each frame dropped by the decoder."""

    def __init__(
        self,
        decoder: Optional[FrameDecoder] = None,
        registry: MessageRegistry = DEFAULT_REGISTRY,
        *,
        on_drop: Optional[DropHandler] = None,
    ):
        """Constructor.

        Parameters:
            decoder: the decoder of the channel; a new decoder is created
                with the given registry when omitted
            registry: the message registry to use to describe frames
            on_drop: optional callable that will be called with the Invalid_
                result of each frame that the decoder drops. Dropped frames
                are not visible otherwise.
        """
        self.registry = registry
        self.decoder = decoder if decoder is not None else FrameDecoder(registry)
        self._on_drop = on_drop

    def describe(self, frame: Frame) -> str:
        """Returns the description of a single frame, terminated by a
        newline.
        """
        return self.registry.describe(frame.message_id, frame.payload) + "\n"

    def process(self, data: Iterable[int]) -> Iterator[str]:
        """Feeds the given bytes into the decoder of the channel.

        Yields:
            one newline-terminated description for each frame that was
            completed by the bytes, in arrival order
        """
        for frame in self.process_frames(data):
            yield self.describe(frame)

    def process_frames(self, data: Iterable[int]) -> Iterator[Frame]:
        """Feeds the given bytes into the decoder of the channel.

        Yields:
            the frames that were completed by the bytes, in arrival order
        """
        for result in self.decoder.feed_bytes(data):
            if isinstance(result, Complete):
                yield result.frame
            elif isinstance(result, Invalid) and self._on_drop:
                self._on_drop(result)
