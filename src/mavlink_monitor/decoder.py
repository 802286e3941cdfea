"""Byte-level state machine that reconstructs MAVLink 1.0 frames from a raw
byte stream, without doing any I/O.

Frame layout::

    +--------+--------+-----+--------+-----------+--------+-----------+----------+
    | 0xFE   | length | seq | sys ID | comp ID   | msg ID |  payload  | checksum |
    | 1 byte | 1 byte |  1  |   1    |    1      |   1    | 0-255 B   | 2 bytes  |
    +--------+--------+-----+--------+-----------+--------+-----------+----------+

The checksum is little-endian and covers every byte between the start marker
and the checksum itself, followed by the CRC_EXTRA byte of the message type.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator, Optional

from . import checksum
from .messages import DEFAULT_REGISTRY, MessageRegistry

__all__ = (
    "Complete",
    "DecoderState",
    "DecoderStatistics",
    "Frame",
    "FrameDecoder",
    "FrameResult",
    "INCOMPLETE",
    "Incomplete",
    "Invalid",
    "InvalidReason",
)

PROTOCOL_MARKER_V1 = 0xFE
MAX_PAYLOAD_LENGTH = 255


@dataclass(frozen=True)
class Frame:
    """A single, checksum-validated MAVLink 1.0 frame."""

    sequence: int
    """Sequence number of the frame, wraps around at 256."""

    system_id: int
    """ID of the system that sent the frame."""

    component_id: int
    """ID of the component within the system that sent the frame."""

    message_id: int
    """Type identifier of the message in the frame."""

    payload: bytes
    """Raw payload of the message."""

    checksum: int
    """The 16-bit checksum received with the frame."""

    @property
    def length(self) -> int:
        """Length of the payload, as declared in the header of the frame."""
        return len(self.payload)

    def __repr__(self) -> str:
        return (
            f"Frame(seq={self.sequence}, sys={self.system_id}, "
            f"comp={self.component_id}, msgid={self.message_id}, "
            f"payload={self.payload.hex(' ') if self.payload else '(empty)'})"
        )


class InvalidReason(Enum):
    """Reasons for dropping a candidate frame."""

    FRAMING_DESYNC = "framingDesync"
    """The bytes did not align to the expected header layout."""

    CHECKSUM_MISMATCH = "checksumMismatch"
    """The frame was complete but failed the integrity check."""


class FrameResult:
    """Base class for the results returned by the decoder for each byte."""

    __slots__ = ()


@dataclass(frozen=True)
class Incomplete(FrameResult):
    """Result returned by the decoder when it needs more bytes to complete
    the current frame.
    """

    __slots__ = ()


@dataclass(frozen=True)
class Complete(FrameResult):
    """Result returned by the decoder when a frame was completed and passed
    the integrity check.
    """

    __slots__ = ("frame",)

    frame: Frame
    """The frame that was completed."""


@dataclass(init=False, frozen=True)
class Invalid(FrameResult):
    """Result returned by the decoder when it dropped a candidate frame."""

    __slots__ = ("reason", "message_id")

    reason: InvalidReason
    """The reason why the frame was dropped."""

    message_id: Optional[int]
    """Message type identifier of the dropped frame, if the decoder got far
    enough to read it.
    """

    def __init__(self, reason: InvalidReason, message_id: Optional[int] = None):
        object.__setattr__(self, "reason", reason)
        object.__setattr__(self, "message_id", message_id)


INCOMPLETE = Incomplete()
"""Singleton instance of the Incomplete_ result."""


class DecoderState(Enum):
    """Enum representing the possible internal states of the decoder. Each
    state is named after the last structural element that was received.
    """

    IDLE = "idle"
    """Scanning for a start marker."""

    SAW_START = "sawStart"
    """Got the start marker, waiting for the payload length."""

    HAVE_LENGTH = "haveLength"
    """Got the payload length, waiting for the sequence number."""

    HAVE_SEQUENCE = "haveSequence"
    """Got the sequence number, waiting for the system ID."""

    HAVE_SYSTEM_ID = "haveSystemId"
    """Got the system ID, waiting for the component ID."""

    HAVE_COMPONENT_ID = "haveComponentId"
    """Got the component ID, waiting for the message type ID."""

    HAVE_MESSAGE_ID = "haveMessageId"
    """Got the message type ID, waiting for the first payload byte or the
    first checksum byte if the payload is empty.
    """

    ACCUMULATING_PAYLOAD = "accumulatingPayload"
    """Collecting payload bytes."""

    HAVE_CHECKSUM_BYTE_1 = "haveChecksumByte1"
    """Got the low byte of the checksum, waiting for the high byte."""


@dataclass
class DecoderStatistics:
    """Counters describing what the decoder did with the bytes it received."""

    frames_received: int = 0
    """Number of frames that passed the integrity check."""

    checksum_mismatches: int = 0
    """Number of candidate frames dropped due to a checksum mismatch."""

    desyncs: int = 0
    """Number of candidate frames dropped due to a framing error."""

    bytes_skipped: int = 0
    """Number of bytes discarded while scanning for a start marker."""

    @property
    def frames_dropped(self) -> int:
        return self.checksum_mismatches + self.desyncs


class FrameDecoder:
    """State machine that decodes MAVLink 1.0 frames from a byte stream, one
    byte at a time.

    Each channel (e.g., each serial port) needs its own decoder as the
    decoder keeps track of the partially received frame.
    """

    statistics: DecoderStatistics
    """Counters of the frames and bytes processed by the decoder."""

    _checksum: int
    """Running checksum accumulator of the current frame."""

    _checksum_low: int = 0
    """Low byte of the checksum received with the current frame."""

    _crc_extra: int = 0
    """CRC_EXTRA byte of the message type of the current frame."""

    _length: int = 0
    """Payload length declared in the header of the current frame."""

    _max_payload_length: int
    """Maximum payload length that the decoder accepts."""

    _payload: bytearray
    """Payload bytes of the current frame received so far."""

    _registry: MessageRegistry
    """Registry used to look up the CRC_EXTRA bytes of message types."""

    _sequence: int = 0
    _system_id: int = 0
    _component_id: int = 0
    _message_id: int = 0

    _state: DecoderState = DecoderState.IDLE
    """Current state of the decoder."""

    def __init__(
        self,
        registry: Optional[MessageRegistry] = None,
        *,
        max_payload_length: int = MAX_PAYLOAD_LENGTH,
    ):
        """Constructor.

        Parameters:
            registry: the message registry that provides the CRC_EXTRA bytes
                of the known message types. Message types missing from the
                registry are checked with a CRC_EXTRA of zero.
            max_payload_length: the size of the payload buffer; frames that
                declare a longer payload are dropped
        """
        self._registry = registry if registry is not None else DEFAULT_REGISTRY
        self._max_payload_length = min(max_payload_length, MAX_PAYLOAD_LENGTH)
        self.statistics = DecoderStatistics()
        self.reset()

    @property
    def state(self) -> DecoderState:
        """Returns the current state of the decoder."""
        return self._state

    @property
    def pending_checksum(self) -> int:
        """Returns the value of the running checksum of the current frame."""
        return self._checksum

    @property
    def pending_payload(self) -> bytes:
        """Returns the payload bytes of the current frame received so far."""
        return bytes(self._payload)

    @property
    def expected_length(self) -> Optional[int]:
        """Returns the payload length declared by the current frame, or
        ``None`` if the length is not known yet.
        """
        if self._state in (DecoderState.IDLE, DecoderState.SAW_START):
            return None
        return self._length

    def feed(self, byte: int) -> FrameResult:
        """Feeds a single byte into the decoder.

        Returns:
            ``INCOMPLETE`` if the byte did not finish a frame, a Complete_
            result holding the frame if the byte finished a valid frame, or
            an Invalid_ result if the decoder dropped the current frame
        """
        state = self._state

        if state is DecoderState.IDLE:
            if byte == PROTOCOL_MARKER_V1:
                self._start_frame()
            else:
                self.statistics.bytes_skipped += 1

        elif state is DecoderState.SAW_START:
            if byte > self._max_payload_length:
                self.statistics.desyncs += 1
                self.reset()
                return Invalid(InvalidReason.FRAMING_DESYNC)
            self._length = byte
            self._accumulate(byte, DecoderState.HAVE_LENGTH)

        elif state is DecoderState.HAVE_LENGTH:
            self._sequence = byte
            self._accumulate(byte, DecoderState.HAVE_SEQUENCE)

        elif state is DecoderState.HAVE_SEQUENCE:
            self._system_id = byte
            self._accumulate(byte, DecoderState.HAVE_SYSTEM_ID)

        elif state is DecoderState.HAVE_SYSTEM_ID:
            self._component_id = byte
            self._accumulate(byte, DecoderState.HAVE_COMPONENT_ID)

        elif state is DecoderState.HAVE_COMPONENT_ID:
            self._message_id = byte
            self._crc_extra = self._registry.crc_extra_for(byte)
            self._accumulate(byte, DecoderState.HAVE_MESSAGE_ID)

        elif (
            state is DecoderState.HAVE_MESSAGE_ID
            or state is DecoderState.ACCUMULATING_PAYLOAD
        ):
            if len(self._payload) < self._length:
                # 0xFE bytes in the payload are data, not start markers
                self._payload.append(byte)
                self._accumulate(byte, DecoderState.ACCUMULATING_PAYLOAD)
            else:
                self._checksum_low = byte
                self._state = DecoderState.HAVE_CHECKSUM_BYTE_1

        elif state is DecoderState.HAVE_CHECKSUM_BYTE_1:
            return self._finish_frame(self._checksum_low | (byte << 8))

        else:
            raise RuntimeError(f"invalid decoder state: {state!r}")

        return INCOMPLETE

    def feed_bytes(self, data: Iterable[int]) -> Iterator[FrameResult]:
        """Feeds a chunk of bytes into the decoder.

        Yields:
            the results of the bytes that completed or dropped a frame; bytes
            that resulted in ``INCOMPLETE`` are not reported
        """
        for byte in data:
            result = self.feed(byte)
            if result is not INCOMPLETE:
                yield result

    def reset(self) -> None:
        """Resets the internal state of the decoder, dropping the partially
        received frame if there is one. Statistics are kept.
        """
        self._state = DecoderState.IDLE
        self._checksum = checksum.seed()
        self._checksum_low = 0
        self._crc_extra = 0
        self._length = 0
        self._payload = bytearray()

    def _accumulate(self, byte: int, next_state: DecoderState) -> None:
        self._checksum = checksum.update(self._checksum, byte)
        self._state = next_state

    def _finish_frame(self, received: int) -> FrameResult:
        expected = checksum.finalize(checksum.extra(self._checksum, self._crc_extra))

        result: FrameResult
        if received == expected:
            self.statistics.frames_received += 1
            result = Complete(
                Frame(
                    sequence=self._sequence,
                    system_id=self._system_id,
                    component_id=self._component_id,
                    message_id=self._message_id,
                    payload=bytes(self._payload),
                    checksum=received,
                )
            )
        else:
            self.statistics.checksum_mismatches += 1
            result = Invalid(InvalidReason.CHECKSUM_MISMATCH, self._message_id)

        self.reset()
        return result

    def _start_frame(self) -> None:
        self.reset()
        self._state = DecoderState.SAW_START
