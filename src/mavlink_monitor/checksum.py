"""CRC-16 checksum used by the MAVLink wire protocol.

MAVLink uses the X.25 variant of the CCITT CRC-16 (polynomial 0x1021 in
reflected form, also known as CRC-16/MCRF4XX) with an initial value of
0xFFFF and no final XOR. The checksum of a frame covers every byte after the
start marker and one extra byte (CRC_EXTRA) that depends on the message type.
"""

from typing import Iterable, Optional, Union

__all__ = ("X25CRC", "extra", "finalize", "seed", "update")


def seed() -> int:
    """Returns the initial value of the checksum accumulator."""
    return 0xFFFF


def update(accumulator: int, byte: int) -> int:
    """Folds a single byte into the checksum accumulator.

    Parameters:
        accumulator: the current value of the accumulator
        byte: the byte to fold into the accumulator

    Returns:
        the new value of the accumulator
    """
    tmp = byte ^ (accumulator & 0xFF)
    tmp = (tmp ^ (tmp << 4)) & 0xFF
    return ((accumulator >> 8) ^ (tmp << 8) ^ (tmp << 3) ^ (tmp >> 4)) & 0xFFFF


def extra(accumulator: int, crc_extra: int) -> int:
    """Folds the CRC_EXTRA byte of a message type into the accumulator."""
    return update(accumulator, crc_extra & 0xFF)


def finalize(accumulator: int) -> int:
    """Returns the 16-bit checksum corresponding to the accumulator."""
    return accumulator & 0xFFFF


class X25CRC:
    """CRC-16/MCRF4XX - based on checksum.h from the MAVLink library"""

    def __init__(self, buf: Union[bytes, bytearray, None] = None) -> None:
        self.crc = seed()
        if buf is not None:
            self.accumulate(buf)

    def accumulate(self, buf: Union[bytes, bytearray, Iterable[int]]) -> None:
        """add in some more bytes"""
        accum = self.crc
        for b in buf:
            accum = update(accum, b)
        self.crc = accum

    @classmethod
    def of_frame(
        cls, header: bytes, payload: bytes, crc_extra: Optional[int] = None
    ) -> "X25CRC":
        """Computes the checksum of a MAVLink frame from its header (without
        the start marker) and its payload, optionally followed by the
        CRC_EXTRA byte of the message type.
        """
        result = cls(header)
        result.accumulate(payload)
        if crc_extra is not None:
            result.crc = extra(result.crc, crc_extra)
        return result
