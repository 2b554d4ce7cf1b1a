"""32-bit float <-> register pair packing under the four conventional byte orders, and 16-bit sign helpers."""

import struct

from ..types import ByteOrder


def _word(hi: int, lo: int) -> int:
    return (hi << 8) | lo


def float_to_registers(value: float, order: ByteOrder = ByteOrder.ABCD) -> tuple[int, int]:
    """
    Pack value as IEEE-754 single precision. With big-endian bytes A B C D:
    ABCD -> (AB, CD), BADC -> (BA, DC), CDAB -> (CD, AB), DCBA -> (DC, BA).
    Raises ValueError when value does not fit in single precision.
    """
    try:
        a, b, c, d = struct.pack(">f", value)
    except (OverflowError, struct.error) as e:
        raise ValueError(f"Float value out of single-precision range: {value!r}") from e
    if order is ByteOrder.ABCD:
        return _word(a, b), _word(c, d)
    if order is ByteOrder.BADC:
        return _word(b, a), _word(d, c)
    if order is ByteOrder.CDAB:
        return _word(c, d), _word(a, b)
    if order is ByteOrder.DCBA:
        return _word(d, c), _word(b, a)
    raise ValueError(f"Unknown byte order: {order!r}")


def registers_to_float(reg1: int, reg2: int, order: ByteOrder = ByteOrder.ABCD) -> float:
    """Exact inverse of float_to_registers for the same order."""
    r1_hi, r1_lo = (reg1 >> 8) & 0xFF, reg1 & 0xFF
    r2_hi, r2_lo = (reg2 >> 8) & 0xFF, reg2 & 0xFF
    if order is ByteOrder.ABCD:
        raw = bytes([r1_hi, r1_lo, r2_hi, r2_lo])
    elif order is ByteOrder.BADC:
        raw = bytes([r1_lo, r1_hi, r2_lo, r2_hi])
    elif order is ByteOrder.CDAB:
        raw = bytes([r2_hi, r2_lo, r1_hi, r1_lo])
    elif order is ByteOrder.DCBA:
        raw = bytes([r2_lo, r2_hi, r1_lo, r1_hi])
    else:
        raise ValueError(f"Unknown byte order: {order!r}")
    return struct.unpack(">f", raw)[0]


def to_signed(value: int) -> int:
    """Convert unsigned 16-bit to signed."""
    if value > 32767:
        return value - 65536
    return value


def from_signed(value: int) -> int:
    """Convert signed 16-bit to unsigned."""
    if value < 0:
        return value + 65536
    return value
