"""Tests for float <-> register packing under each byte order."""

import struct

import pytest

from vlcomm.modbus.byte_order import float_to_registers, from_signed, registers_to_float, to_signed
from vlcomm.types import ByteOrder


def _f32(value: float) -> float:
    return struct.unpack(">f", struct.pack(">f", value))[0]


@pytest.mark.parametrize("order", list(ByteOrder))
def test_inverse_is_bit_exact(order: ByteOrder) -> None:
    for value in (3.14, -0.5, 0.0, 123456.789, -1e-20):
        reg1, reg2 = float_to_registers(value, order)
        assert registers_to_float(reg1, reg2, order) == _f32(value)


def test_known_layouts_for_3_14() -> None:
    # 3.14f == 0x4048F5C3
    assert float_to_registers(3.14, ByteOrder.ABCD) == (0x4048, 0xF5C3)
    assert float_to_registers(3.14, ByteOrder.BADC) == (0x4840, 0xC3F5)
    assert float_to_registers(3.14, ByteOrder.CDAB) == (0xF5C3, 0x4048)
    assert float_to_registers(3.14, ByteOrder.DCBA) == (0xC3F5, 0x4840)


def test_abcd_and_dcba_are_byte_reversed() -> None:
    abcd = float_to_registers(-7.25, ByteOrder.ABCD)
    dcba = float_to_registers(-7.25, ByteOrder.DCBA)
    abcd_bytes = struct.pack(">HH", *abcd)
    dcba_bytes = struct.pack(">HH", *dcba)
    assert dcba_bytes == abcd_bytes[::-1]


def test_signed_helpers() -> None:
    assert to_signed(0xFFFF) == -1
    assert to_signed(32767) == 32767
    assert to_signed(32768) == -32768
    assert from_signed(-1) == 0xFFFF
    assert from_signed(100) == 100


def test_out_of_range_float_raises_value_error() -> None:
    for value in (1e40, -3.5e38):
        with pytest.raises(ValueError, match="single-precision"):
            float_to_registers(value)
