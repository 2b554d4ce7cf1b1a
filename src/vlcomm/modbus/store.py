"""In-memory Modbus register store with by-name, by-address and text-driven access."""

import logging
import threading
from typing import Any

from ..errors import UnknownVariableError
from ..types import ByteOrder, DataType, FunctionArea, ModbusAddressItem
from .address_map import AddressMap
from .byte_order import float_to_registers, from_signed, registers_to_float, to_signed

logger = logging.getLogger(__name__)

# Addresses are 1-based (1..65535); one extra slot lets a Float start at 65535.
STORE_SIZE = 65537

_AREA_TOKENS: dict[str, FunctionArea] = {
    "COIL": FunctionArea.COILS,
    "DISCRETE": FunctionArea.DISCRETE_INPUTS,
    "INPUT": FunctionArea.INPUT_REGISTERS,
    "HOLDING": FunctionArea.HOLDING_REGISTERS,
}

Value = bool | int | float


def parse_bool_text(value: Any) -> bool:
    """true/false (any case) or 1/0; native bools and ints pass through."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    v = str(value).strip().lower()
    if v in ("true", "1"):
        return True
    if v in ("false", "0"):
        return False
    raise ValueError(f"Invalid boolean value: {value!r}")


def _parse_int(value: Any, lo: int, hi: int) -> int:
    if isinstance(value, bool):
        raise ValueError(f"Expected an integer, got {value!r}")
    num = value if isinstance(value, int) else int(str(value).strip())
    if not lo <= num <= hi:
        raise ValueError(f"Value {num} out of range {lo}..{hi}")
    return num


class RegisterStore:
    """
    Four fixed-size areas: coils and discrete inputs as bits, input and holding registers
    as 16-bit words. Every access goes through one re-entrant lock, shared with the
    Modbus protocol engine that serves the same data.
    """

    def __init__(
        self,
        address_map: AddressMap | None = None,
        byte_order: ByteOrder = ByteOrder.ABCD,
        size: int = STORE_SIZE,
    ) -> None:
        self.size = size
        self.byte_order = byte_order
        self.lock = threading.RLock()
        self._bits: dict[FunctionArea, list[bool]] = {
            FunctionArea.COILS: [False] * size,
            FunctionArea.DISCRETE_INPUTS: [False] * size,
        }
        self._words: dict[FunctionArea, list[int]] = {
            FunctionArea.INPUT_REGISTERS: [0] * size,
            FunctionArea.HOLDING_REGISTERS: [0] * size,
        }
        self.address_map = address_map if address_map is not None else AddressMap()
        self.apply_defaults()

    # ------------------------------------------------------------------
    # Raw access (used by the protocol engine)
    # ------------------------------------------------------------------

    def _check_range(self, address: int, count: int) -> None:
        if address < 0 or count < 0 or address + count > self.size:
            raise IndexError(f"Address range {address}..{address + count - 1} outside 0..{self.size - 1}")

    def get_bits(self, area: FunctionArea, address: int, count: int = 1) -> list[bool]:
        self._check_range(address, count)
        with self.lock:
            return self._bits[area][address:address + count]

    def set_bits(self, area: FunctionArea, address: int, values: list[bool]) -> None:
        self._check_range(address, len(values))
        with self.lock:
            self._bits[area][address:address + len(values)] = [bool(v) for v in values]

    def get_registers(self, area: FunctionArea, address: int, count: int = 1) -> list[int]:
        self._check_range(address, count)
        with self.lock:
            return self._words[area][address:address + count]

    def set_registers(self, area: FunctionArea, address: int, values: list[int]) -> None:
        self._check_range(address, len(values))
        for v in values:
            if not 0 <= int(v) <= 0xFFFF:
                raise ValueError(f"Register value {v} out of range 0..65535")
        with self.lock:
            self._words[area][address:address + len(values)] = [int(v) for v in values]

    # ------------------------------------------------------------------
    # Typed item access
    # ------------------------------------------------------------------

    def read_item(self, item: ModbusAddressItem) -> Value:
        area = item.function_area
        if area.is_bit_area:
            return self.get_bits(area, item.address)[0]
        if item.data_type is DataType.FLOAT:
            reg1, reg2 = self.get_registers(area, item.address, 2)
            return registers_to_float(reg1, reg2, self.byte_order)
        word = self.get_registers(area, item.address)[0]
        if item.data_type is DataType.INT16:
            return to_signed(word)
        return word

    def write_item(self, item: ModbusAddressItem, value: Any) -> None:
        """Write value (native or text) according to the item's area and data type. Raises ValueError."""
        area = item.function_area
        if area.is_bit_area:
            self.set_bits(area, item.address, [parse_bool_text(value)])
            return
        if item.data_type is DataType.FLOAT:
            number = float(value) if isinstance(value, (int, float)) else float(str(value).strip())
            self.set_registers(area, item.address, list(float_to_registers(number, self.byte_order)))
        elif item.data_type is DataType.INT16:
            self.set_registers(area, item.address, [from_signed(_parse_int(value, -32768, 32767))])
        elif item.data_type is DataType.UINT16:
            self.set_registers(area, item.address, [_parse_int(value, 0, 65535)])
        else:
            raise ValueError(f"{area.label} cannot hold {item.data_type.value} values")

    # ------------------------------------------------------------------
    # By name
    # ------------------------------------------------------------------

    def read(self, name: str) -> Value:
        """Current value of an enabled variable; raise UnknownVariableError if not mapped."""
        return self.read_item(self.address_map.lookup(name))

    def write(self, name: str, value: Any) -> None:
        self.write_item(self.address_map.lookup(name), value)

    def snapshot(self) -> dict[str, Value]:
        """Name -> value for every enabled variable."""
        return {item.name: self.read_item(item) for item in self.address_map.enabled_items()}

    def apply_defaults(self) -> None:
        for item in self.address_map.enabled_items():
            if not item.default_value:
                continue
            try:
                self.write_item(item, item.default_value)
            except (ValueError, IndexError) as e:
                logger.warning("Default value for %s not applied: %s", item.name, e)

    def load_map(self, address_map: AddressMap) -> None:
        """Switch to a new address map and apply its defaults."""
        for error in address_map.validate():
            logger.warning("Address map %r: %s", address_map.name, error)
        with self.lock:
            self.address_map = address_map
            self.apply_defaults()

    # ------------------------------------------------------------------
    # Message-driven updates (never raise)
    # ------------------------------------------------------------------

    def update_by_name(self, name: str, value: str) -> bool:
        try:
            item = self.address_map.lookup(name)
            self.write_item(item, value)
        except UnknownVariableError:
            logger.debug("Update ignored, unknown variable %r", name)
            return False
        except (ValueError, IndexError) as e:
            logger.warning("Update of %s to %r failed: %s", name, value, e)
            return False
        logger.debug("Updated %s = %s", item.name, value)
        return True

    def update_by_address(self, area_token: str, address: str | int, value: str) -> bool:
        """AREA is COIL, DISCRETE, INPUT or HOLDING; bit areas take booleans, register areas UInt16."""
        area = _AREA_TOKENS.get(area_token.strip().upper())
        if area is None:
            logger.debug("Update ignored, unknown area %r", area_token)
            return False
        try:
            addr = _parse_int(address, 0, 65535)
            item = ModbusAddressItem(
                name=f"{area_token}:{addr}",
                function_area=area,
                address=addr,
                data_type=DataType.BOOLEAN if area.is_bit_area else DataType.UINT16,
            )
            self.write_item(item, value)
        except (ValueError, IndexError) as e:
            logger.warning("Update of %s:%s to %r failed: %s", area_token, address, value, e)
            return False
        logger.debug("Updated %s:%s = %s", area.label, addr, value)
        return True

    def update_from_text(self, text: str) -> bool:
        """Apply "name:value" or "AREA:address:value"; False if the text cannot be applied."""
        if not text or not text.strip():
            return False
        parts = text.split(":")
        if len(parts) < 2:
            return False
        if len(parts) == 2:
            return self.update_by_name(parts[0], parts[1])
        return self.update_by_address(parts[0], parts[1], parts[2])
