"""Modbus-TCP register server: address map, register store, byte orders and the pymodbus-backed server."""

from .address_map import AddressMap, default_address_map, validate_item
from .byte_order import float_to_registers, registers_to_float
from .server import ModbusServerConfig, ModbusTcpServer
from .store import RegisterStore

__all__ = [
    "AddressMap",
    "ModbusServerConfig",
    "ModbusTcpServer",
    "RegisterStore",
    "default_address_map",
    "float_to_registers",
    "registers_to_float",
    "validate_item",
]
