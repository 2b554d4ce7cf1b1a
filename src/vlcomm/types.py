"""Core data model: message/connection enums, Modbus areas and data types, ModbusAddressItem."""

from dataclasses import dataclass
from enum import Enum, IntEnum


class MessageType(str, Enum):
    """Role of a message on the wire."""

    COMMAND = "Command"
    RESPONSE = "Response"
    EVENT = "Event"
    HEARTBEAT = "Heartbeat"

    @classmethod
    def parse(cls, text: str) -> "MessageType | None":
        """Case-insensitive lookup by value or member name; None if unknown."""
        t = text.strip().lower()
        for member in cls:
            if member.value.lower() == t or member.name.lower() == t:
                return member
        return None


class ConnectionState(str, Enum):
    """Authoritative connection state of a transport."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class TransportKind(str, Enum):
    """Transport kinds known to the default registry."""

    TCP_CLIENT = "tcp_client"
    TCP_SERVER = "tcp_server"
    UDP_CLIENT = "udp_client"
    UDP_SERVER = "udp_server"
    MODBUS_TCP_SERVER = "modbus_tcp_server"
    MODBUS_TCP_CLIENT = "modbus_tcp_client"


class FunctionArea(IntEnum):
    """The four Modbus data areas; the value is the display-address prefix digit."""

    COILS = 0
    DISCRETE_INPUTS = 1
    INPUT_REGISTERS = 3
    HOLDING_REGISTERS = 4

    @property
    def is_bit_area(self) -> bool:
        return self in (FunctionArea.COILS, FunctionArea.DISCRETE_INPUTS)

    @property
    def display_offset(self) -> int:
        return int(self.value) * 10000

    @property
    def label(self) -> str:
        return _AREA_LABELS[self]


_AREA_LABELS: dict[FunctionArea, str] = {
    FunctionArea.COILS: "Coils",
    FunctionArea.DISCRETE_INPUTS: "DiscreteInputs",
    FunctionArea.INPUT_REGISTERS: "InputRegisters",
    FunctionArea.HOLDING_REGISTERS: "HoldingRegisters",
}


class DataType(str, Enum):
    """Value types a mapped variable may hold."""

    BOOLEAN = "Boolean"
    UINT16 = "UInt16"
    INT16 = "Int16"
    FLOAT = "Float"

    @property
    def length(self) -> int:
        """Number of consecutive addresses the type occupies."""
        return 2 if self is DataType.FLOAT else 1


class ByteOrder(str, Enum):
    """Packing of a 32-bit float across two 16-bit registers (A is the most significant byte)."""

    ABCD = "ABCD"
    BADC = "BADC"
    CDAB = "CDAB"
    DCBA = "DCBA"


@dataclass(frozen=True)
class ModbusAddressItem:
    """One named variable: Modbus area, 1-based address, data type and default value."""

    name: str
    function_area: FunctionArea
    address: int
    data_type: DataType
    default_value: str = ""
    description: str = ""
    enabled: bool = True

    def __post_init__(self) -> None:
        if not 0 <= self.address <= 65535:
            raise ValueError(f"address must be in 0..65535, got {self.address}")

    @property
    def length(self) -> int:
        return self.data_type.length

    @property
    def display_address(self) -> str:
        """Conventional display form, e.g. 10001 for discrete input 1, 40001 for holding register 1."""
        return f"{self.function_area.display_offset + self.address:05d}"
