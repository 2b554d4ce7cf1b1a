"""vlcomm: framed message protocol, TCP/UDP transports and a Modbus-TCP register server."""

__version__ = "0.1.0"

from .codec import FrameCodec, crc16
from .config import ConnectionConfig
from .errors import ConfigError, FrameError, ModbusIOError, TransportError, UnknownVariableError, VlCommError
from .events import EventHook, QueueSubscriber
from .message import (
    Message,
    create_command,
    create_event,
    create_heartbeat,
    create_json_message,
    create_response,
)
from .modbus import AddressMap, ModbusServerConfig, ModbusTcpServer, RegisterStore, default_address_map
from .plc import BoolPlcConnection, SymbolPlcConnection
from .registry import TransportRegistry, default_registry
from .transports import (
    ModbusClientConfig,
    ModbusTcpClientTransport,
    TcpClient,
    TcpServer,
    Transport,
    UdpClient,
    UdpServer,
)
from .types import (
    ByteOrder,
    ConnectionState,
    DataType,
    FunctionArea,
    MessageType,
    ModbusAddressItem,
    TransportKind,
)

__all__ = [
    "__version__",
    "AddressMap",
    "BoolPlcConnection",
    "ByteOrder",
    "ConfigError",
    "ConnectionConfig",
    "ConnectionState",
    "DataType",
    "EventHook",
    "FrameCodec",
    "FrameError",
    "FunctionArea",
    "Message",
    "MessageType",
    "ModbusAddressItem",
    "ModbusClientConfig",
    "ModbusIOError",
    "ModbusServerConfig",
    "ModbusTcpClientTransport",
    "ModbusTcpServer",
    "QueueSubscriber",
    "RegisterStore",
    "SymbolPlcConnection",
    "TcpClient",
    "TcpServer",
    "Transport",
    "TransportError",
    "TransportKind",
    "TransportRegistry",
    "UdpClient",
    "UdpServer",
    "UnknownVariableError",
    "VlCommError",
    "crc16",
    "create_command",
    "create_event",
    "create_heartbeat",
    "create_json_message",
    "create_response",
    "default_address_map",
    "default_registry",
]
