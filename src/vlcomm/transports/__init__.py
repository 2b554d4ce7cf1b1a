"""Transports sharing one connection state machine: framed TCP client/server, UDP client/server, Modbus-TCP client."""

from .base import Transport
from .modbus_client import ModbusClientConfig, ModbusTcpClientTransport
from .tcp import TcpClient, TcpConnection
from .tcp_server import TcpServer
from .udp import UdpClient, UdpServer

__all__ = [
    "ModbusClientConfig",
    "ModbusTcpClientTransport",
    "TcpClient",
    "TcpConnection",
    "TcpServer",
    "Transport",
    "UdpClient",
    "UdpServer",
]
