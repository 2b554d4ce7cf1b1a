"""ConnectionConfig: one named connection definition, its validation and transport creation."""

import ipaddress
import logging
from dataclasses import dataclass, field
from typing import Any

from .errors import ConfigError
from .modbus.server import ModbusServerConfig
from .registry import TransportRegistry
from .transports import ModbusClientConfig, Transport
from .types import TransportKind

logger = logging.getLogger(__name__)

_NEEDS_REMOTE_IP = (TransportKind.TCP_CLIENT, TransportKind.UDP_CLIENT, TransportKind.MODBUS_TCP_CLIENT)


@dataclass
class ConnectionConfig:
    """
    What to connect to and how. host is the remote address for client kinds and the
    bind address for the Modbus server; plain TCP/UDP servers listen on all interfaces.
    """

    name: str
    kind: TransportKind
    host: str = "127.0.0.1"
    port: int = 8080
    framed_udp: bool = False
    modbus_server: ModbusServerConfig = field(default_factory=ModbusServerConfig)
    modbus_client: ModbusClientConfig = field(default_factory=ModbusClientConfig)

    def validate(self) -> tuple[bool, str | None]:
        """(True, None) when usable, else (False, reason)."""
        if not self.name or not self.name.strip():
            return False, "Connection name cannot be empty"
        if not 1 <= self.port <= 65535:
            return False, f"Port must be in 1..65535, got {self.port}"
        if self.kind in _NEEDS_REMOTE_IP:
            if not self.host or not self.host.strip():
                return False, "IP address cannot be empty"
            try:
                ipaddress.ip_address(self.host.strip())
            except ValueError:
                return False, f"Invalid IP address: {self.host}"
        if self.kind == TransportKind.MODBUS_TCP_SERVER:
            if self.modbus_server.unit_id == 0:
                return False, "Unit ID cannot be 0"
            if self.modbus_server.max_clients <= 0:
                return False, "Max clients must be positive"
        if self.kind == TransportKind.MODBUS_TCP_CLIENT:
            if self.modbus_client.unit_id == 0:
                return False, "Unit ID cannot be 0"
            if self.modbus_client.timeout <= 0:
                return False, "Timeout must be positive"
            if self.modbus_client.retries < 0:
                return False, "Retries cannot be negative"
        return True, None

    def create(self, registry: TransportRegistry) -> Transport:
        """Build the transport through registry; raise ConfigError when invalid."""
        ok, reason = self.validate()
        if not ok:
            raise ConfigError(f"{self.name or '<unnamed>'}: {reason}")
        kind = TransportKind(self.kind)
        kwargs: dict[str, Any]
        if kind == TransportKind.TCP_CLIENT:
            kwargs = {"host": self.host, "port": self.port, "name": self.name}
        elif kind == TransportKind.TCP_SERVER:
            kwargs = {"port": self.port, "name": self.name}
        elif kind == TransportKind.UDP_CLIENT:
            kwargs = {"host": self.host, "port": self.port, "name": self.name, "framed": self.framed_udp}
        elif kind == TransportKind.UDP_SERVER:
            kwargs = {"port": self.port, "name": self.name, "framed": self.framed_udp}
        elif kind == TransportKind.MODBUS_TCP_SERVER:
            kwargs = {"host": self.host, "port": self.port, "name": self.name, "config": self.modbus_server}
        else:
            kwargs = {"host": self.host, "port": self.port, "name": self.name, "config": self.modbus_client}
        logger.debug("Creating %s transport %r", kind.value, self.name)
        return registry.create(kind, **kwargs)

    # ------------------------------------------------------------------
    # Defaults
    # ------------------------------------------------------------------

    @classmethod
    def default_tcp_client(cls) -> "ConnectionConfig":
        return cls("TCP client", TransportKind.TCP_CLIENT, "127.0.0.1", 8080)

    @classmethod
    def default_tcp_server(cls) -> "ConnectionConfig":
        return cls("TCP server", TransportKind.TCP_SERVER, "0.0.0.0", 8080)

    @classmethod
    def default_udp_client(cls) -> "ConnectionConfig":
        return cls("UDP client", TransportKind.UDP_CLIENT, "127.0.0.1", 8081)

    @classmethod
    def default_udp_server(cls) -> "ConnectionConfig":
        return cls("UDP server", TransportKind.UDP_SERVER, "0.0.0.0", 8081)

    @classmethod
    def default_modbus_server(cls) -> "ConnectionConfig":
        return cls("Modbus TCP server", TransportKind.MODBUS_TCP_SERVER, "127.0.0.1", 502)

    @classmethod
    def default_modbus_client(cls) -> "ConnectionConfig":
        return cls("Modbus TCP client", TransportKind.MODBUS_TCP_CLIENT, "192.168.1.10", 502)
