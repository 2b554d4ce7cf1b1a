"""TransportRegistry: explicit map from transport kind to factory."""

import logging
from typing import Any, Callable

from .modbus.server import ModbusTcpServer
from .transports import ModbusTcpClientTransport, TcpClient, TcpServer, Transport, UdpClient, UdpServer
from .types import TransportKind

logger = logging.getLogger(__name__)

TransportFactory = Callable[..., Transport]


def _key(kind: TransportKind | str) -> str:
    return kind.value if isinstance(kind, TransportKind) else str(kind)


class TransportRegistry:
    """Kinds are registered explicitly; create() passes keyword arguments through to the factory."""

    def __init__(self) -> None:
        self._factories: dict[str, TransportFactory] = {}

    def register(self, kind: TransportKind | str, factory: TransportFactory) -> None:
        key = _key(kind)
        if key in self._factories:
            logger.debug("Replacing transport factory for %s", key)
        self._factories[key] = factory

    def create(self, kind: TransportKind | str, **kwargs: Any) -> Transport:
        key = _key(kind)
        factory = self._factories.get(key)
        if factory is None:
            raise KeyError(f"Unknown transport kind: {key!r}")
        return factory(**kwargs)

    def kinds(self) -> list[str]:
        return sorted(self._factories)

    def __contains__(self, kind: object) -> bool:
        return isinstance(kind, str) and _key(kind) in self._factories


def default_registry() -> TransportRegistry:
    """Fresh registry with every built-in transport kind."""
    registry = TransportRegistry()
    registry.register(TransportKind.TCP_CLIENT, TcpClient)
    registry.register(TransportKind.TCP_SERVER, TcpServer)
    registry.register(TransportKind.UDP_CLIENT, UdpClient)
    registry.register(TransportKind.UDP_SERVER, UdpServer)
    registry.register(TransportKind.MODBUS_TCP_SERVER, ModbusTcpServer)
    registry.register(TransportKind.MODBUS_TCP_CLIENT, ModbusTcpClientTransport)
    return registry
