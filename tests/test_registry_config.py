"""Tests for the transport registry and connection configuration."""

import pytest

from vlcomm.config import ConnectionConfig
from vlcomm.errors import ConfigError
from vlcomm.modbus import ModbusServerConfig, ModbusTcpServer
from vlcomm.registry import TransportRegistry, default_registry
from vlcomm.transports import ModbusClientConfig, ModbusTcpClientTransport, TcpClient, TcpServer, UdpClient, UdpServer
from vlcomm.types import TransportKind


class TestRegistry:
    """Explicit kind to factory registration."""

    def test_default_kinds(self) -> None:
        """Every built-in kind is registered."""
        registry = default_registry()
        assert registry.kinds() == sorted(k.value for k in TransportKind)
        assert "tcp_client" in registry
        assert TransportKind.UDP_SERVER in registry

    def test_unknown_kind(self) -> None:
        """Creating an unregistered kind raises KeyError."""
        with pytest.raises(KeyError, match="serial"):
            TransportRegistry().create("serial")

    def test_register_custom_factory(self) -> None:
        """A registered factory receives the keyword arguments."""
        registry = TransportRegistry()
        registry.register("loop", lambda **kw: TcpClient(**kw))
        client = registry.create("loop", host="127.0.0.1", port=9)
        assert isinstance(client, TcpClient)
        assert client.port == 9


class TestValidate:
    """ConnectionConfig.validate messages."""

    @pytest.mark.parametrize(
        "config, reason",
        [
            (ConnectionConfig("  ", TransportKind.TCP_CLIENT), "Connection name cannot be empty"),
            (ConnectionConfig("a", TransportKind.TCP_SERVER, port=0), "Port must be in 1..65535, got 0"),
            (ConnectionConfig("a", TransportKind.UDP_CLIENT, port=70000), "Port must be in 1..65535, got 70000"),
            (ConnectionConfig("a", TransportKind.TCP_CLIENT, host=""), "IP address cannot be empty"),
            (ConnectionConfig("a", TransportKind.TCP_CLIENT, host="plc.local"), "Invalid IP address: plc.local"),
            (
                ConnectionConfig("a", TransportKind.MODBUS_TCP_SERVER, modbus_server=ModbusServerConfig(unit_id=0)),
                "Unit ID cannot be 0",
            ),
            (
                ConnectionConfig("a", TransportKind.MODBUS_TCP_SERVER, modbus_server=ModbusServerConfig(max_clients=0)),
                "Max clients must be positive",
            ),
            (
                ConnectionConfig("a", TransportKind.MODBUS_TCP_CLIENT, modbus_client=ModbusClientConfig(timeout=0)),
                "Timeout must be positive",
            ),
            (
                ConnectionConfig("a", TransportKind.MODBUS_TCP_CLIENT, modbus_client=ModbusClientConfig(retries=-1)),
                "Retries cannot be negative",
            ),
        ],
    )
    def test_invalid(self, config: ConnectionConfig, reason: str) -> None:
        """Each invalid configuration reports its reason."""
        assert config.validate() == (False, reason)

    def test_server_host_not_checked(self) -> None:
        """Plain servers bind all interfaces, so host is not validated."""
        assert ConnectionConfig("srv", TransportKind.TCP_SERVER, host="anything").validate() == (True, None)

    def test_defaults_are_valid(self) -> None:
        """Every default configuration validates."""
        for factory in (
            ConnectionConfig.default_tcp_client,
            ConnectionConfig.default_tcp_server,
            ConnectionConfig.default_udp_client,
            ConnectionConfig.default_udp_server,
            ConnectionConfig.default_modbus_server,
            ConnectionConfig.default_modbus_client,
        ):
            assert factory().validate() == (True, None)


class TestCreate:
    """ConnectionConfig.create through the default registry."""

    def test_each_kind(self) -> None:
        """Every kind builds its transport class, unopened."""
        registry = default_registry()
        expected = [
            (ConnectionConfig.default_tcp_client(), TcpClient),
            (ConnectionConfig.default_tcp_server(), TcpServer),
            (ConnectionConfig.default_udp_client(), UdpClient),
            (ConnectionConfig.default_udp_server(), UdpServer),
            (ConnectionConfig.default_modbus_server(), ModbusTcpServer),
            (ConnectionConfig.default_modbus_client(), ModbusTcpClientTransport),
        ]
        for config, cls in expected:
            transport = config.create(registry)
            assert isinstance(transport, cls)
            assert transport.name == config.name
            assert not transport.is_connected

    def test_udp_framing_flag(self) -> None:
        """framed_udp is passed to UDP transports."""
        config = ConnectionConfig("u", TransportKind.UDP_SERVER, port=9000, framed_udp=True)
        server = config.create(default_registry())
        assert isinstance(server, UdpServer)
        assert server.framed

    def test_modbus_settings_passed(self) -> None:
        """Modbus settings objects reach the transport."""
        settings = ModbusClientConfig(unit_id=7)
        config = ConnectionConfig("m", TransportKind.MODBUS_TCP_CLIENT, "10.1.1.1", 1502, modbus_client=settings)
        client = config.create(default_registry())
        assert isinstance(client, ModbusTcpClientTransport)
        assert client.config is settings
        assert client.remote_address == "10.1.1.1:1502"

    def test_invalid_raises(self) -> None:
        """create() refuses an invalid configuration."""
        with pytest.raises(ConfigError, match="Invalid IP address"):
            ConnectionConfig("bad", TransportKind.TCP_CLIENT, host="nope").create(default_registry())
