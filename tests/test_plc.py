"""Tests for the PLC link adapters (in-memory fake links)."""

from typing import Any

import pytest

from vlcomm.events import QueueSubscriber
from vlcomm.message import Message, create_command
from vlcomm.plc import BoolPlcConnection, SymbolPlcConnection, convert_plc_value
from vlcomm.types import ConnectionState


class FakeBoolLink:
    def __init__(self, fail_connect: bool = False) -> None:
        self.fail_connect = fail_connect
        self.bits: dict[str, bool] = {}
        self._connected = False

    def connect(self, target: str) -> None:
        if self.fail_connect:
            raise OSError(f"unreachable: {target}")
        self._connected = True

    @property
    def is_connected(self) -> bool:
        return self._connected

    def read_bool(self, address: str) -> bool:
        if address not in self.bits:
            raise KeyError(address)
        return self.bits[address]

    def write_bool(self, address: str, value: bool) -> None:
        self.bits[address] = value

    def disconnect(self) -> None:
        self._connected = False


class FakeSymbolLink:
    def __init__(self, symbols: dict[str, Any]) -> None:
        self.symbols = symbols
        self.handles: dict[int, str] = {}
        self.created: list[str] = []
        self.deleted: list[int] = []
        self.disconnected = False
        self._next = 100

    def connect(self, net_id: str, port: int) -> None:
        self.target = (net_id, port)

    def create_handle(self, name: str) -> int:
        if name not in self.symbols:
            raise LookupError(f"symbol not found: {name}")
        self._next += 1
        self.handles[self._next] = name
        self.created.append(name)
        return self._next

    def read_typed(self, handle: int, value_type: type) -> Any:
        return value_type(self.symbols[self.handles[handle]])

    def write_typed(self, handle: int, value: Any) -> None:
        self.symbols[self.handles[handle]] = value

    def delete_handle(self, handle: int) -> None:
        self.deleted.append(handle)
        del self.handles[handle]

    def disconnect(self) -> None:
        self.disconnected = True


# =============================================================================
# Value conversion
# =============================================================================


class TestConvertPlcValue:
    """Text to PLC value conversion."""

    def test_supported_types(self) -> None:
        """Each type name converts to its Python value."""
        assert convert_plc_value("TRUE", "BOOL") is True
        assert convert_plc_value("false", "bool") is False
        assert convert_plc_value("255", "BYTE") == 255
        assert convert_plc_value("-32768", "INT") == -32768
        assert convert_plc_value("2147483647", "DINT") == 2147483647
        assert convert_plc_value("1.5", "REAL") == 1.5
        assert convert_plc_value("2.25", "LREAL") == 2.25
        assert convert_plc_value(" padded ", "STRING") == " padded "

    def test_invalid_values(self) -> None:
        """Out-of-range numbers, bad booleans and unknown types raise ValueError."""
        for text, kind in [("256", "BYTE"), ("40000", "INT"), ("1", "BOOL"), ("x", "REAL"), ("1", "WORD")]:
            with pytest.raises(ValueError):
                convert_plc_value(text, kind)


# =============================================================================
# Bool link
# =============================================================================


class TestBoolPlcConnection:
    """String-addressed bit reads and writes."""

    def test_write_then_read(self) -> None:
        """A written bit reads back."""
        link = FakeBoolLink()
        with BoolPlcConnection(link, "192.168.0.1") as plc:
            assert plc.is_connected
            assert plc.write_bool("DB1.DBX0.0", True)
            assert plc.read_bool("DB1.DBX0.0") == (True, True)
        assert not link.is_connected

    def test_read_failure_reports_false(self) -> None:
        """A failing read returns (False, False) and logs."""
        plc = BoolPlcConnection(FakeBoolLink(), "192.168.0.1")
        logs: QueueSubscriber[str] = QueueSubscriber(plc.log_received)
        assert plc.open()
        assert plc.read_bool("DB9.DBX9.9") == (False, False)
        assert any("failed" in line for line in logs.drain())

    def test_not_connected(self) -> None:
        """Operations before open() fail without touching the link."""
        link = FakeBoolLink()
        plc = BoolPlcConnection(link, "192.168.0.1")
        assert not plc.write_bool("DB1.DBX0.0", True)
        assert link.bits == {}

    def test_connect_failure(self) -> None:
        """A link that cannot connect leaves the connection disconnected."""
        plc = BoolPlcConnection(FakeBoolLink(fail_connect=True), "192.168.0.1")
        assert not plc.open()
        assert plc.state == ConnectionState.DISCONNECTED

    def test_send_commands(self) -> None:
        """WRITE_BOOL and READ_BOOL messages drive the link; reads emit DATA_READ."""
        plc = BoolPlcConnection(FakeBoolLink(), "192.168.0.1")
        events: QueueSubscriber[Message] = QueueSubscriber(plc.message_received)
        plc.open()
        assert plc.send(create_command("WRITE_BOOL", address="M0.1", value="true"))
        assert plc.send(create_command("READ_BOOL", address="M0.1"))
        event = events.get(timeout=1)
        assert event.command == "DATA_READ"
        assert event.parameters == {"address": "M0.1", "value": True}
        assert not plc.send(create_command("READ_BOOL"))
        assert not plc.send(create_command("TOGGLE", address="M0.1"))


# =============================================================================
# Symbol link
# =============================================================================


class TestSymbolPlcConnection:
    """Handle-based variable access."""

    @pytest.fixture
    def link(self) -> FakeSymbolLink:
        return FakeSymbolLink({"MAIN.counter": 5, "MAIN.speed": 1.0, "MAIN.run": False, "MAIN.text": "hi"})

    def test_default_port(self, link: FakeSymbolLink) -> None:
        """The symbol port defaults to 851."""
        plc = SymbolPlcConnection(link, "5.1.2.3.1.1")
        assert plc.open()
        assert link.target == ("5.1.2.3.1.1", 851)

    def test_handles_are_cached(self, link: FakeSymbolLink) -> None:
        """Repeated access to one variable creates one handle."""
        plc = SymbolPlcConnection(link, "5.1.2.3.1.1")
        plc.open()
        assert plc.read("MAIN.counter", int) == (True, 5)
        assert plc.write("MAIN.counter", 6)
        assert plc.read("MAIN.counter", int) == (True, 6)
        assert link.created == ["MAIN.counter"]
        assert list(plc.cached_handles) == ["MAIN.counter"]

    def test_close_releases_handles(self, link: FakeSymbolLink) -> None:
        """close() deletes every cached handle and clears the cache."""
        plc = SymbolPlcConnection(link, "5.1.2.3.1.1")
        plc.open()
        plc.read("MAIN.counter", int)
        plc.read("MAIN.speed", float)
        plc.close()
        assert sorted(link.deleted) == [101, 102]
        assert plc.cached_handles == {}
        assert link.disconnected
        assert plc.state == ConnectionState.DISCONNECTED

    def test_write_from_string(self, link: FakeSymbolLink) -> None:
        """Text is converted per type before writing; bad text is refused."""
        plc = SymbolPlcConnection(link, "5.1.2.3.1.1")
        plc.open()
        assert plc.write_from_string("MAIN.run", "TRUE", "BOOL")
        assert link.symbols["MAIN.run"] is True
        assert plc.write_from_string("MAIN.speed", "2.5", "REAL")
        assert link.symbols["MAIN.speed"] == 2.5
        assert not plc.write_from_string("MAIN.counter", "abc", "INT")
        assert link.symbols["MAIN.counter"] == 5

    def test_unknown_variable(self, link: FakeSymbolLink) -> None:
        """Missing symbols fail reads and existence checks without caching a handle."""
        plc = SymbolPlcConnection(link, "5.1.2.3.1.1")
        plc.open()
        assert plc.read("MAIN.missing", int) == (False, None)
        assert not plc.variable_exists("MAIN.missing")
        assert plc.variable_exists("MAIN.text")
        assert plc.cached_handles == {}

    def test_send_commands(self, link: FakeSymbolLink) -> None:
        """READ and WRITE messages carry name, type and value parameters."""
        plc = SymbolPlcConnection(link, "5.1.2.3.1.1")
        events: QueueSubscriber[Message] = QueueSubscriber(plc.message_received)
        plc.open()
        assert plc.send(create_command("WRITE", name="MAIN.counter", type="DINT", value="42"))
        assert plc.send(create_command("READ", name="MAIN.counter", type="DINT"))
        assert events.get(timeout=1).parameters == {"name": "MAIN.counter", "value": 42}
        assert not plc.send(create_command("READ", name="MAIN.counter", type="WORD"))
        assert not plc.send(create_command("WRITE", type="INT", value="1"))
