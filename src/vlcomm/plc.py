"""
PLC link adapters. The vendor links are consumed through two small protocols:
a bool link addressed by strings ("DB1.DBX0.0") and a symbol link that reads and
writes variables through handles. Operations report failure as a False result plus
a log line instead of raising.
"""

import logging
import threading
from datetime import datetime
from typing import Any, Protocol

from .events import EventHook
from .message import Message, create_event
from .types import ConnectionState
from .transports.base import Transport

logger = logging.getLogger(__name__)

DEFAULT_SYMBOL_PORT = 851

PLC_TYPES: dict[str, type] = {
    "BOOL": bool,
    "BYTE": int,
    "INT": int,
    "DINT": int,
    "REAL": float,
    "LREAL": float,
    "STRING": str,
}

_INT_RANGES: dict[str, tuple[int, int]] = {
    "BYTE": (0, 255),
    "INT": (-32768, 32767),
    "DINT": (-(2**31), 2**31 - 1),
}


class BoolPlcLink(Protocol):
    """Bit-addressed PLC link."""

    def connect(self, target: str) -> None: ...

    @property
    def is_connected(self) -> bool: ...

    def read_bool(self, address: str) -> bool: ...

    def write_bool(self, address: str, value: bool) -> None: ...

    def disconnect(self) -> None: ...


class SymbolPlcLink(Protocol):
    """Symbol/handle PLC link."""

    def connect(self, net_id: str, port: int) -> None: ...

    def create_handle(self, name: str) -> int: ...

    def read_typed(self, handle: int, value_type: type) -> Any: ...

    def write_typed(self, handle: int, value: Any) -> None: ...

    def delete_handle(self, handle: int) -> None: ...

    def disconnect(self) -> None: ...


def convert_plc_value(text: str, plc_type: str) -> Any:
    """Convert text to the Python value for a PLC type name; raise ValueError if it does not fit."""
    kind = plc_type.strip().upper()
    if kind not in PLC_TYPES:
        raise ValueError(f"Unsupported PLC data type: {plc_type}")
    if kind == "STRING":
        return text
    v = text.strip()
    if kind == "BOOL":
        if v.lower() == "true":
            return True
        if v.lower() == "false":
            return False
        raise ValueError(f"Invalid BOOL value: {text!r}")
    if kind in _INT_RANGES:
        num = int(v)
        lo, hi = _INT_RANGES[kind]
        if not lo <= num <= hi:
            raise ValueError(f"{kind} value out of range {lo}..{hi}: {num}")
        return num
    return float(v)


class _PlcConnection(Transport):
    """Shared log hook for the PLC adapters."""

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.log_received = EventHook(f"{name}.log_received")

    def _log(self, text: str, level: int = logging.INFO) -> None:
        logger.log(level, "%s: %s", self.name, text)
        self.log_received.emit(f"[{self.name}] {datetime.now():%H:%M:%S} {text}")


class BoolPlcConnection(_PlcConnection):
    """Transport over a BoolPlcLink. send() understands READ_BOOL and WRITE_BOOL (params address, value)."""

    def __init__(self, link: BoolPlcLink, target: str, *, name: str | None = None) -> None:
        super().__init__(name or f"PLC_{target}")
        self.link = link
        self.target = target

    def open(self) -> bool:
        if not self._begin_open():
            return True
        try:
            self.link.connect(self.target)
        except Exception as e:
            self._fail(f"Connection to {self.target} failed", e)
            return False
        if not self.link.is_connected:
            self._fail(f"Connection to {self.target} not established")
            return False
        self._set_state(ConnectionState.CONNECTED)
        self._log(f"Connected to {self.target}")
        return True

    def close(self) -> None:
        if self.state == ConnectionState.DISCONNECTED:
            return
        try:
            self.link.disconnect()
        except Exception as e:
            self._log(f"Disconnect failed: {e}", logging.WARNING)
        self._set_state(ConnectionState.DISCONNECTED)

    def read_bool(self, address: str) -> tuple[bool, bool]:
        """(ok, value); value is False when ok is False."""
        if not self.is_connected:
            self._log(f"Read {address} skipped: not connected", logging.WARNING)
            return False, False
        try:
            return True, bool(self.link.read_bool(address))
        except Exception as e:
            self._log(f"Read {address} failed: {e}", logging.WARNING)
            return False, False

    def write_bool(self, address: str, value: bool) -> bool:
        if not self.is_connected:
            self._log(f"Write {address} skipped: not connected", logging.WARNING)
            return False
        try:
            self.link.write_bool(address, value)
        except Exception as e:
            self._log(f"Write {address} failed: {e}", logging.WARNING)
            return False
        self._log(f"Wrote {address} = {value}", logging.DEBUG)
        return True

    def send(self, message: Message) -> bool:
        op = message.command.strip().upper()
        address = message.get_str("address")
        if not address:
            self._log(f"{op}: missing address parameter", logging.WARNING)
            return False
        if op == "WRITE_BOOL":
            return self.write_bool(address, message.get_bool("value"))
        if op == "READ_BOOL":
            ok, value = self.read_bool(address)
            if ok:
                self.message_received.emit(create_event("DATA_READ", address=address, value=value))
            return ok
        self._log(f"Unsupported command: {message.command}", logging.WARNING)
        return False


class SymbolPlcConnection(_PlcConnection):
    """
    Transport over a SymbolPlcLink. Handles are created on first use and cached by
    variable name; close() deletes every cached handle and clears the cache.
    send() understands READ and WRITE with params name, type and (for WRITE) value.
    """

    def __init__(
        self,
        link: SymbolPlcLink,
        net_id: str,
        port: int = DEFAULT_SYMBOL_PORT,
        *,
        name: str | None = None,
    ) -> None:
        super().__init__(name or f"ADS_{net_id.replace('.', '_')}")
        self.link = link
        self.net_id = net_id
        self.port = port
        self._handles: dict[str, int] = {}
        self._handles_lock = threading.Lock()

    @property
    def cached_handles(self) -> dict[str, int]:
        with self._handles_lock:
            return dict(self._handles)

    def open(self) -> bool:
        if not self._begin_open():
            return True
        try:
            self.link.connect(self.net_id, self.port)
        except Exception as e:
            self._fail(f"Connection to {self.net_id}:{self.port} failed", e)
            return False
        self._set_state(ConnectionState.CONNECTED)
        self._log(f"Connected to {self.net_id}:{self.port}")
        return True

    def close(self) -> None:
        if self.state == ConnectionState.DISCONNECTED:
            return
        with self._handles_lock:
            handles, self._handles = self._handles, {}
        for var_name, handle in handles.items():
            try:
                self.link.delete_handle(handle)
            except Exception as e:
                self._log(f"Deleting handle of {var_name} failed: {e}", logging.WARNING)
        try:
            self.link.disconnect()
        except Exception as e:
            self._log(f"Disconnect failed: {e}", logging.WARNING)
        self._set_state(ConnectionState.DISCONNECTED)

    def _handle(self, var_name: str) -> int:
        with self._handles_lock:
            handle = self._handles.get(var_name)
            if handle is None:
                handle = self.link.create_handle(var_name)
                self._handles[var_name] = handle
                logger.debug("%s: handle %s = %s", self.name, var_name, handle)
            return handle

    def read(self, var_name: str, value_type: type) -> tuple[bool, Any]:
        """(ok, value); value is None when ok is False."""
        if not self.is_connected:
            self._log(f"Read {var_name} skipped: not connected", logging.WARNING)
            return False, None
        try:
            return True, self.link.read_typed(self._handle(var_name), value_type)
        except Exception as e:
            self._log(f"Read {var_name} failed: {e}", logging.WARNING)
            return False, None

    def write(self, var_name: str, value: Any) -> bool:
        if not self.is_connected:
            self._log(f"Write {var_name} skipped: not connected", logging.WARNING)
            return False
        try:
            self.link.write_typed(self._handle(var_name), value)
        except Exception as e:
            self._log(f"Write {var_name} failed: {e}", logging.WARNING)
            return False
        self._log(f"Wrote {var_name} = {value!r}", logging.DEBUG)
        return True

    def write_from_string(self, var_name: str, text: str, plc_type: str) -> bool:
        """Convert text per plc_type (BOOL, BYTE, INT, DINT, REAL, LREAL, STRING) and write it."""
        try:
            value = convert_plc_value(text, plc_type)
        except ValueError as e:
            self._log(f"Write {var_name} failed: {e}", logging.WARNING)
            return False
        return self.write(var_name, value)

    def variable_exists(self, var_name: str) -> bool:
        """Check with a temporary handle (not cached)."""
        if not self.is_connected:
            return False
        try:
            handle = self.link.create_handle(var_name)
        except Exception as e:
            self._log(f"Variable {var_name} not found: {e}", logging.DEBUG)
            return False
        try:
            self.link.delete_handle(handle)
        except Exception as e:
            self._log(f"Deleting temporary handle of {var_name} failed: {e}", logging.WARNING)
        return True

    def send(self, message: Message) -> bool:
        op = message.command.strip().upper()
        var_name = message.get_str("name")
        plc_type = message.get_str("type", "STRING").upper()
        if not var_name:
            self._log(f"{op}: missing name parameter", logging.WARNING)
            return False
        if op == "WRITE":
            return self.write_from_string(var_name, message.get_str("value"), plc_type)
        if op == "READ":
            value_type = PLC_TYPES.get(plc_type)
            if value_type is None:
                self._log(f"Unsupported PLC data type: {plc_type}", logging.WARNING)
                return False
            ok, value = self.read(var_name, value_type)
            if ok:
                self.message_received.emit(create_event("DATA_READ", name=var_name, value=value))
            return ok
        self._log(f"Unsupported command: {message.command}", logging.WARNING)
        return False
