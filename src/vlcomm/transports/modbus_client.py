"""ModbusTcpClientTransport: pymodbus TCP master as a Transport, with typed I/O and a text command interface."""

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable

from pymodbus.client import ModbusTcpClient
from pymodbus.exceptions import ModbusException as PymodbusException

from ..errors import ModbusIOError
from ..message import Message, create_event
from ..modbus.byte_order import float_to_registers, registers_to_float
from ..types import ByteOrder, ConnectionState, FunctionArea
from .base import Transport

logger = logging.getLogger(__name__)

MAX_READ_BITS = 2000
MAX_READ_REGISTERS = 125
MAX_WRITE_REGISTERS = 123


@dataclass
class ModbusClientConfig:
    """Modbus-TCP client settings."""

    unit_id: int = 1
    enable_logging: bool = True
    byte_order: ByteOrder = ByteOrder.ABCD
    timeout: float = 3.0
    retries: int = 3


def _parse_bit(text: str) -> bool:
    v = text.strip().lower()
    if v == "true":
        return True
    if v == "false":
        return False
    return int(v) != 0


def _parse_word(text: str) -> int:
    num = int(text.strip())
    if not 0 <= num <= 0xFFFF:
        raise ValueError(f"Register value out of range 0..65535: {num}")
    return num


def _join(values: list[Any]) -> str:
    return ",".join(str(v).lower() if isinstance(v, bool) else str(v) for v in values)


class ModbusTcpClientTransport(Transport):
    """
    Modbus-TCP master. Typed read/write methods raise ModbusIOError; send(message) runs a
    text command from message.command and reports through message_received:

        READ_COIL a [n]      READ_DISCRETE a [n]    (n in 1..2000)
        READ_HOLDING a [n]   READ_INPUT a [n]       (n in 1..125)
        WRITE_COIL a v[,v...]    WRITE_REGISTER a v[,v...] (at most 123 values)
        WRITE_FLOAT a f      CONNECT      DISCONNECT

    Tokens are separated by ':' or spaces. Results arrive as DATA_READ / DATA_WRITTEN
    events; every operation also emits a LOG event. Addresses are wire addresses.
    """

    def __init__(
        self,
        host: str,
        port: int = 502,
        config: ModbusClientConfig | None = None,
        *,
        name: str | None = None,
    ) -> None:
        super().__init__(name or f"ModbusTcpClient_{host}_{port}")
        self.host = host
        self.port = port
        self.config = config or ModbusClientConfig()
        self._client: ModbusTcpClient | None = None
        self.successful_reads = 0
        self.failed_reads = 0
        self.successful_writes = 0
        self.failed_writes = 0

    @property
    def remote_address(self) -> str:
        return f"{self.host}:{self.port}"

    def statistics(self) -> dict[str, int]:
        return {
            "successful_reads": self.successful_reads,
            "failed_reads": self.failed_reads,
            "successful_writes": self.successful_writes,
            "failed_writes": self.failed_writes,
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> bool:
        if not self._begin_open():
            return True
        client = ModbusTcpClient(
            host=self.host,
            port=self.port,
            timeout=self.config.timeout,
            retries=self.config.retries,
        )
        try:
            connected = client.connect()
        except PymodbusException as e:
            self._fail(f"Failed to connect to {self.remote_address}", e)
            return False
        if not connected:
            client.close()
            self._fail(f"Failed to connect to {self.remote_address}")
            return False
        self._client = client
        self._set_state(ConnectionState.CONNECTED)
        self._log(f"Connected to {self.remote_address} (unit {self.config.unit_id})")
        return True

    def close(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            try:
                client.close()
            except Exception as e:
                logger.warning("Error closing Modbus client: %s", e)
        self._set_state(ConnectionState.DISCONNECTED)

    # ------------------------------------------------------------------
    # Typed I/O
    # ------------------------------------------------------------------

    def _request(self, area: FunctionArea, address: int, write: bool, call: Callable[[ModbusTcpClient], Any]) -> Any:
        client = self._client
        try:
            if client is None or not self.is_connected:
                raise ModbusIOError(f"Not connected to {self.remote_address}", area=area.label, address=address)
            try:
                rr = call(client)
            except PymodbusException as e:
                raise ModbusIOError(str(e), area=area.label, address=address, cause=e) from e
            if rr.isError():
                raise ModbusIOError(str(rr), area=area.label, address=address, cause=getattr(rr, "exception", None))
        except ModbusIOError:
            if write:
                self.failed_writes += 1
            else:
                self.failed_reads += 1
            raise
        if write:
            self.successful_writes += 1
        else:
            self.successful_reads += 1
        return rr

    def _read_bits(self, area: FunctionArea, address: int, count: int) -> list[bool]:
        unit = self.config.unit_id
        if area == FunctionArea.COILS:
            rr = self._request(area, address, False, lambda c: c.read_coils(address, count=count, device_id=unit))
        else:
            rr = self._request(area, address, False, lambda c: c.read_discrete_inputs(address, count=count, device_id=unit))
        bits = getattr(rr, "bits", None)
        if not bits or len(bits) < count:
            raise ModbusIOError("Short bit response", area=area.label, address=address)
        return [bool(b) for b in bits[:count]]

    def _read_words(self, area: FunctionArea, address: int, count: int) -> list[int]:
        unit = self.config.unit_id
        if area == FunctionArea.HOLDING_REGISTERS:
            rr = self._request(area, address, False, lambda c: c.read_holding_registers(address, count=count, device_id=unit))
        else:
            rr = self._request(area, address, False, lambda c: c.read_input_registers(address, count=count, device_id=unit))
        registers = getattr(rr, "registers", None)
        if not registers or len(registers) < count:
            raise ModbusIOError("Short register response", area=area.label, address=address)
        return [int(r) for r in registers[:count]]

    def read_coils(self, address: int, count: int = 1) -> list[bool]:
        return self._read_bits(FunctionArea.COILS, address, count)

    def read_discrete_inputs(self, address: int, count: int = 1) -> list[bool]:
        return self._read_bits(FunctionArea.DISCRETE_INPUTS, address, count)

    def read_holding_registers(self, address: int, count: int = 1) -> list[int]:
        return self._read_words(FunctionArea.HOLDING_REGISTERS, address, count)

    def read_input_registers(self, address: int, count: int = 1) -> list[int]:
        return self._read_words(FunctionArea.INPUT_REGISTERS, address, count)

    def read_float(self, address: int, input_registers: bool = False) -> float:
        """Two consecutive registers decoded with the configured byte order."""
        area = FunctionArea.INPUT_REGISTERS if input_registers else FunctionArea.HOLDING_REGISTERS
        reg1, reg2 = self._read_words(area, address, 2)
        return registers_to_float(reg1, reg2, self.config.byte_order)

    def write_coil(self, address: int, value: bool) -> None:
        unit = self.config.unit_id
        self._request(FunctionArea.COILS, address, True, lambda c: c.write_coil(address, bool(value), device_id=unit))

    def write_coils(self, address: int, values: list[bool]) -> None:
        unit = self.config.unit_id
        bits = [bool(v) for v in values]
        self._request(FunctionArea.COILS, address, True, lambda c: c.write_coils(address, bits, device_id=unit))

    def write_register(self, address: int, value: int) -> None:
        unit = self.config.unit_id
        self._request(FunctionArea.HOLDING_REGISTERS, address, True, lambda c: c.write_register(address, int(value), device_id=unit))

    def write_registers(self, address: int, values: list[int]) -> None:
        unit = self.config.unit_id
        words = [int(v) for v in values]
        self._request(FunctionArea.HOLDING_REGISTERS, address, True, lambda c: c.write_registers(address, words, device_id=unit))

    def write_float(self, address: int, value: float) -> None:
        self.write_registers(address, list(float_to_registers(value, self.config.byte_order)))

    # ------------------------------------------------------------------
    # Text commands
    # ------------------------------------------------------------------

    def _log(self, content: str, level: int = logging.INFO) -> None:
        logger.log(level, "%s: %s", self.name, content)
        if self.config.enable_logging:
            self.message_received.emit(create_event("LOG", content=content, source=self.name))

    def send(self, message: Message) -> bool:
        parts = [p for p in re.split(r"[:\s]+", message.command.strip(), maxsplit=2) if p]
        if not parts:
            self._log("Empty Modbus command", logging.WARNING)
            return False
        op = parts[0].upper()
        if op == "CONNECT":
            return self.open()
        if op == "DISCONNECT":
            self.close()
            return True
        handler = self._COMMANDS.get(op)
        if handler is None:
            self._log(f"Unknown Modbus command: {op}", logging.WARNING)
            return False
        if len(parts) < 2:
            self._log(f"{op}: missing address", logging.WARNING)
            return False
        try:
            address = int(parts[1])
            if not 0 <= address <= 0xFFFF:
                raise ValueError(f"address out of range 0..65535: {address}")
            return handler(self, op, address, parts[2] if len(parts) > 2 else "")
        except ValueError as e:
            self._log(f"{op}: invalid argument: {e}", logging.WARNING)
        except ModbusIOError as e:
            self._log(f"{op} at {parts[1]} failed: {e}", logging.WARNING)
        return False

    def _cmd_read(self, op: str, address: int, arg: str) -> bool:
        area = {
            "READ_COIL": FunctionArea.COILS,
            "READ_DISCRETE": FunctionArea.DISCRETE_INPUTS,
            "READ_HOLDING": FunctionArea.HOLDING_REGISTERS,
            "READ_INPUT": FunctionArea.INPUT_REGISTERS,
        }[op]
        count = int(arg) if arg.strip() else 1
        limit = MAX_READ_BITS if area.is_bit_area else MAX_READ_REGISTERS
        if not 1 <= count <= limit:
            self._log(f"{op}: quantity {count} out of range 1..{limit}", logging.WARNING)
            return False
        if area.is_bit_area:
            values: list[Any] = self._read_bits(area, address, count)
        else:
            values = self._read_words(area, address, count)
        self._log(f"{op} {address} x{count}: {_join(values)}")
        self.message_received.emit(
            create_event("DATA_READ", area=area.label, address=address, count=count, values=_join(values))
        )
        return True

    def _cmd_write_coil(self, op: str, address: int, arg: str) -> bool:
        values = [_parse_bit(v) for v in arg.split(",") if v.strip()]
        if not values:
            raise ValueError("no value given")
        if len(values) == 1:
            self.write_coil(address, values[0])
        else:
            self.write_coils(address, values)
        return self._written(op, FunctionArea.COILS, address, _join(values))

    def _cmd_write_register(self, op: str, address: int, arg: str) -> bool:
        values = [_parse_word(v) for v in arg.split(",") if v.strip()]
        if not values:
            raise ValueError("no value given")
        if len(values) > MAX_WRITE_REGISTERS:
            self._log(f"{op}: {len(values)} values exceed the limit of {MAX_WRITE_REGISTERS}", logging.WARNING)
            return False
        if len(values) == 1:
            self.write_register(address, values[0])
        else:
            self.write_registers(address, values)
        return self._written(op, FunctionArea.HOLDING_REGISTERS, address, _join(values))

    def _cmd_write_float(self, op: str, address: int, arg: str) -> bool:
        value = float(arg)
        self.write_float(address, value)
        return self._written(op, FunctionArea.HOLDING_REGISTERS, address, str(value))

    def _written(self, op: str, area: FunctionArea, address: int, values: str) -> bool:
        self._log(f"{op} {address}: {values}")
        self.message_received.emit(create_event("DATA_WRITTEN", area=area.label, address=address, values=values))
        return True

    _COMMANDS: dict[str, Callable[["ModbusTcpClientTransport", str, int, str], bool]] = {
        "READ_COIL": _cmd_read,
        "READ_DISCRETE": _cmd_read,
        "READ_HOLDING": _cmd_read,
        "READ_INPUT": _cmd_read,
        "WRITE_COIL": _cmd_write_coil,
        "WRITE_REGISTER": _cmd_write_register,
        "WRITE_FLOAT": _cmd_write_float,
    }
