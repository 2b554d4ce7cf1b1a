"""
ModbusTcpServer: pymodbus TCP server backed by a RegisterStore, run on a dedicated
thread with its own asyncio loop, logging every inbound request frame.
"""

import asyncio
import logging
import struct
import threading
from dataclasses import dataclass
from typing import Any, Callable

from pymodbus.datastore import ModbusDeviceContext, ModbusSequentialDataBlock, ModbusServerContext
from pymodbus.server import ModbusTcpServer as PymodbusTcpServer

from ..events import EventHook
from ..message import Message
from ..types import ByteOrder, ConnectionState, FunctionArea
from ..transports.base import Transport
from .address_map import AddressMap, default_address_map
from .store import RegisterStore, Value

logger = logging.getLogger(__name__)

MBAP_HEADER = struct.Struct(">HHHB")  # transaction id, protocol id, length, unit id
START_TIMEOUT = 5.0
MAX_ADU = 260  # largest Modbus-TCP request: 7-byte MBAP header + 253-byte PDU

FUNCTION_DESCRIPTIONS: dict[int, str] = {
    0x01: "Read coils",
    0x02: "Read discrete inputs",
    0x03: "Read holding registers",
    0x04: "Read input registers",
    0x05: "Write single coil",
    0x06: "Write single register",
    0x0F: "Write multiple coils",
    0x10: "Write multiple registers",
    0x17: "Read/write multiple registers",
}


@dataclass
class ModbusServerConfig:
    """Modbus-TCP server settings."""

    unit_id: int = 1
    enable_logging: bool = True
    max_clients: int = 10
    byte_order: ByteOrder = ByteOrder.ABCD


def describe_function(code: int) -> str:
    return FUNCTION_DESCRIPTIONS.get(code, f"Unknown function (0x{code:02X})")


def split_mbap_frames(buffer: bytes) -> list[bytes]:
    """Complete MBAP frames at the start of buffer; a trailing partial frame is left out."""
    frames: list[bytes] = []
    offset = 0
    while len(buffer) - offset >= MBAP_HEADER.size + 1:
        _tid, _pid, length, _unit = MBAP_HEADER.unpack_from(buffer, offset)
        total = 6 + length
        if length < 2 or len(buffer) - offset < total:
            break
        frames.append(bytes(buffer[offset:offset + total]))
        offset += total
    return frames


def take_mbap_frames(pending: bytearray) -> list[bytes]:
    """
    Remove and return the complete frames at the start of pending, keeping a trailing
    partial frame for the next chunk. A residue longer than one ADU cannot start a
    valid frame and is discarded.
    """
    frames = split_mbap_frames(bytes(pending))
    del pending[:sum(len(f) for f in frames)]
    if len(pending) > MAX_ADU:
        logger.debug("Discarding %d unframed request bytes", len(pending))
        pending.clear()
    return frames


def format_request(frame: bytes, peer: str) -> str:
    """One log line for a request frame: operation, unit, function code, transaction id, peer, raw hex."""
    tid, _pid, _length, unit = MBAP_HEADER.unpack_from(frame)
    code = frame[MBAP_HEADER.size]
    return (
        f"[Modbus request] {describe_function(code)} | unit: {unit} | function: 0x{code:02X} | "
        f"transaction: {tid} | peer: {peer} | frame: {frame.hex('-').upper()}"
    )


class StoreDataBlock(ModbusSequentialDataBlock):
    """
    pymodbus datablock over one area of a RegisterStore. The device context already
    shifts wire addresses by one, so wire address n reaches store address n + 1.
    """

    def __init__(self, store: RegisterStore, area: FunctionArea) -> None:
        super().__init__(1, [0])  # base storage unused; access is overridden below
        self.store = store
        self.area = area

    def validate(self, address: int, count: int = 1) -> bool:
        return address >= 0 and count > 0 and address + count <= self.store.size

    def getValues(self, address: int, count: int = 1) -> list[Any]:
        if self.area.is_bit_area:
            return self.store.get_bits(self.area, address, count)
        return self.store.get_registers(self.area, address, count)

    def setValues(self, address: int, values: Any) -> None:
        if not isinstance(values, list):
            values = [values]
        if self.area.is_bit_area:
            self.store.set_bits(self.area, address, values)
        else:
            self.store.set_registers(self.area, address, values)


def build_context(store: RegisterStore, unit_id: int) -> ModbusServerContext:
    device = ModbusDeviceContext(
        di=StoreDataBlock(store, FunctionArea.DISCRETE_INPUTS),
        co=StoreDataBlock(store, FunctionArea.COILS),
        ir=StoreDataBlock(store, FunctionArea.INPUT_REGISTERS),
        hr=StoreDataBlock(store, FunctionArea.HOLDING_REGISTERS),
    )
    return ModbusServerContext(devices={unit_id: device}, single=False)


def _peer_of(handler: Any) -> str:
    transport = getattr(handler, "transport", None)
    peer = transport.get_extra_info("peername") if transport is not None else None
    if not peer:
        return "unknown"
    return f"{peer[0]}:{peer[1]}"


class _LoggingTcpServer(PymodbusTcpServer):
    """pymodbus server that reports request frames and connection changes per handler."""

    def __init__(
        self,
        context: ModbusServerContext,
        *,
        address: tuple[str, int],
        on_frame: Callable[[str, bytes], None],
        on_connection: Callable[[Any, bool], bool],
    ) -> None:
        super().__init__(context, address=address)
        self._on_frame = on_frame
        self._on_connection = on_connection

    def callback_new_connection(self) -> Any:
        handler = super().callback_new_connection()
        receive = handler.callback_data
        connected = handler.callback_connected
        disconnected = handler.callback_disconnected
        pending = bytearray()

        def callback_data(data: bytes, addr: tuple | None = None) -> int:
            peer = _peer_of(handler)
            pending.extend(data)
            for frame in take_mbap_frames(pending):
                self._on_frame(peer, frame)
            return receive(data, addr=addr)

        def callback_connected() -> None:
            connected()
            if not self._on_connection(handler, True) and handler.transport is not None:
                handler.transport.close()

        def callback_disconnected(exc: Exception | None) -> None:
            self._on_connection(handler, False)
            disconnected(exc)

        handler.callback_data = callback_data
        handler.callback_connected = callback_connected
        handler.callback_disconnected = callback_disconnected
        return handler


class ModbusTcpServer(Transport):
    """
    Modbus-TCP slave over a RegisterStore and an AddressMap.

    open() starts the listener thread and returns once pymodbus is accepting connections.
    log_received(line) fires for every complete request frame. send(message) applies
    "name:value" or "AREA:address:value" text to the store (taken from the "data"
    parameter, else the command).
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 502,
        config: ModbusServerConfig | None = None,
        address_map: AddressMap | None = None,
        *,
        name: str | None = None,
    ) -> None:
        super().__init__(name or f"ModbusTcpServer_{port}")
        self.host = host
        self.port = port
        self.config = config or ModbusServerConfig()
        address_map = address_map if address_map is not None else default_address_map()
        for error in address_map.validate():
            logger.warning("%s: address map: %s", self.name, error)
        self.store = RegisterStore(address_map, byte_order=self.config.byte_order)
        self.log_received = EventHook(f"{self.name}.log_received")
        self._context = build_context(self.store, self.config.unit_id)
        self._server: _LoggingTcpServer | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._stop_event: asyncio.Event | None = None
        self._thread: threading.Thread | None = None
        self._started = threading.Event()
        self._start_error: BaseException | None = None
        self._connections: set[int] = set()
        self._connections_lock = threading.Lock()
        self._close_lock = threading.Lock()

    @property
    def address_map(self) -> AddressMap:
        return self.store.address_map

    @property
    def client_count(self) -> int:
        with self._connections_lock:
            return len(self._connections)

    @property
    def bound_port(self) -> int:
        """Actual listening port (useful when constructed with port 0)."""
        server = self._server
        sockets = getattr(getattr(server, "transport", None), "sockets", None)
        if not sockets:
            return self.port
        return sockets[0].getsockname()[1]

    def load_map(self, address_map: AddressMap) -> None:
        self.store.load_map(address_map)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> bool:
        if not self._begin_open():
            return True
        self._started.clear()
        self._start_error = None
        self._thread = threading.Thread(target=self._run, name=f"{self.name}-loop", daemon=True)
        self._thread.start()
        if not self._started.wait(START_TIMEOUT):
            self._fail("Modbus server did not start in time")
            return False
        if self._start_error is not None:
            self._fail(f"Listen on {self.host}:{self.port} failed", self._start_error)
            return False
        self._set_state(ConnectionState.CONNECTED)
        logger.info("%s: listening on %s:%d (unit %d)", self.name, self.host, self.bound_port, self.config.unit_id)
        return True

    def _run(self) -> None:
        loop = asyncio.new_event_loop()
        self._loop = loop
        try:
            loop.run_until_complete(self._serve())
        except Exception as e:
            if not self._started.is_set():
                self._start_error = e
                self._started.set()
            else:
                logger.exception("%s: server loop failed", self.name)
                self._fail("Modbus server loop failed", e)
        finally:
            loop.close()

    async def _serve(self) -> None:
        self._stop_event = asyncio.Event()
        server = _LoggingTcpServer(
            self._context,
            address=(self.host, self.port),
            on_frame=self._on_frame,
            on_connection=self._on_connection,
        )
        self._server = server
        await server.listen()
        if server.transport is None:
            raise OSError(f"cannot listen on {self.host}:{self.port}")
        self._started.set()
        await self._stop_event.wait()
        await server.shutdown()

    def close(self) -> None:
        with self._close_lock:
            thread, self._thread = self._thread, None
            loop, stop = self._loop, self._stop_event
        if loop is not None and stop is not None and not loop.is_closed():
            try:
                loop.call_soon_threadsafe(stop.set)
            except RuntimeError:
                logger.debug("%s: loop already stopped", self.name)
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=START_TIMEOUT)
        self._server = None
        self._loop = None
        self._stop_event = None
        with self._connections_lock:
            self._connections.clear()
        self._set_state(ConnectionState.DISCONNECTED)

    # ------------------------------------------------------------------
    # pymodbus callbacks (server thread)
    # ------------------------------------------------------------------

    def _on_frame(self, peer: str, frame: bytes) -> None:
        line = format_request(frame, peer)
        if self.config.enable_logging:
            logger.info("%s: %s", self.name, line)
        else:
            logger.debug("%s: %s", self.name, line)
        self.log_received.emit(line)

    def _on_connection(self, handler: Any, connected: bool) -> bool:
        """Track a client; False when it exceeds max_clients and must be dropped."""
        key = id(handler)
        with self._connections_lock:
            if not connected:
                self._connections.discard(key)
                return True
            if len(self._connections) >= self.config.max_clients:
                logger.warning("%s: client limit %d reached, dropping %s", self.name, self.config.max_clients, _peer_of(handler))
                return False
            self._connections.add(key)
        logger.info("%s: client connected %s", self.name, _peer_of(handler))
        return True

    # ------------------------------------------------------------------
    # Data access
    # ------------------------------------------------------------------

    def send(self, message: Message) -> bool:
        """Apply the message text to the register store; False when stopped or not applicable."""
        if not self.is_connected:
            return False
        text = message.get_str("data") or message.command
        applied = self.store.update_from_text(text)
        if self.config.enable_logging:
            logger.info("%s: update %r %s", self.name, text, "applied" if applied else "ignored")
        return applied

    def read_value_by_name(self, name: str) -> Value | None:
        item = self.address_map.find(name)
        if item is None:
            return None
        return self.store.read_item(item)

    def write_value_by_name(self, name: str, value: Any) -> bool:
        return self.store.update_by_name(name, str(value).lower() if isinstance(value, bool) else str(value))

    def server_status(self) -> str:
        if not self.is_connected:
            return "Modbus server stopped"
        return (
            f"Modbus server running on {self.host}:{self.bound_port} | unit: {self.config.unit_id} | "
            f"clients: {self.client_count}/{self.config.max_clients} | "
            f"variables: {len(self.address_map.enabled_items())}"
        )
