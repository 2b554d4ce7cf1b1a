"""
UDP transports. Each datagram carries exactly one message body and is decoded once,
without reassembly. By default the body is sent bare; framed=True wraps every datagram
in the STX/length/CRC/ETX envelope so corrupted datagrams are detected and dropped.
"""

import logging
import socket
import threading
import time

from ..codec import FrameCodec, build_frame, encode_body, parse_body
from ..events import EventHook
from ..message import Message
from ..types import ConnectionState
from .base import Transport

logger = logging.getLogger(__name__)

MAX_UDP_PAYLOAD = 1400
MAX_DATAGRAM = 65535
UDP_READ_TIMEOUT = 1.0

Endpoint = tuple[str, int]


def format_endpoint(endpoint: Endpoint) -> str:
    return f"{endpoint[0]}:{endpoint[1]}"


class _DatagramTransport(Transport):
    """Socket, receive thread and body codec shared by the UDP client and server."""

    def __init__(
        self,
        name: str,
        *,
        framed: bool = False,
        max_payload: int = MAX_UDP_PAYLOAD,
        read_timeout: float = UDP_READ_TIMEOUT,
        prefer_json: bool = False,
    ) -> None:
        super().__init__(name)
        self.framed = framed
        self.max_payload = max_payload
        self.read_timeout = read_timeout
        self.prefer_json = prefer_json
        self._sock: socket.socket | None = None
        self._thread: threading.Thread | None = None
        self._stop = threading.Event()
        self._send_lock = threading.Lock()
        self._close_lock = threading.Lock()

    def _bind_address(self) -> Endpoint:
        raise NotImplementedError

    def _on_datagram(self, data: bytes, addr: Endpoint) -> None:
        raise NotImplementedError

    def _on_idle(self) -> None:
        """Called after every receive attempt, including timeouts."""

    @property
    def local_port(self) -> int | None:
        sock = self._sock
        if sock is None:
            return None
        return sock.getsockname()[1]

    def open(self) -> bool:
        if not self._begin_open():
            return True
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            sock.bind(self._bind_address())
            sock.settimeout(self.read_timeout)
        except OSError as e:
            self._fail("UDP bind failed", e)
            return False
        self._sock = sock
        self._stop.clear()
        self._thread = threading.Thread(target=self._receive_loop, args=(sock,), name=f"{self.name}-rx", daemon=True)
        self._set_state(ConnectionState.CONNECTED)
        self._thread.start()
        logger.info("%s: bound to local port %s", self.name, self.local_port)
        return True

    def _receive_loop(self, sock: socket.socket) -> None:
        while not self._stop.is_set():
            try:
                data, addr = sock.recvfrom(MAX_DATAGRAM)
            except socket.timeout:
                self._on_idle()
                continue
            except OSError as e:
                if not self._stop.is_set():
                    self._fail("Receive failed", e)
                break
            self._on_datagram(data, (addr[0], addr[1]))
            self._on_idle()

    def decode_datagram(self, data: bytes) -> list[Message]:
        """Decode one datagram; a fresh codec per datagram so nothing carries over."""
        if self.framed:
            return FrameCodec().decode(data)
        msg = parse_body(data)
        if msg is None:
            logger.warning("%s: dropping malformed datagram (%d bytes)", self.name, len(data))
            return []
        return [msg]

    def encode_datagram(self, message: Message) -> bytes:
        body = encode_body(message, self.prefer_json)
        return build_frame(body) if self.framed else body

    def _send_datagram(self, payload: bytes, endpoint: Endpoint) -> bool:
        sock = self._sock
        if not self.is_connected or sock is None:
            return False
        if len(payload) > self.max_payload:
            logger.warning(
                "%s: payload of %d bytes exceeds the %d byte limit; not sent",
                self.name,
                len(payload),
                self.max_payload,
            )
            return False
        try:
            with self._send_lock:
                sock.sendto(payload, endpoint)
        except OSError as e:
            logger.warning("%s: send to %s failed: %s", self.name, format_endpoint(endpoint), e)
            return False
        return True

    def close(self) -> None:
        with self._close_lock:
            sock, self._sock = self._sock, None
            thread, self._thread = self._thread, None
            self._stop.set()
        if sock is not None:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            sock.close()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self.read_timeout + 1.0)
        self._set_state(ConnectionState.DISCONNECTED)


class UdpServer(_DatagramTransport):
    """
    Connectionless server. "Clients" are the sender endpoints seen recently; a sweep every
    sweep_interval seconds evicts those idle longer than client_timeout. The list is
    advisory and only picks broadcast targets.
    """

    def __init__(
        self,
        port: int,
        *,
        host: str = "0.0.0.0",
        name: str | None = None,
        framed: bool = False,
        client_timeout: float = 60.0,
        sweep_interval: float = 30.0,
        max_payload: int = MAX_UDP_PAYLOAD,
        read_timeout: float = UDP_READ_TIMEOUT,
        prefer_json: bool = False,
    ) -> None:
        super().__init__(
            name or f"UdpServer_{port}",
            framed=framed,
            max_payload=max_payload,
            read_timeout=read_timeout,
            prefer_json=prefer_json,
        )
        self.host = host
        self.port = port
        self.client_timeout = client_timeout
        self.sweep_interval = sweep_interval
        self._clients: dict[Endpoint, float] = {}
        self._clients_lock = threading.Lock()
        self._next_sweep = 0.0
        self.client_message_received = EventHook(f"{self.name}.client_message_received")

    def _bind_address(self) -> Endpoint:
        self._next_sweep = time.monotonic() + self.sweep_interval
        return (self.host, self.port)

    @property
    def client_count(self) -> int:
        with self._clients_lock:
            return len(self._clients)

    def active_clients(self) -> list[Endpoint]:
        with self._clients_lock:
            return list(self._clients)

    def _on_datagram(self, data: bytes, addr: Endpoint) -> None:
        with self._clients_lock:
            is_new = addr not in self._clients
            self._clients[addr] = time.monotonic()
        if is_new:
            logger.info("%s: new client %s", self.name, format_endpoint(addr))
        for msg in self.decode_datagram(data):
            self.client_message_received.emit(format_endpoint(addr), msg)
            self.message_received.emit(msg)

    def _on_idle(self) -> None:
        now = time.monotonic()
        if now >= self._next_sweep:
            self.sweep_clients(now)
            self._next_sweep = now + self.sweep_interval

    def sweep_clients(self, now: float | None = None) -> list[Endpoint]:
        """Evict clients idle longer than client_timeout; returns the evicted endpoints."""
        now = time.monotonic() if now is None else now
        with self._clients_lock:
            stale = [ep for ep, seen in self._clients.items() if now - seen > self.client_timeout]
            for ep in stale:
                del self._clients[ep]
        for ep in stale:
            logger.info("%s: client %s timed out", self.name, format_endpoint(ep))
        return stale

    def send(self, message: Message) -> bool:
        """Send to every active client; True if at least one datagram went out."""
        targets = self.active_clients()
        if not targets:
            logger.debug("%s: no active clients, message not sent", self.name)
            return False
        payload = self.encode_datagram(message)
        results = [self._send_datagram(payload, ep) for ep in targets]
        return any(results)

    def send_to(self, endpoint: Endpoint, message: Message) -> bool:
        return self._send_datagram(self.encode_datagram(message), endpoint)

    def close(self) -> None:
        super().close()
        with self._clients_lock:
            self._clients.clear()


class UdpClient(_DatagramTransport):
    """Sends to one fixed remote endpoint from an ephemeral local port; emits whatever arrives."""

    def __init__(
        self,
        host: str,
        port: int,
        *,
        name: str | None = None,
        framed: bool = False,
        max_payload: int = MAX_UDP_PAYLOAD,
        read_timeout: float = UDP_READ_TIMEOUT,
        prefer_json: bool = False,
    ) -> None:
        super().__init__(
            name or f"UdpClient_{host}_{port}",
            framed=framed,
            max_payload=max_payload,
            read_timeout=read_timeout,
            prefer_json=prefer_json,
        )
        self.host = host
        self.port = port

    @property
    def remote_address(self) -> str:
        return f"{self.host}:{self.port}"

    def _bind_address(self) -> Endpoint:
        return ("", 0)

    def _on_datagram(self, data: bytes, addr: Endpoint) -> None:
        for msg in self.decode_datagram(data):
            self.message_received.emit(msg)

    def send(self, message: Message) -> bool:
        return self._send_datagram(self.encode_datagram(message), (self.host, self.port))
