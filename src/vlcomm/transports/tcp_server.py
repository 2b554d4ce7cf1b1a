"""Framed TCP server: accept loop plus one TcpConnection (own codec, own receive thread) per client."""

import logging
import socket
import threading
from functools import partial

from ..events import EventHook
from ..message import Message
from ..types import ConnectionState
from .base import DEFAULT_READ_TIMEOUT, Transport
from .tcp import TcpConnection

logger = logging.getLogger(__name__)

ACCEPT_POLL_INTERVAL = 0.5


class TcpServer(Transport):
    """
    Listens for framed-protocol clients. Clients are keyed by "ip:port".

    Extra hooks: client_connected(client_id), client_disconnected(client_id),
    client_message_received(client_id, message). message_received(message) also
    fires for every client message.
    """

    def __init__(
        self,
        port: int,
        *,
        host: str = "0.0.0.0",
        name: str | None = None,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
        prefer_json: bool = False,
        backlog: int = 16,
    ) -> None:
        super().__init__(name or f"TcpServer_{port}")
        self.host = host
        self.port = port
        self.read_timeout = read_timeout
        self.prefer_json = prefer_json
        self.backlog = backlog
        self._listener: socket.socket | None = None
        self._accept_thread: threading.Thread | None = None
        self._stop = threading.Event()
        self._clients: dict[str, TcpConnection] = {}
        self._clients_lock = threading.Lock()
        self._close_lock = threading.Lock()
        self.client_connected = EventHook(f"{self.name}.client_connected")
        self.client_disconnected = EventHook(f"{self.name}.client_disconnected")
        self.client_message_received = EventHook(f"{self.name}.client_message_received")

    @property
    def bound_port(self) -> int:
        """Actual listening port (useful when constructed with port 0)."""
        if self._listener is None:
            return self.port
        return self._listener.getsockname()[1]

    @property
    def client_count(self) -> int:
        with self._clients_lock:
            return len(self._clients)

    def connected_clients(self) -> list[str]:
        with self._clients_lock:
            return list(self._clients)

    def open(self) -> bool:
        if not self._begin_open():
            return True
        try:
            listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            listener.bind((self.host, self.port))
            listener.listen(self.backlog)
            listener.settimeout(ACCEPT_POLL_INTERVAL)
        except OSError as e:
            self._fail(f"Listen on {self.host}:{self.port} failed", e)
            return False
        self._listener = listener
        self._stop.clear()
        self._accept_thread = threading.Thread(target=self._accept_loop, args=(listener,), name=f"{self.name}-accept", daemon=True)
        self._set_state(ConnectionState.CONNECTED)
        self._accept_thread.start()
        logger.info("%s: listening on %s:%d", self.name, self.host, self.bound_port)
        return True

    def _accept_loop(self, listener: socket.socket) -> None:
        while not self._stop.is_set():
            try:
                sock, addr = listener.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if not self._stop.is_set():
                    self._fail("Accept failed", e)
                break
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            self._add_client(sock, f"{addr[0]}:{addr[1]}")

    def _add_client(self, sock: socket.socket, client_id: str) -> None:
        conn = TcpConnection(f"{self.name}[{client_id}]", read_timeout=self.read_timeout, prefer_json=self.prefer_json)
        conn.message_received.subscribe(partial(self._on_client_message, client_id))
        conn.status_changed.subscribe(partial(self._on_client_status, client_id, conn))
        with self._clients_lock:
            self._clients[client_id] = conn
        logger.info("%s: client connected %s", self.name, client_id)
        self.client_connected.emit(client_id)
        conn.start(sock)

    def _on_client_message(self, client_id: str, message: Message) -> None:
        self.client_message_received.emit(client_id, message)
        self.message_received.emit(message)

    def _on_client_status(self, client_id: str, conn: TcpConnection, state: ConnectionState) -> None:
        if state != ConnectionState.DISCONNECTED:
            return
        with self._clients_lock:
            if self._clients.get(client_id) is not conn:
                return
            del self._clients[client_id]
        logger.info("%s: client disconnected %s", self.name, client_id)
        self.client_disconnected.emit(client_id)

    def send(self, message: Message) -> bool:
        """Broadcast to all clients; True if at least one send succeeded."""
        if not self.is_connected:
            return False
        with self._clients_lock:
            targets = list(self._clients.values())
        if not targets:
            logger.debug("%s: broadcast skipped, no clients", self.name)
            return False
        results = [conn.send(message) for conn in targets]
        return any(results)

    def send_to_client(self, client_id: str, message: Message) -> bool:
        with self._clients_lock:
            conn = self._clients.get(client_id)
        if conn is None:
            logger.warning("%s: unknown client %s", self.name, client_id)
            return False
        return conn.send(message)

    def disconnect_client(self, client_id: str) -> bool:
        with self._clients_lock:
            conn = self._clients.get(client_id)
        if conn is None:
            return False
        conn.close()
        return True

    def close(self) -> None:
        with self._close_lock:
            listener, self._listener = self._listener, None
            thread, self._accept_thread = self._accept_thread, None
            self._stop.set()
        if listener is not None:
            listener.close()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=ACCEPT_POLL_INTERVAL + 1.0)
        with self._clients_lock:
            clients = list(self._clients.values())
        for conn in clients:
            conn.close()
        self._set_state(ConnectionState.DISCONNECTED)
