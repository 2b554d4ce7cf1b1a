"""Framed TCP stream connection (also used per accepted client) and the TCP client transport."""

import logging
import socket
import threading

from ..codec import FrameCodec
from ..message import Message
from ..types import ConnectionState
from .base import DEFAULT_READ_TIMEOUT, RECV_BUFFER_SIZE, Transport

logger = logging.getLogger(__name__)


class TcpConnection(Transport):
    """
    A connected TCP socket carrying framed messages. Owns its FrameCodec, its receive
    thread and a send lock; one sendall() per frame.
    """

    def __init__(
        self,
        name: str,
        *,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
        prefer_json: bool = False,
    ) -> None:
        super().__init__(name)
        self.read_timeout = read_timeout
        self._codec = FrameCodec(prefer_json=prefer_json)
        self._sock: socket.socket | None = None
        self._thread: threading.Thread | None = None
        self._stop = threading.Event()
        self._send_lock = threading.Lock()
        self._close_lock = threading.Lock()

    def start(self, sock: socket.socket) -> None:
        """Adopt an already-connected socket (e.g. from accept()) and start receiving."""
        if self._begin_open():
            self._attach(sock)
        else:
            sock.close()

    def _attach(self, sock: socket.socket) -> None:
        sock.settimeout(self.read_timeout)
        self._codec.reset()
        self._stop.clear()
        self._sock = sock
        self._thread = threading.Thread(target=self._receive_loop, args=(sock,), name=f"{self.name}-rx", daemon=True)
        self._set_state(ConnectionState.CONNECTED)
        self._thread.start()

    def open(self) -> bool:
        return self.is_connected

    def _receive_loop(self, sock: socket.socket) -> None:
        while not self._stop.is_set():
            try:
                data = sock.recv(RECV_BUFFER_SIZE)
            except socket.timeout:
                continue
            except OSError as e:
                if not self._stop.is_set():
                    self._fail("Receive failed", e)
                break
            if not data:
                logger.info("%s: peer closed the connection", self.name)
                self.close()
                break
            for msg in self._codec.decode(data):
                logger.debug("%s: received %s", self.name, msg)
                self.message_received.emit(msg)

    def send(self, message: Message) -> bool:
        sock = self._sock
        if not self.is_connected or sock is None:
            logger.debug("%s: send skipped, not connected", self.name)
            return False
        frame = self._codec.encode(message)
        try:
            with self._send_lock:
                sock.sendall(frame)
        except OSError as e:
            self._fail("Send failed", e)
            return False
        logger.debug("%s: sent %s (%d bytes)", self.name, message, len(frame))
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
        self._codec.reset()
        self._set_state(ConnectionState.DISCONNECTED)


class TcpClient(TcpConnection):
    """Connects to a remote framed-protocol server."""

    def __init__(
        self,
        host: str,
        port: int,
        *,
        name: str | None = None,
        connect_timeout: float = 5.0,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
        prefer_json: bool = False,
    ) -> None:
        super().__init__(name or f"TcpClient_{host}_{port}", read_timeout=read_timeout, prefer_json=prefer_json)
        self.host = host
        self.port = port
        self.connect_timeout = connect_timeout

    @property
    def remote_address(self) -> str:
        return f"{self.host}:{self.port}"

    def open(self) -> bool:
        if not self._begin_open():
            return True
        try:
            sock = socket.create_connection((self.host, self.port), timeout=self.connect_timeout)
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        except OSError as e:
            self._fail(f"Connect to {self.remote_address} failed", e)
            return False
        self._attach(sock)
        return True
