"""Transport base class: the connection state machine and observer hooks shared by every transport."""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any

from ..events import EventHook
from ..message import Message
from ..types import ConnectionState

logger = logging.getLogger(__name__)

RECV_BUFFER_SIZE = 4096
DEFAULT_READ_TIMEOUT = 5.0


class Transport(ABC):
    """
    One connection-like endpoint with a single authoritative ConnectionState.

    status_changed(state) fires exactly once per actual state change;
    message_received(message) fires for every decoded inbound message.
    open() is idempotent while connecting/connected; close() is idempotent and
    safe from any thread.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._state = ConnectionState.DISCONNECTED
        self._state_lock = threading.Lock()
        self.status_changed = EventHook(f"{name}.status_changed")
        self.message_received = EventHook(f"{name}.message_received")

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    def _set_state(self, new: ConnectionState) -> bool:
        """Update state; notify observers only if it actually changed. Returns True on change."""
        with self._state_lock:
            old = self._state
            if old == new:
                return False
            self._state = new
        logger.info("%s: %s -> %s", self.name, old.value, new.value)
        self.status_changed.emit(new)
        return True

    def _begin_open(self) -> bool:
        """Move DISCONNECTED/ERROR -> CONNECTING. False if already connecting or connected."""
        with self._state_lock:
            old = self._state
            if old in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
                return False
            self._state = ConnectionState.CONNECTING
        logger.info("%s: %s -> %s", self.name, old.value, ConnectionState.CONNECTING.value)
        self.status_changed.emit(ConnectionState.CONNECTING)
        return True

    def _fail(self, reason: str, exc: BaseException | None = None) -> None:
        """Error path: ERROR, then close()."""
        if exc is not None:
            logger.warning("%s: %s: %s", self.name, reason, exc)
        else:
            logger.warning("%s: %s", self.name, reason)
        self._set_state(ConnectionState.ERROR)
        self.close()

    @abstractmethod
    def open(self) -> bool:
        """Start the transport. True when connected (or already connecting/connected)."""

    @abstractmethod
    def close(self) -> None:
        """Release resources and stop background work. Idempotent."""

    @abstractmethod
    def send(self, message: Message) -> bool:
        """Send one message. False when not connected or the write failed."""

    def __enter__(self) -> "Transport":
        self.open()
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r} {self._state.value}>"
