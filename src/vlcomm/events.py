"""Observer hooks with serialized, in-order delivery, and a queue-backed subscriber."""

import logging
import queue
import threading
from typing import Any, Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EventHook:
    """
    Multicast callback list. emit() delivers to subscribers in subscription order under
    one lock, so every subscriber sees events one at a time and in emission order,
    whichever thread emits. A subscriber that raises is logged and skipped.
    """

    def __init__(self, name: str = "") -> None:
        self._name = name
        self._subscribers: list[Callable[..., Any]] = []
        self._lock = threading.RLock()

    def subscribe(self, callback: Callable[..., Any]) -> Callable[..., Any]:
        """Add callback; returns it so this can be used as a decorator."""
        with self._lock:
            self._subscribers.append(callback)
        return callback

    def unsubscribe(self, callback: Callable[..., Any]) -> None:
        with self._lock:
            try:
                self._subscribers.remove(callback)
            except ValueError:
                pass

    def emit(self, *args: Any) -> None:
        with self._lock:
            for callback in list(self._subscribers):
                try:
                    callback(*args)
                except Exception:
                    logger.exception("Subscriber %r of %s failed", callback, self._name or "event")

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscribers)


class QueueSubscriber(Generic[T]):
    """Pull-style consumer: subscribes to a hook and buffers each emitted value in a queue."""

    def __init__(self, hook: EventHook, maxsize: int = 0) -> None:
        self._hook = hook
        self._queue: "queue.Queue[T]" = queue.Queue(maxsize=maxsize)
        hook.subscribe(self._put)

    def _put(self, *args: Any) -> None:
        self._queue.put(args[0] if len(args) == 1 else args)  # type: ignore[arg-type]

    def get(self, timeout: float | None = None) -> T:
        """Next item; raises queue.Empty after timeout."""
        return self._queue.get(timeout=timeout)

    def drain(self) -> list[T]:
        """All items currently buffered, without blocking."""
        items: list[T] = []
        while True:
            try:
                items.append(self._queue.get_nowait())
            except queue.Empty:
                return items

    def close(self) -> None:
        self._hook.unsubscribe(self._put)

    def __enter__(self) -> "QueueSubscriber[T]":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
