"""Exceptions for vlcomm: frame, transport, address map and Modbus I/O errors."""


class VlCommError(Exception):
    """Base exception for vlcomm."""

    pass


class FrameError(VlCommError):
    """Raised when a frame fails its ETX, CRC or body checks. Never escapes decode()."""

    def __init__(self, message: str, *, frame: bytes | None = None) -> None:
        self.frame = frame
        super().__init__(message)


class TransportError(VlCommError):
    """Raised when a socket operation fails on an API that does not report via bool."""

    def __init__(
        self,
        message: str,
        *,
        endpoint: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        self.endpoint = endpoint
        self.cause = cause
        super().__init__(message)


class UnknownVariableError(VlCommError):
    """Raised when a variable name is not present (or not enabled) in the address map."""

    def __init__(self, name: str, message: str | None = None) -> None:
        self.name = name
        self._msg = message or f"Unknown variable: {name!r}"
        super().__init__(self._msg)


class ModbusIOError(VlCommError):
    """Raised when a Modbus read/write fails (wraps pymodbus or connection errors)."""

    def __init__(
        self,
        message: str,
        *,
        area: str | None = None,
        address: int | None = None,
        cause: BaseException | None = None,
    ) -> None:
        self.area = area
        self.address = address
        self.cause = cause
        super().__init__(message)


class ConfigError(VlCommError):
    """Raised when a connection configuration is invalid at creation time."""

    pass
