"""Message entity, typed parameter accessors and message builders."""

import json
import os
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .types import MessageType

ParamValue = str | int | float | bool | None

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%f"


def new_message_id() -> str:
    """Short correlation token: 8 lowercase hex characters."""
    return uuid.uuid4().hex[:8]


def format_timestamp(ts: datetime) -> str:
    """ISO-like local timestamp with millisecond precision."""
    return ts.strftime(TIMESTAMP_FORMAT)[:-3]


def _as_text(value: ParamValue) -> str:
    if value is None:
        return ""
    return str(value)


@dataclass
class Message:
    """
    A protocol message: command name, correlation id, timestamp, parameters and type.
    raw_body holds the verbatim JSON text when the payload is (or was) a JSON envelope;
    the codec sends it as is instead of the pipe-delimited form.
    """

    command: str = ""
    id: str = field(default_factory=new_message_id)
    timestamp: datetime = field(default_factory=datetime.now)
    parameters: dict[str, ParamValue] = field(default_factory=dict)
    type: MessageType = MessageType.COMMAND
    raw_body: str | None = None

    def __str__(self) -> str:
        return (
            f"[{self.type.value}] {self.command} (ID:{self.id}) - "
            f"{len(self.parameters)} params @ {self.timestamp:%H:%M:%S}.{self.timestamp.microsecond // 1000:03d}"
        )

    def get_int(self, key: str, default: int = 0) -> int:
        value = self.parameters.get(key)
        if value is None or isinstance(value, bool):
            return default
        if isinstance(value, int):
            return value
        try:
            return int(str(value).strip())
        except ValueError:
            return default

    def get_float(self, key: str, default: float = 0.0) -> float:
        value = self.parameters.get(key)
        if value is None or isinstance(value, bool):
            return default
        if isinstance(value, float):
            return value
        try:
            return float(str(value).strip())
        except ValueError:
            return default

    def get_str(self, key: str, default: str = "") -> str:
        if key not in self.parameters or self.parameters[key] is None:
            return default
        return _as_text(self.parameters[key])

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.parameters.get(key)
        if isinstance(value, bool):
            return value
        if value is None:
            return default
        text = str(value).strip().lower()
        if text == "true":
            return True
        if text == "false":
            return False
        return default

    def to_json_body(self) -> str:
        """Compact JSON envelope {cmd, id, type, timestamp, params} for this message."""
        return json.dumps(
            {
                "cmd": self.command,
                "id": self.id,
                "type": self.type.value,
                "timestamp": format_timestamp(self.timestamp),
                "params": self.parameters,
            },
            ensure_ascii=False,
            separators=(",", ":"),
        )

    def to_simple_body(self) -> str:
        """Pipe-delimited form COMMAND|key=value|...|ID. Embedded '|' and '=' are not escaped."""
        parts = [self.command]
        parts.extend(f"{k}={_as_text(v)}" for k, v in self.parameters.items())
        parts.append(self.id)
        return "|".join(parts)


# ============================================================================
# Builders
# ============================================================================


def create_command(command: str, /, **params: ParamValue) -> Message:
    """Command message with the given parameters."""
    return Message(command=command, type=MessageType.COMMAND, parameters=dict(params))


def create_response(original_id: str, result: str, success: bool = True, **extra: ParamValue) -> Message:
    """Response correlated to original_id; command is RESPONSE_OK or RESPONSE_ERROR."""
    params: dict[str, ParamValue] = {
        "original_id": original_id,
        "result": result,
        "success": success,
        "timestamp": format_timestamp(datetime.now()),
    }
    params.update(extra)
    return Message(
        command="RESPONSE_OK" if success else "RESPONSE_ERROR",
        type=MessageType.RESPONSE,
        parameters=params,
    )


def create_event(name: str, /, **data: ParamValue) -> Message:
    """Event notification."""
    return Message(command=name, type=MessageType.EVENT, parameters=dict(data))


_PROCESS_START = time.monotonic()


def create_heartbeat(include_system_info: bool = False) -> Message:
    """Keep-alive message; optionally carries process uptime (ms) and pid."""
    msg = Message(command="HEARTBEAT", type=MessageType.HEARTBEAT)
    if include_system_info:
        msg.parameters["uptime"] = int((time.monotonic() - _PROCESS_START) * 1000)
        msg.parameters["pid"] = os.getpid()
    return msg


def create_json_message(command: str, data: Any) -> Message:
    """
    Command whose payload is a JSON envelope. data becomes the envelope's params;
    when it is a mapping its scalar entries are also exposed as message parameters.
    """
    msg = Message(command=command, type=MessageType.COMMAND)
    if isinstance(data, dict):
        msg.parameters = {str(k): v for k, v in data.items() if v is None or isinstance(v, (str, int, float, bool))}
    msg.raw_body = json.dumps(
        {
            "cmd": command,
            "id": msg.id,
            "type": msg.type.value,
            "timestamp": format_timestamp(msg.timestamp),
            "params": data,
        },
        ensure_ascii=False,
        separators=(",", ":"),
    )
    return msg
