"""Tests for the Message model, typed accessors and builders."""

import json
import re
from datetime import datetime

from vlcomm.message import (
    Message,
    create_command,
    create_event,
    create_heartbeat,
    create_json_message,
    create_response,
    new_message_id,
)
from vlcomm.types import MessageType


def test_new_message_id_is_eight_hex_chars() -> None:
    for _ in range(20):
        assert re.fullmatch(r"[0-9a-f]{8}", new_message_id())


def test_defaults() -> None:
    msg = Message()
    assert msg.type == MessageType.COMMAND
    assert msg.parameters == {}
    assert msg.raw_body is None
    assert len(msg.id) == 8


def test_str_format() -> None:
    msg = Message(
        command="START",
        id="abcd1234",
        timestamp=datetime(2024, 5, 1, 13, 45, 7, 123456),
        parameters={"a": 1, "b": 2},
    )
    assert str(msg) == "[Command] START (ID:abcd1234) - 2 params @ 13:45:07.123"


class TestTypedAccessors:
    """get_int / get_float / get_str / get_bool."""

    def test_native_values(self) -> None:
        msg = Message(parameters={"i": 5, "f": 2.5, "s": "x", "b": True})
        assert msg.get_int("i") == 5
        assert msg.get_float("f") == 2.5
        assert msg.get_str("s") == "x"
        assert msg.get_bool("b") is True

    def test_string_values_are_parsed(self) -> None:
        msg = Message(parameters={"i": " 42 ", "f": "1.25", "b": "TRUE", "nb": "false"})
        assert msg.get_int("i") == 42
        assert msg.get_float("f") == 1.25
        assert msg.get_bool("b") is True
        assert msg.get_bool("nb", default=True) is False

    def test_parse_failures_return_default(self) -> None:
        msg = Message(parameters={"i": "abc", "f": "x", "b": "maybe"})
        assert msg.get_int("i", 7) == 7
        assert msg.get_float("f", 0.5) == 0.5
        assert msg.get_bool("b", True) is True

    def test_missing_keys_return_default(self) -> None:
        msg = Message()
        assert msg.get_int("nope") == 0
        assert msg.get_float("nope") == 0.0
        assert msg.get_str("nope", "d") == "d"
        assert msg.get_bool("nope") is False

    def test_bool_is_not_a_number(self) -> None:
        msg = Message(parameters={"flag": True, "frac": 3.5})
        assert msg.get_int("flag", -1) == -1
        assert msg.get_float("flag", -1.0) == -1.0
        assert msg.get_int("frac", -1) == -1


class TestBuilders:
    """Message builder functions."""

    def test_create_command(self) -> None:
        msg = create_command("SET", value=3)
        assert msg.type == MessageType.COMMAND
        assert msg.command == "SET"
        assert msg.parameters == {"value": 3}

    def test_create_response_ok(self) -> None:
        msg = create_response("abcd1234", "done", extra="1")
        assert msg.command == "RESPONSE_OK"
        assert msg.type == MessageType.RESPONSE
        assert msg.get_str("original_id") == "abcd1234"
        assert msg.get_str("result") == "done"
        assert msg.get_bool("success") is True
        assert msg.get_str("extra") == "1"
        assert msg.get_str("timestamp")

    def test_create_response_error(self) -> None:
        msg = create_response("abcd1234", "failed", success=False)
        assert msg.command == "RESPONSE_ERROR"
        assert msg.get_bool("success", True) is False

    def test_create_event(self) -> None:
        msg = create_event("DETECTED", count=2)
        assert msg.type == MessageType.EVENT
        assert msg.command == "DETECTED"
        assert msg.get_int("count") == 2

    def test_builder_params_may_reuse_argument_names(self) -> None:
        event = create_event("DATA_READ", name="MAIN.counter", value=42)
        assert event.command == "DATA_READ"
        assert event.parameters == {"name": "MAIN.counter", "value": 42}
        command = create_command("RENAME", command="old")
        assert command.command == "RENAME"
        assert command.parameters == {"command": "old"}

    def test_create_heartbeat(self) -> None:
        plain = create_heartbeat()
        assert plain.command == "HEARTBEAT"
        assert plain.type == MessageType.HEARTBEAT
        assert plain.parameters == {}
        rich = create_heartbeat(include_system_info=True)
        assert rich.get_int("uptime", -1) >= 0
        assert rich.get_int("pid") > 0

    def test_create_json_message(self) -> None:
        msg = create_json_message("CONFIGURE", {"gain": 2, "nested": {"a": 1}})
        assert msg.raw_body is not None
        body = json.loads(msg.raw_body)
        assert body["cmd"] == "CONFIGURE"
        assert body["id"] == msg.id
        assert body["type"] == "Command"
        assert body["params"] == {"gain": 2, "nested": {"a": 1}}
        assert msg.parameters == {"gain": 2}
        assert "\": " not in msg.raw_body


def test_simple_body_renders_none_as_empty() -> None:
    msg = Message(command="X", id="ID", parameters={"a": None, "b": "v"})
    assert msg.to_simple_body() == "X|a=|b=v|ID"
