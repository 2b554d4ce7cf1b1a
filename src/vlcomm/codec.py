"""
Frame codec: STX | BodyLength (uint32 LE) | Body | CRC16 (LE) | ETX.

Body is either a UTF-8 JSON envelope {cmd, id, type, params, timestamp} or the
simple form COMMAND|key=value|...|ID. decode() reassembles frames across calls
and silently drops corrupted ones.
"""

import json
import logging
import struct
from datetime import datetime
from typing import Any

from .errors import FrameError
from .message import Message, ParamValue, new_message_id
from .types import MessageType

logger = logging.getLogger(__name__)

STX = 0x02
ETX = 0x03
HEADER_SIZE = 5  # STX + length
FRAME_OVERHEAD = 8  # STX + length + CRC + ETX

_CRC_POLY = 0x1021


def crc16(data: bytes) -> int:
    """CRC-16/CCITT-FALSE: poly 0x1021, init 0xFFFF, MSB-first, no final XOR."""
    crc = 0xFFFF
    for b in data:
        crc ^= b << 8
        for _ in range(8):
            if crc & 0x8000:
                crc = ((crc << 1) ^ _CRC_POLY) & 0xFFFF
            else:
                crc = (crc << 1) & 0xFFFF
    return crc


def build_frame(body: bytes) -> bytes:
    """Wrap an encoded body in the STX/length/CRC/ETX envelope."""
    return (
        bytes([STX])
        + struct.pack("<I", len(body))
        + body
        + struct.pack("<H", crc16(body))
        + bytes([ETX])
    )


def encode_body(message: Message, prefer_json: bool = False) -> bytes:
    """raw_body verbatim when present; otherwise JSON envelope or simple pipe form."""
    if message.raw_body:
        return message.raw_body.encode("utf-8")
    if prefer_json:
        return message.to_json_body().encode("utf-8")
    return message.to_simple_body().encode("utf-8")


def _tag_value(value: Any) -> ParamValue:
    """Map a JSON value to a parameter value; bool is checked before int."""
    if value is None or isinstance(value, (bool, str)):
        return value
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return value
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def _parse_json_body(text: str) -> Message:
    try:
        obj = json.loads(text)
        if not isinstance(obj, dict):
            raise ValueError(f"expected a JSON object, got {type(obj).__name__}")
    except ValueError as e:
        return Message(
            command="JSON_PARSE_ERROR",
            type=MessageType.EVENT,
            raw_body=text,
            parameters={"error": str(e), "original_data": text},
        )

    cmd = obj.get("cmd")
    msg_id = obj.get("id")
    msg = Message(
        command="UNKNOWN" if cmd is None else str(cmd),
        id=new_message_id() if msg_id is None else str(msg_id),
        raw_body=text,
    )
    if obj.get("type") is not None:
        msg_type = MessageType.parse(str(obj["type"]))
        if msg_type is not None:
            msg.type = msg_type
    params = obj.get("params")
    if isinstance(params, dict):
        msg.parameters = {str(k): _tag_value(v) for k, v in params.items()}
    if obj.get("timestamp") is not None:
        try:
            msg.timestamp = datetime.fromisoformat(str(obj["timestamp"]))
        except ValueError:
            logger.debug("Ignoring unparseable timestamp %r", obj["timestamp"])
    return msg


def _parse_simple_body(text: str) -> Message | None:
    parts = text.split("|")
    if len(parts) < 2:
        return None
    msg = Message(command=parts[0], id=parts[-1])
    for token in parts[1:-1]:
        key, sep, value = token.partition("=")
        if sep:
            msg.parameters[key] = value
    return msg


def parse_body(body: bytes) -> Message | None:
    """Parse one body (JSON envelope or simple form). None if the simple form is malformed."""
    text = body.decode("utf-8", errors="replace")
    if text.strip().startswith("{"):
        return _parse_json_body(text)
    return _parse_simple_body(text)


def parse_frame(frame: bytes) -> Message:
    """Check ETX and CRC of one complete frame and parse its body. Raises FrameError."""
    if len(frame) < FRAME_OVERHEAD or frame[0] != STX:
        raise FrameError("Frame too short or missing STX", frame=frame)
    (length,) = struct.unpack_from("<I", frame, 1)
    if len(frame) != length + FRAME_OVERHEAD:
        raise FrameError(f"Frame length mismatch: header says {length}, frame has {len(frame)}", frame=frame)
    if frame[-1] != ETX:
        raise FrameError(f"ETX mismatch: 0x{frame[-1]:02X}", frame=frame)
    body = frame[HEADER_SIZE:HEADER_SIZE + length]
    (received,) = struct.unpack_from("<H", frame, HEADER_SIZE + length)
    calculated = crc16(body)
    if received != calculated:
        raise FrameError(f"CRC mismatch: received 0x{received:04X}, calculated 0x{calculated:04X}", frame=frame)
    msg = parse_body(body)
    if msg is None:
        raise FrameError("Malformed simple body (fewer than two fields)", frame=frame)
    return msg


class FrameCodec:
    """
    Stateful encoder/decoder for one connection. The residual buffer carries partial
    frames between decode() calls, so an instance must never be shared between peers.
    """

    def __init__(self, prefer_json: bool = False) -> None:
        self._buffer = bytearray()
        self.prefer_json = prefer_json

    @property
    def buffered(self) -> int:
        """Bytes currently held waiting for the rest of a frame."""
        return len(self._buffer)

    def reset(self) -> None:
        self._buffer.clear()

    def encode(self, message: Message) -> bytes:
        return build_frame(encode_body(message, self.prefer_json))

    def decode(self, chunk: bytes) -> list[Message]:
        """Feed received bytes; return every complete, valid message now available."""
        self._buffer.extend(chunk)
        out: list[Message] = []
        buf = self._buffer
        while buf:
            stx = buf.find(STX)
            if stx < 0:
                logger.debug("No STX in %d buffered bytes; discarding", len(buf))
                buf.clear()
                break
            if stx > 0:
                logger.debug("Discarding %d bytes before STX", stx)
                del buf[:stx]
            if len(buf) < HEADER_SIZE:
                break
            (length,) = struct.unpack_from("<I", buf, 1)
            total = length + FRAME_OVERHEAD
            if len(buf) < total:
                break
            frame = bytes(buf[:total])
            del buf[:total]
            try:
                out.append(parse_frame(frame))
            except FrameError as e:
                logger.warning("Dropping frame (%d bytes): %s", total, e)
        return out
