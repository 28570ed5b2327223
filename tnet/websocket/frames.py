"""Websocket message types and the frame format on the wire."""

from __future__ import annotations

import enum
import os
import struct
from dataclasses import dataclass
from typing import Protocol

MAX_HEADER_SIZE = 14
MAX_CONTROL_PAYLOAD = 125

_FIN = 0x80
_RSV_MASK = 0x70
_OPCODE_MASK = 0x0F
_MASK_BIT = 0x80
_LEN_MASK = 0x7F
_LEN16 = 126
_LEN64 = 127


class ProtocolError(Exception):
    """A frame violates the websocket protocol."""


class ByteSource(Protocol):
    def read(self, size: int) -> bytes:
        """Return up to ``size`` bytes; an empty result means end of stream."""


class ByteSink(Protocol):
    def write(self, data: bytes) -> int:
        """Write ``data`` and return the number of bytes written."""


class MessageType(enum.IntEnum):
    """Kinds of websocket messages as seen by users of a connection."""

    TEXT = 1
    BINARY = 2
    PING = 3
    PONG = 4
    CLOSE = 5

    def __str__(self) -> str:
        return self.name.capitalize()


class OpCode(enum.IntEnum):
    """Frame operation codes defined by the websocket protocol."""

    CONTINUATION = 0x0
    TEXT = 0x1
    BINARY = 0x2
    CLOSE = 0x8
    PING = 0x9
    PONG = 0xA

    def is_control(self) -> bool:
        """Whether frames with this code are control frames."""
        return bool(self.value & 0x8)


_TO_MESSAGE_TYPE = {
    OpCode.TEXT: MessageType.TEXT,
    OpCode.BINARY: MessageType.BINARY,
    OpCode.PING: MessageType.PING,
    OpCode.PONG: MessageType.PONG,
    OpCode.CLOSE: MessageType.CLOSE,
}

_TO_OPCODE = {message_type: opcode for opcode, message_type in _TO_MESSAGE_TYPE.items()}


def message_type_for(opcode: OpCode) -> MessageType | None:
    """The message type carried by frames with ``opcode``; ``None`` for continuations."""
    return _TO_MESSAGE_TYPE.get(OpCode(opcode))


def opcode_for(message_type: MessageType) -> OpCode:
    """The frame operation code used to send ``message_type``."""
    return _TO_OPCODE[MessageType(message_type)]


@dataclass
class Header:
    """A frame header; the frame is masked when ``mask`` holds a 4-byte key."""

    opcode: OpCode
    length: int = 0
    fin: bool = True
    rsv: int = 0
    mask: bytes | None = None

    @property
    def masked(self) -> bool:
        return self.mask is not None

    def encode(self) -> bytes:
        """The header as it is sent on the wire."""
        if self.length < 0:
            raise ProtocolError(f"negative payload length {self.length}")
        if not 0 <= self.rsv <= 7:
            raise ProtocolError(f"reserved bits out of range: {self.rsv}")
        if self.mask is not None and len(self.mask) != 4:
            raise ProtocolError("mask key must be 4 bytes")
        first = (_FIN if self.fin else 0) | (self.rsv << 4) | int(self.opcode)
        mask_bit = _MASK_BIT if self.masked else 0
        if self.length < _LEN16:
            out = bytes((first, mask_bit | self.length))
        elif self.length <= 0xFFFF:
            out = bytes((first, mask_bit | _LEN16)) + struct.pack("!H", self.length)
        elif self.length < 1 << 63:
            out = bytes((first, mask_bit | _LEN64)) + struct.pack("!Q", self.length)
        else:
            raise ProtocolError(f"payload length {self.length} is too large")
        if self.mask is not None:
            out += bytes(self.mask)
        return out


def _read_exact(source: ByteSource, n: int) -> bytes:
    chunks = []
    got = 0
    while got < n:
        chunk = source.read(n - got)
        if not chunk:
            raise EOFError(f"stream ended after {got} of {n} header bytes")
        chunks.append(chunk)
        got += len(chunk)
    return b"".join(chunks)


def read_header(source: ByteSource) -> Header:
    """Read and check one frame header from ``source``."""
    first, second = _read_exact(source, 2)
    try:
        opcode = OpCode(first & _OPCODE_MASK)
    except ValueError:
        raise ProtocolError(f"reserved opcode {first & _OPCODE_MASK:#x}") from None
    fin = bool(first & _FIN)
    length = second & _LEN_MASK
    if length == _LEN16:
        (length,) = struct.unpack("!H", _read_exact(source, 2))
    elif length == _LEN64:
        (length,) = struct.unpack("!Q", _read_exact(source, 8))
        if length & (1 << 63):
            raise ProtocolError("most significant bit of payload length is set")
    mask = _read_exact(source, 4) if second & _MASK_BIT else None
    if opcode.is_control():
        if length > MAX_CONTROL_PAYLOAD:
            raise ProtocolError(f"control frame payload of {length} bytes is too long")
        if not fin:
            raise ProtocolError("control frame is fragmented")
    return Header(
        opcode=opcode,
        length=length,
        fin=fin,
        rsv=(first & _RSV_MASK) >> 4,
        mask=mask,
    )


def apply_mask(data: bytes | bytearray, key: bytes) -> bytes:
    """XOR ``data`` with the 4-byte ``key``; applying it twice restores the data."""
    if len(key) != 4:
        raise ProtocolError("mask key must be 4 bytes")
    n = len(data)
    if n == 0:
        return b""
    stream = (bytes(key) * (n // 4 + 1))[:n]
    value = int.from_bytes(data, "big") ^ int.from_bytes(stream, "big")
    return value.to_bytes(n, "big")


def write_message(dst: ByteSink, client_side: bool, opcode: OpCode, payload: bytes) -> None:
    """Write ``payload`` as one final frame: header first, then the payload.

    Frames sent from the client side are masked with a fresh random key.
    """
    opcode = OpCode(opcode)
    if opcode.is_control() and len(payload) > MAX_CONTROL_PAYLOAD:
        raise ProtocolError(f"control frame payload of {len(payload)} bytes is too long")
    mask = os.urandom(4) if client_side else None
    header = Header(opcode=opcode, length=len(payload), mask=mask)
    dst.write(header.encode())
    if payload:
        dst.write(apply_mask(payload, mask) if mask is not None else bytes(payload))