"""Handling of websocket control frames: ping, pong and close."""

from __future__ import annotations

import struct
from typing import Any

from tnet.websocket.frames import (
    MAX_CONTROL_PAYLOAD,
    Header,
    OpCode,
    ProtocolError,
    write_message,
)

STATUS_NORMAL_CLOSURE = 1000
STATUS_PROTOCOL_ERROR = 1002
STATUS_NO_STATUS_RCVD = 1005


class ConnectionClosedError(Exception):
    """The peer sent a close frame; ``code`` and ``reason`` are what it carried."""

    def __init__(self, code: int, reason: str = "") -> None:
        message = f"websocket closed with status {code}"
        if reason:
            message += f": {reason}"
        super().__init__(message)
        self.code = code
        self.reason = reason


def _read_exact(source: Any, n: int) -> bytes:
    chunks = []
    got = 0
    while got < n:
        chunk = source.read(n - got)
        if not chunk:
            raise EOFError(f"frame ended after {got} of {n} payload bytes")
        chunks.append(chunk)
        got += len(chunk)
    return b"".join(chunks)


def _valid_close_code(code: int) -> bool:
    return 1000 <= code <= 1003 or 1007 <= code <= 1014 or 3000 <= code <= 4999


class ControlHandler:
    """Reacts to one control frame whose payload is read, already unmasked, from ``source``.

    ``conn`` supplies ``raw`` (where replies go), ``client_side`` and the optional
    ``ping_handler`` and ``pong_handler`` callables taking ``(conn, payload)``.
    """

    def __init__(self, conn: Any, source: Any) -> None:
        self._conn = conn
        self._source = source

    def handle(self, header: Header) -> None:
        """Handle a ping, pong or close frame; raise for anything else."""
        if header.opcode == OpCode.PING:
            self._handle_ping(header)
        elif header.opcode == OpCode.PONG:
            self._handle_pong(header)
        elif header.opcode == OpCode.CLOSE:
            self._handle_close(header)
        else:
            raise ProtocolError(f"not a control frame: {header.opcode!r}")

    def _send(self, opcode: OpCode, payload: bytes) -> None:
        write_message(self._conn.raw, self._conn.client_side, opcode, payload)

    def _payload(self, header: Header) -> bytes:
        return _read_exact(self._source, header.length)

    def _handle_ping(self, header: Header) -> None:
        payload = self._payload(header)
        if self._conn.ping_handler is not None:
            self._conn.ping_handler(self._conn, payload)
            return
        self._send(OpCode.PONG, payload)

    def _handle_pong(self, header: Header) -> None:
        payload = self._payload(header)
        if self._conn.pong_handler is not None:
            self._conn.pong_handler(self._conn, payload)

    def _handle_close(self, header: Header) -> None:
        if header.length == 0:
            self._send(OpCode.CLOSE, b"")
            raise ConnectionClosedError(STATUS_NO_STATUS_RCVD)
        payload = self._payload(header)
        try:
            if len(payload) < 2:
                raise ProtocolError("close frame payload is too short")
            (code,) = struct.unpack("!H", payload[:2])
            if not _valid_close_code(code):
                raise ProtocolError(f"invalid close status code {code}")
            try:
                reason = payload[2:].decode("utf-8")
            except UnicodeDecodeError:
                raise ProtocolError("close reason is not valid UTF-8") from None
        except ProtocolError as exc:
            body = struct.pack("!H", STATUS_PROTOCOL_ERROR) + str(exc).encode()
            self._send(OpCode.CLOSE, body[:MAX_CONTROL_PAYLOAD])
            raise
        self._send(OpCode.CLOSE, payload[:2])
        raise ConnectionClosedError(code, reason)