import io
import struct
from types import SimpleNamespace

import pytest

from tnet.websocket.control_handler import (
    STATUS_NO_STATUS_RCVD,
    STATUS_PROTOCOL_ERROR,
    ConnectionClosedError,
    ControlHandler,
)
from tnet.websocket.frames import Header, OpCode, ProtocolError, apply_mask, read_header


class FakeRaw:
    def __init__(self):
        self.writes = []

    def write(self, data):
        self.writes.append(bytes(data))
        return len(data)


def make_conn(client_side=False, ping_handler=None, pong_handler=None):
    return SimpleNamespace(
        raw=FakeRaw(),
        client_side=client_side,
        ping_handler=ping_handler,
        pong_handler=pong_handler,
    )


def written_frames(raw):
    src = io.BytesIO(b"".join(raw.writes))
    frames = []
    while src.tell() < len(src.getvalue()):
        header = read_header(src)
        payload = src.read(header.length)
        if header.mask is not None:
            payload = apply_mask(payload, header.mask)
        frames.append((header, payload))
    return frames


def test_default_ping_replies_with_pong():
    conn = make_conn()
    ControlHandler(conn, io.BytesIO(b"world!")).handle(Header(OpCode.PING, length=6))
    [(header, payload)] = written_frames(conn.raw)
    assert header.opcode == OpCode.PONG
    assert header.mask is None
    assert payload == b"world!"


def test_client_side_pong_is_masked():
    conn = make_conn(client_side=True)
    ControlHandler(conn, io.BytesIO(b"hello")).handle(Header(OpCode.PING, length=5))
    [(header, payload)] = written_frames(conn.raw)
    assert header.opcode == OpCode.PONG
    assert header.mask is not None
    assert payload == b"hello"


def test_customized_ping_handler_gets_payload():
    received = []
    conn = make_conn(ping_handler=lambda c, data: received.append((c, data)))
    ControlHandler(conn, io.BytesIO(b"world!")).handle(Header(OpCode.PING, length=6))
    assert received == [(conn, b"world!")]
    assert conn.raw.writes == []


def test_default_pong_consumes_payload_silently():
    conn = make_conn()
    source = io.BytesIO(b"world!")
    ControlHandler(conn, source).handle(Header(OpCode.PONG, length=6))
    assert source.read() == b""
    assert conn.raw.writes == []


def test_customized_pong_handler_gets_payload():
    received = []
    conn = make_conn(pong_handler=lambda c, data: received.append(data))
    source = io.BytesIO(b"world!tail")
    ControlHandler(conn, source).handle(Header(OpCode.PONG, length=6))
    assert received == [b"world!"]
    assert source.read() == b"tail"
    assert conn.raw.writes == []


def test_empty_close_replies_and_raises():
    conn = make_conn()
    with pytest.raises(ConnectionClosedError) as info:
        ControlHandler(conn, io.BytesIO(b"")).handle(Header(OpCode.CLOSE, length=0))
    assert info.value.code == STATUS_NO_STATUS_RCVD
    [(header, payload)] = written_frames(conn.raw)
    assert header.opcode == OpCode.CLOSE
    assert payload == b""


def test_close_echoes_code_and_reports_reason():
    body = struct.pack("!H", 1000) + b"bye"
    conn = make_conn()
    with pytest.raises(ConnectionClosedError) as info:
        ControlHandler(conn, io.BytesIO(body)).handle(Header(OpCode.CLOSE, length=len(body)))
    assert info.value.code == 1000
    assert info.value.reason == "bye"
    [(header, payload)] = written_frames(conn.raw)
    assert header.opcode == OpCode.CLOSE
    assert payload == body[:2]


def test_close_with_invalid_code_is_protocol_error():
    body = struct.pack("!H", 999)
    conn = make_conn()
    with pytest.raises(ProtocolError):
        ControlHandler(conn, io.BytesIO(body)).handle(Header(OpCode.CLOSE, length=len(body)))
    [(header, payload)] = written_frames(conn.raw)
    assert header.opcode == OpCode.CLOSE
    assert struct.unpack("!H", payload[:2])[0] == STATUS_PROTOCOL_ERROR


def test_close_with_one_byte_payload_is_protocol_error():
    conn = make_conn()
    with pytest.raises(ProtocolError):
        ControlHandler(conn, io.BytesIO(b"x")).handle(Header(OpCode.CLOSE, length=1))


def test_data_frame_is_rejected():
    conn = make_conn()
    with pytest.raises(ProtocolError):
        ControlHandler(conn, io.BytesIO(b"hello")).handle(Header(OpCode.BINARY, length=5))


def test_truncated_payload_raises_eof():
    conn = make_conn()
    with pytest.raises(EOFError):
        ControlHandler(conn, io.BytesIO(b"wor")).handle(Header(OpCode.PING, length=6))