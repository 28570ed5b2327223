"""A websocket connection over a raw byte-stream connection."""

from __future__ import annotations

import codecs
import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Optional

from tnet.websocket.control_handler import ControlHandler
from tnet.websocket.frames import (
    MAX_HEADER_SIZE,
    Header,
    MessageType,
    OpCode,
    ProtocolError,
    apply_mask,
    message_type_for,
    opcode_for,
    read_header,
    write_message,
)

DEFAULT_WRITE_BUFFER_SIZE = 4096

_log = logging.getLogger(__name__)
_executor = ThreadPoolExecutor(thread_name_prefix="websocket-control")

FrameHandler = Callable[[Any, bytes], None]


def _write_frame(dst: Any, client_side: bool, opcode: OpCode, payload: bytes, fin: bool) -> None:
    mask = os.urandom(4) if client_side else None
    dst.write(Header(opcode=opcode, length=len(payload), fin=fin, mask=mask).encode())
    if payload:
        dst.write(apply_mask(payload, mask) if mask is not None else bytes(payload))


class BufWriter:
    """Collects writes and sends them to ``writer`` in a single call on ``flush``."""

    def __init__(self, writer: Any, capacity: int = 0) -> None:
        self.writer = writer
        self._buf = bytearray()
        self._capacity = capacity

    def write(self, data: bytes) -> int:
        self._buf += data
        return len(data)

    def flush(self) -> None:
        """Send everything collected; raise if the writer is missing or writes short."""
        if self.writer is None:
            raise ValueError("writer is None")
        if not self._buf:
            return
        n = self.writer.write(bytes(self._buf))
        if n is not None and n < len(self._buf):
            raise OSError(f"short write: {n} of {len(self._buf)} bytes")
        self._buf.clear()


class _FrameReader:
    """Reads one frame's payload, unmasking it on the way."""

    def __init__(self, source: Any, length: int, mask: Optional[bytes]) -> None:
        self._source = source
        self.remaining = length
        self._mask = mask
        self._offset = 0

    def read(self, size: int = -1) -> bytes:
        if self.remaining == 0 or size == 0:
            return b""
        n = self.remaining if size < 0 else min(size, self.remaining)
        chunk = self._source.read(n)
        if not chunk:
            raise EOFError("stream ended inside a frame")
        if self._mask is not None:
            k = self._offset % 4
            chunk = apply_mask(chunk, self._mask[k:] + self._mask[:k])
        self._offset += len(chunk)
        self.remaining -= len(chunk)
        return bytes(chunk)

    def discard(self) -> None:
        while self.remaining:
            self.read(65536)


class MessageReader:
    """Reads the frames of one message, joining continuations.

    Control frames that arrive between the fragments of a message are passed to
    ``on_intermediate(header, payload_reader)``.
    """

    def __init__(
        self,
        source: Any,
        client_side: bool,
        on_intermediate: Optional[Callable[[Header, Any], None]] = None,
        check_utf8: bool = True,
    ) -> None:
        self._source = source
        self._client_side = client_side
        self._on_intermediate = on_intermediate
        self._check_utf8 = check_utf8
        self._frame: Optional[_FrameReader] = None
        self._fragmented = False
        self._opcode: Optional[OpCode] = None
        self._decoder = None
        self._done = False

    def _check(self, header: Header) -> None:
        if header.rsv:
            raise ProtocolError("reserved bits are set")
        if self._client_side and header.masked:
            raise ProtocolError("unexpected masked frame from server")
        if not self._client_side and not header.masked:
            raise ProtocolError("frame from client is not masked")
        if header.opcode.is_control():
            return
        if header.opcode == OpCode.CONTINUATION and not self._fragmented:
            raise ProtocolError("continuation frame without a message to continue")
        if header.opcode != OpCode.CONTINUATION and self._fragmented:
            raise ProtocolError("new data frame inside a fragmented message")

    def next_frame(self) -> Header:
        """Advance to the next frame, discarding what is left of the current one."""
        if self._frame is not None:
            self._frame.discard()
            self._frame = None
        try:
            header = read_header(self._source)
        except EOFError:
            if self._fragmented:
                raise EOFError("stream ended inside a fragmented message") from None
            raise
        self._check(header)
        frame = _FrameReader(self._source, header.length, header.mask)
        if self._fragmented and header.opcode.is_control():
            if self._on_intermediate is not None:
                self._on_intermediate(header, frame)
            frame.discard()
            return header
        if not self._fragmented:
            self._opcode = header.opcode
            self._done = False
            self._decoder = (
                codecs.getincrementaldecoder("utf-8")()
                if self._check_utf8 and header.opcode == OpCode.TEXT
                else None
            )
        self._frame = frame
        self._fragmented = not header.fin
        return header

    def _validate(self, chunk: bytes, final: bool = False) -> None:
        if self._decoder is None:
            return
        try:
            self._decoder.decode(chunk, final)
        except UnicodeDecodeError:
            raise ProtocolError("text message is not valid UTF-8") from None

    def read(self, size: int = -1) -> bytes:
        """Read up to ``size`` payload bytes, or the rest of the message when negative.

        An empty result means the message has been read completely.
        """
        if self._opcode is None:
            raise ProtocolError("next_frame must be called before read")
        if size == 0:
            return b""
        parts = []
        while not self._done:
            if self._frame is None:
                if self._fragmented:
                    self.next_frame()
                    continue
                self._validate(b"", final=True)
                self._done = True
                break
            chunk = self._frame.read(size)
            if chunk:
                self._validate(chunk)
                parts.append(chunk)
                if size >= 0:
                    break
            else:
                self._frame = None
        return b"".join(parts)


class MessageWriter:
    """Writes one message, sending a fragment each time the buffer overflows."""

    def __init__(
        self,
        dst: Any,
        client_side: bool,
        opcode: OpCode,
        buffer_size: int = DEFAULT_WRITE_BUFFER_SIZE,
    ) -> None:
        if buffer_size <= 0:
            raise ValueError("buffer size must be positive")
        self._dst = dst
        self._client_side = client_side
        self._opcode = OpCode(opcode)
        self._size = buffer_size
        self._buf = bytearray()
        self._started = False

    def _emit(self, payload: bytes, fin: bool) -> None:
        opcode = OpCode.CONTINUATION if self._started else self._opcode
        _write_frame(self._dst, self._client_side, opcode, payload, fin)
        self._started = not fin

    def write(self, data: bytes) -> int:
        self._buf += data
        while len(self._buf) > self._size:
            chunk = bytes(self._buf[: self._size])
            del self._buf[: self._size]
            self._emit(chunk, fin=False)
        return len(data)

    def close(self) -> None:
        """Send the final frame of the message."""
        payload = bytes(self._buf)
        self._buf.clear()
        self._emit(payload, fin=True)


def _run_async(handler: FrameHandler, kind: str) -> FrameHandler:
    def guarded(conn: Any, data: bytes) -> None:
        try:
            handler(conn, data)
        except Exception:
            _log.exception("%s handler failed", kind)

    def submit(conn: Any, data: bytes) -> None:
        _executor.submit(guarded, conn, data)

    return submit


class Conn:
    """A websocket connection.

    Reading is not safe to share between threads; writing whole messages is.
    ``raw`` must offer ``read``, ``write``, ``writev`` and ``close``.
    """

    def __init__(
        self,
        raw: Any,
        *,
        client_side: bool = False,
        subprotocol: str = "",
        message_type: Optional[MessageType] = None,
        ping_handler: Optional[FrameHandler] = None,
        pong_handler: Optional[FrameHandler] = None,
        combine_writes: bool = False,
    ) -> None:
        self.raw = raw
        self.client_side = client_side
        self.subprotocol = subprotocol
        self.message_type = None if message_type is None else MessageType(message_type)
        self.ping_handler = ping_handler
        self.pong_handler = pong_handler
        self.combine_writes = combine_writes
        self.metadata: Any = None
        self._lock = threading.Lock()
        self._reader: Optional[MessageReader] = None

    def _handle_control(self, header: Header, source: Any) -> None:
        ControlHandler(self, source).handle(header)

    def _new_reader(self) -> MessageReader:
        return MessageReader(self.raw, self.client_side, on_intermediate=self._handle_control)

    def _require_message_type(self) -> MessageType:
        if self.message_type not in (MessageType.TEXT, MessageType.BINARY):
            raise ValueError("message type is neither Text nor Binary for this connection")
        return self.message_type

    def read(self, size: int = -1) -> bytes:
        """Read payload bytes as a stream of messages of the connection's message type."""
        expected = self._require_message_type()
        if size == 0:
            return b""
        while True:
            if self._reader is None:
                message_type, reader = self.next_message_reader()
                if message_type != expected:
                    reader.read()
                    raise ProtocolError(
                        f"inconsistent message type from read: {message_type}, want {expected}"
                    )
                self._reader = reader
            data = self._reader.read(size)
            if data:
                return data
            self._reader = None

    def read_any_message(self) -> tuple[Optional[MessageType], bytes]:
        """Read the next message of any kind; a leading control frame is returned, not handled."""
        reader = self._new_reader()
        header = reader.next_frame()
        return message_type_for(header.opcode), reader.read()

    def read_message(self) -> tuple[MessageType, bytes]:
        """Read a complete text or binary message; control frames are handled on the way."""
        message_type, reader = self.next_message_reader()
        return message_type, reader.read()

    def next_message_reader(self) -> tuple[MessageType, MessageReader]:
        """Return the type of the next data message and a reader for its payload."""
        reader = self._new_reader()
        while True:
            header = reader.next_frame()
            if header.opcode.is_control():
                self._handle_control(header, reader)
                continue
            return message_type_for(header.opcode), reader

    def write(self, data: bytes) -> int:
        """Send ``data`` as one message of the connection's message type."""
        message_type = self._require_message_type()
        self.write_message(message_type, data)
        return len(data)

    def _write_message(self, message_type: MessageType, data: bytes) -> None:
        write_message(self.raw, self.client_side, opcode_for(message_type), data)

    def _write_message_combined(self, message_type: MessageType, data: bytes) -> None:
        writer = BufWriter(self.raw, len(data) + MAX_HEADER_SIZE)
        write_message(writer, self.client_side, opcode_for(message_type), data)
        writer.flush()

    def write_message(self, message_type: MessageType, data: bytes) -> None:
        """Send ``data`` as a single frame."""
        if self.combine_writes:
            self._write_message_combined(message_type, data)
            return
        with self._lock:
            self._write_message(message_type, data)

    def writev_message(self, message_type: MessageType, *args: bytes) -> None:
        """Send all chunks, in order, as the payload of a single frame."""
        if self.client_side:
            payload = b"".join(args)
            if self.combine_writes:
                self._write_message_combined(message_type, payload)
                return
            with self._lock:
                self._write_message(message_type, payload)
            return
        with self._lock:
            header = Header(opcode=opcode_for(message_type), length=sum(len(p) for p in args))
            self.raw.write(header.encode())
            self.raw.writev(*args)

    def next_message_writer(self, message_type: MessageType) -> MessageWriter:
        """Return a writer for the next message; ``close`` it to finish the message."""
        return MessageWriter(self.raw, self.client_side, opcode_for(message_type))

    def close(self) -> None:
        self.raw.close()

    def set_async_ping_handler(self, handler: FrameHandler) -> None:
        """Run ``handler`` for ping frames on a worker thread; its errors are logged."""
        self.ping_handler = _run_async(handler, "ping")

    def set_async_pong_handler(self, handler: FrameHandler) -> None:
        """Run ``handler`` for pong frames on a worker thread; its errors are logged."""
        self.pong_handler = _run_async(handler, "pong")

    def set_idle_timeout(self, timeout: float) -> None:
        self.raw.set_idle_timeout(timeout)

    def set_read_idle_timeout(self, timeout: float) -> None:
        self.raw.set_read_idle_timeout(timeout)

    def set_write_idle_timeout(self, timeout: float) -> None:
        self.raw.set_write_idle_timeout(timeout)