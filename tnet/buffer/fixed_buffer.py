"""A read-only buffer over one fixed block of bytes."""

from __future__ import annotations

import threading

from tnet.buffer.node import InvalidParamError


class FixedReadBuffer:
    """Reads from one fixed block; safe to share between reading threads."""

    def __init__(self, data: bytes | bytearray = b"") -> None:
        self._lock = threading.Lock()
        self._buf: bytes | bytearray = b""
        self._rlen = 0
        self._pos = 0
        self.initialize(data)

    def initialize(self, data: bytes | bytearray) -> None:
        """Replace the contents with ``data`` and rewind to its start."""
        with self._lock:
            self._buf = data if data is not None else b""
            self._rlen = len(self._buf)
            self._pos = 0

    def _take(self, n: int) -> bytes:
        start = self._pos
        self._pos += n
        self._rlen -= n
        return bytes(self._buf[start:start + n])

    def readinto(self, buf) -> int:
        """Copy up to ``len(buf)`` bytes into ``buf``; raise ``EOFError`` when empty."""
        view = memoryview(buf)
        if len(view) == 0:
            return 0
        with self._lock:
            if self._rlen == 0:
                raise EOFError("fixed buffer is drained")
            n = min(len(view), self._rlen)
            view[:n] = self._take(n)
            return n

    def _check(self, n: int) -> None:
        if n < 0:
            raise InvalidParamError(f"invalid length {n}")

    def peek(self, n: int) -> bytes:
        """Return the next ``n`` bytes without consuming them."""
        self._check(n)
        if n == 0:
            return b""
        with self._lock:
            if self._rlen < n:
                raise EOFError(f"fixed buffer holds {self._rlen} bytes, want {n}")
            return bytes(self._buf[self._pos:self._pos + n])

    def skip(self, n: int) -> None:
        """Consume the next ``n`` bytes."""
        self._check(n)
        if n == 0:
            return
        with self._lock:
            if self._rlen < n:
                raise EOFError(f"fixed buffer holds {self._rlen} bytes, want {n}")
            self._pos += n
            self._rlen -= n

    def next(self, n: int) -> bytes:
        """Return and consume the next ``n`` bytes."""
        self._check(n)
        if n == 0:
            return b""
        with self._lock:
            if self._rlen < n:
                raise EOFError(f"fixed buffer holds {self._rlen} bytes, want {n}")
            return self._take(n)

    def read_n(self, n: int) -> bytes:
        """Return a copy of the next ``n`` bytes and consume them."""
        return self.next(n)

    def len_read(self) -> int:
        """Number of bytes left to read."""
        return self._rlen

    def cur_pos(self) -> int:
        """Offset of the next byte to read."""
        return self._pos