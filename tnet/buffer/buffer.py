"""A thread-safe chain of byte blocks used for connection input and output."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator, Protocol

from tnet.buffer.node import (
    DEFAULT_BLOCK_SIZE,
    BufferFullError,
    InvalidParamError,
    Node,
    NoEnoughDataError,
)

DEFAULT_MAX_BUFFER_SIZE = 10 * 1024 * 1024
MAX_NODE_BLOCK_SIZE = 128 * 1024
_MAX_IOVECS = 1024
MAX_FILL_LEN = DEFAULT_BLOCK_SIZE * _MAX_IOVECS

_clean_up = threading.Event()


def set_clean_up(enabled: bool) -> None:
    """Make every buffer drop all its blocks whenever it runs empty."""
    if enabled:
        _clean_up.set()
    else:
        _clean_up.clear()


class VectorReader(Protocol):
    """A data source that scatters what it reads over several buffers."""

    def readv(self, buffers: list[memoryview]) -> int:
        """Fill ``buffers`` in order and return the number of bytes written."""


def _chain(start: Node | None) -> Iterator[Node]:
    node = start
    while node is not None:
        yield node
        node = node.next


class Buffer:
    """Blocks of bytes linked in order; one reader and one writer may work at once."""

    def __init__(
        self,
        block_size: int = DEFAULT_BLOCK_SIZE,
        max_buffer_size: int = DEFAULT_MAX_BUFFER_SIZE,
    ) -> None:
        if block_size <= 0:
            raise InvalidParamError("block size must be positive")
        self.block_size = block_size
        self.max_buffer_size = max_buffer_size
        self._rlock = threading.Lock()
        self._wlock = threading.Lock()
        self._counts = threading.Lock()
        self._auto_node_block_size = True
        self._reset_chain()

    def _reset_chain(self) -> None:
        dump = Node()
        self._head = self._rnode = self._wnode = self._tail = dump
        self._rlen = 0
        self._wlen = 0
        self._node_block_size = self.block_size

    @contextmanager
    def _rw_locked(self) -> Iterator[None]:
        with self._rlock, self._wlock:
            yield

    def _shift(self, rlen: int = 0, wlen: int = 0) -> None:
        with self._counts:
            self._rlen += rlen
            self._wlen += wlen

    def set_auto_node_block_size(self, enable: bool) -> None:
        """Let the size of new blocks grow with the amount read between releases."""
        self._auto_node_block_size = enable

    def free(self) -> None:
        """Drop every block and return to the initial empty state."""
        with self._rw_locked():
            for node in list(_chain(self._head)):
                node.reset()
            self._reset_chain()
            self._auto_node_block_size = True

    def _advance_rnode(self) -> None:
        while len(self._rnode) == 0 and self._rnode.next is not None:
            self._rnode = self._rnode.next

    def _gather(self, n: int, consume: bool) -> bytes:
        parts = []
        ack = 0
        node = self._rnode
        while ack < n and node is not None:
            if len(node) == 0:
                node = node.next
                continue
            take = min(len(node), n - ack)
            if consume:
                parts.append(node.readn(take))
            else:
                parts.append(node.peek(take))
                node = node.next
            ack += take
        if consume:
            self._rnode = node
        return b"".join(parts)

    def peek(self, n: int) -> bytes:
        """Return the next ``n`` bytes without consuming them."""
        if n < 0:
            raise InvalidParamError(f"cannot peek {n} bytes")
        with self._rlock:
            if self._rlen < n:
                raise NoEnoughDataError(f"len_read() = {self._rlen}, want {n}")
            if n == 0:
                return b""
            self._advance_rnode()
            if len(self._rnode) >= n:
                return self._rnode.peek(n)
            return self._gather(n, consume=False)

    def skip(self, n: int) -> None:
        """Consume the next ``n`` bytes."""
        if n < 0:
            raise InvalidParamError(f"cannot skip {n} bytes")
        with self._rlock:
            if self._rlen < n:
                raise NoEnoughDataError(f"len_read() = {self._rlen}, want {n}")
            if len(self._rnode) >= n:
                self._rnode.skip(n)
            else:
                node = self._rnode
                ack = 0
                while ack < n and node is not None:
                    if len(node) == 0:
                        node = node.next
                        continue
                    take = min(len(node), n - ack)
                    node.skip(take)
                    ack += take
                self._rnode = node
            self._shift(rlen=-n)

    def next(self, n: int) -> bytes:
        """Return and consume the next ``n`` bytes."""
        if n < 0:
            raise InvalidParamError(f"cannot read {n} bytes")
        with self._rlock:
            if self._rlen < n:
                raise NoEnoughDataError(f"len_read() = {self._rlen}, want {n}")
            if n == 0:
                return b""
            self._advance_rnode()
            if len(self._rnode) >= n:
                data = self._rnode.readn(n)
            else:
                data = self._gather(n, consume=True)
            self._shift(rlen=-len(data))
            return data

    def readinto(self, buf) -> int:
        """Copy up to ``len(buf)`` bytes into ``buf``, then release spent blocks."""
        view = memoryview(buf)
        if len(view) == 0:
            return 0
        try:
            with self._rlock:
                n = min(len(view), self._rlen)
                if len(self._rnode) >= n:
                    data = self._rnode.readn(n)
                else:
                    data = self._gather(n, consume=True)
                self._shift(rlen=-len(data))
                view[: len(data)] = data
                return n
        finally:
            self.release()

    def peek_blocks(self, count: int) -> list[bytes]:
        """Return up to ``count`` readable blocks without consuming them."""
        if count <= 0:
            return []
        with self._rlock:
            blocks: list[bytes] = []
            rest = self._rlen
            node = self._rnode
            while len(blocks) < count and rest > 0 and node is not None:
                size = len(node)
                if size:
                    size = min(size, rest)
                    blocks.append(bytes(node.block[node.r:node.r + size]))
                    rest -= size
                node = node.next
            return blocks

    def read_block(self) -> bytes:
        """Return and consume the next non-empty block."""
        with self._rlock:
            if self._rlen <= 0:
                raise NoEnoughDataError("buffer is empty")
            self._advance_rnode()
            data = self._rnode.readn(len(self._rnode))
            self._shift(rlen=-len(data))
            return data

    def skip_blocks(self, n: int) -> None:
        """Consume the next ``n`` non-empty blocks."""
        if n < 0:
            raise InvalidParamError(f"cannot skip {n} blocks")
        with self._rlock:
            if self._rlen <= 0:
                raise NoEnoughDataError("buffer is empty")
            targets = []
            for node in _chain(self._rnode):
                if len(targets) >= n:
                    break
                if len(node):
                    targets.append(node)
            if len(targets) != n:
                raise NoEnoughDataError(f"buffer holds {len(targets)} blocks, want {n}")
            total = 0
            for node in targets:
                total += len(node)
                node.skip(len(node))
            if targets:
                self._rnode = targets[-1]
            self._shift(rlen=-total)

    def optimize_memory(self) -> None:
        """Reuse or drop the current block once the buffer is empty."""
        with self._rw_locked():
            if self._rlen != 0:
                return
            if _clean_up.is_set():
                self._clean_up_locked()
                return
            wnode = self._wnode
            self._shift(wlen=wnode.w)
            wnode.r = wnode.w = 0
            if not wnode.recycle:
                wnode.block = b""

    def clean_up(self) -> None:
        """Discard every block and return to a single empty node."""
        with self._rw_locked():
            self._clean_up_locked()

    def _clean_up_locked(self) -> None:
        for node in list(_chain(self._head)):
            node.reset()
        self._reset_chain()

    def write(self, safe: bool, data) -> int:
        """Append ``data``; copied when ``safe`` is true, referenced otherwise."""
        return self.writev(safe, data)

    def writev(self, safe: bool, *args) -> int:
        """Append every chunk in order; copied when ``safe`` is true, referenced otherwise."""
        if safe:
            return self._copy_from(args)
        return self._link_from(args)

    def _copy_from(self, chunks) -> int:
        with self._wlock:
            self._prepare_fill()
            self._malloc(self._cal_nodes(sum(len(c) for c in chunks)))
            return sum(self._copy_one(c) for c in chunks)

    def _copy_one(self, data) -> int:
        length = len(data)
        copied = 0
        node = self._wnode
        while node is not None and copied < length:
            take = min(node.rest(), length - copied)
            if take:
                node.block[node.w:node.w + take] = data[copied:copied + take]
                copied += take
            node = node.next
        self._adjust(copied)
        return copied

    def _link_from(self, chunks) -> int:
        with self._wlock:
            linked, length = self._link_with_existing_nodes(chunks)
            if linked < len(chunks):
                length += self._link_with_new_nodes(chunks[linked:])
            return length

    def _link_with_existing_nodes(self, chunks) -> tuple[int, int]:
        linked = 0
        length = 0
        freed = 0
        for node in _chain(self._wnode):
            if linked >= len(chunks):
                break
            if node.w != 0:
                continue
            freed += node.rest()
            node.set_block(chunks[linked])
            length += len(chunks[linked])
            self._wnode = node
            linked += 1
        self._shift(rlen=length, wlen=-freed)
        return linked, length

    def _link_with_new_nodes(self, chunks) -> int:
        head: Node | None = None
        tail: Node | None = None
        total = 0
        for chunk in chunks:
            if len(chunk) == 0:
                continue
            node = Node()
            node.set_block(chunk)
            if tail is None:
                head = node
            else:
                tail.next = node
            tail = node
            total += len(chunk)
        if total == 0:
            return 0
        self._wnode.next = head
        self._wnode = tail
        self._tail = tail
        self._shift(rlen=total)
        return total

    def fill(self, reader: VectorReader, n: int) -> None:
        """Read up to ``n`` bytes from ``reader`` straight into free blocks."""
        if self._rlen > self.max_buffer_size:
            raise BufferFullError("buffer is full")
        with self._wlock:
            self._prepare_fill()
            self._malloc(self._cal_nodes(n))
            views = [
                memoryview(node.block)[node.w:]
                for node in _chain(self._wnode)
                if node.rest() > 0
            ]
            actual = reader.readv(views)
            self._adjust(actual)

    def _prepare_fill(self) -> None:
        if not self._wnode.is_full():
            return
        if self._wnode.next is not None:
            self._wnode = self._wnode.next
            return
        self._add_node()
        self._wnode = self._wnode.next

    def _cal_nodes(self, n: int) -> int:
        wanted = min(n, MAX_FILL_LEN) - self._wnode.rest()
        if wanted <= 0:
            return 1
        return self._cal_nodes_num(wanted) + 1

    def _cal_nodes_num(self, n: int) -> int:
        return (n + self._node_block_size - 1) // self._node_block_size

    def _malloc(self, count: int) -> None:
        existing = sum(1 for _ in _chain(self._wnode))
        for _ in range(count - existing):
            self._add_node()

    def _add_node(self) -> None:
        node = Node()
        node.alloc_block(self._node_block_size)
        self._tail.next = node
        self._tail = node
        self._shift(rlen=len(node), wlen=node.rest())

    def _adjust(self, n: int) -> None:
        remaining = n
        node = self._wnode
        while node is not None:
            rest = node.rest()
            if rest >= remaining:
                node.w += remaining
                break
            node.w += rest
            remaining -= rest
            node = node.next
        self._wnode = node
        self._shift(rlen=n, wlen=-n)

    def release(self) -> None:
        """Drop blocks that have been read completely."""
        with self._rlock:
            read_length = self._rnode.capacity()
            while self._head is not self._rnode:
                spent = self._head
                read_length += spent.capacity()
                self._head = spent.next
                spent.reset()
            if (
                self._auto_node_block_size
                and self._node_block_size < read_length < MAX_NODE_BLOCK_SIZE
            ):
                while self._node_block_size < read_length:
                    self._node_block_size <<= 1
        self.optimize_memory()

    def len_read(self) -> int:
        """Number of bytes that can be read."""
        return self._rlen

    def len_write(self) -> int:
        """Number of bytes that can be written without new blocks."""
        return self._wlen