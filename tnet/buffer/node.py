"""A single block of bytes with independent read and write offsets."""

from __future__ import annotations

from dataclasses import dataclass, field

DEFAULT_BLOCK_SIZE = 4096


class InvalidParamError(ValueError):
    """A parameter is out of range."""


class NoEnoughDataError(Exception):
    """Less data is available than was requested."""


class NodeFullError(Exception):
    """The node has no room left for the requested data."""


class BufferFullError(Exception):
    """The buffer already holds more data than it may."""


@dataclass(eq=False)
class Node:
    """A block of bytes; data lives between the read offset ``r`` and the write offset ``w``."""

    block: bytes | bytearray = b""
    r: int = 0
    w: int = 0
    recycle: bool = False
    next: Node | None = field(default=None, repr=False)

    def __bool__(self) -> bool:
        # A node is a link in a chain; an empty one is still a node.
        return True

    def alloc_block(self, size: int = DEFAULT_BLOCK_SIZE) -> None:
        """Give the node a fresh writable block of ``size`` bytes."""
        self.block = bytearray(size)
        self.recycle = True

    def __len__(self) -> int:
        return self.w - self.r

    def rest(self) -> int:
        """Room left for writing."""
        return self.capacity() - self.w

    def capacity(self) -> int:
        return len(self.block)

    def is_full(self) -> bool:
        return self.w == len(self.block)

    def peek(self, n: int) -> bytes:
        """Return the next ``n`` readable bytes without consuming them."""
        if n > len(self):
            raise NoEnoughDataError(f"node holds {len(self)} bytes, want {n}")
        return bytes(self.block[self.r:self.r + n])

    def readn(self, n: int) -> bytes:
        """Return and consume the next ``n`` readable bytes."""
        data = self.peek(n)
        self.r += n
        return data

    def skip(self, n: int) -> None:
        """Consume ``n`` readable bytes."""
        if n > len(self):
            raise NoEnoughDataError(f"node holds {len(self)} bytes, want {n}")
        self.r += n

    def add(self, n: int) -> None:
        """Advance the write offset over ``n`` bytes already placed in the block."""
        if self.is_full() or self.w + n > len(self.block):
            raise NodeFullError("node is full")
        self.w += n

    def set_block(self, block: bytes | bytearray) -> None:
        """Make ``block`` the node's data, holding a reference to it."""
        self.block = block
        self.w = len(block)
        self.recycle = False

    def reset(self) -> None:
        """Drop the block and the link, returning to the empty state."""
        self.block = b""
        self.next = None
        self.recycle = False
        self.r = 0
        self.w = 0