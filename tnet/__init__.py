"""Byte buffers, a timing wheel, write-postponing heuristics and WebSocket framing."""

__version__ = "0.1.0"