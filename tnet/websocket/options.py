"""Settings for websocket servers and clients."""

from __future__ import annotations

import ssl
from dataclasses import dataclass, field
from typing import Any, Callable, MutableMapping, Optional

from tnet.websocket.frames import MessageType

DEFAULT_TIMEOUT = 10.0

HandshakeContext = MutableMapping[str, Any]
FrameHandler = Callable[[Any, bytes], None]


def _keep_context(ctx: HandshakeContext) -> HandshakeContext:
    return ctx


def _accept(ctx: HandshakeContext, conn: Any) -> None:
    return None


def _new_context() -> HandshakeContext:
    return {}


def _coerce_message_type(value: MessageType | int | None) -> MessageType | None:
    return None if value is None else MessageType(value)


@dataclass
class ServerOptions:
    """How a websocket server handshakes, handles control frames and manages connections.

    ``protocol_select`` picks the first acceptable subprotocol offered by the client;
    ``protocol_custom`` parses the subprotocol header itself and takes precedence.
    A ``tls_config`` enables TLS. Timeouts are in seconds; zero disables them.
    """

    before_handshake: Callable[[HandshakeContext], HandshakeContext] = _keep_context
    after_handshake: Callable[[HandshakeContext, Any], None] = _accept
    new_handshake_context: Callable[[], HandshakeContext] = _new_context
    protocol_select: Optional[Callable[[bytes], bool]] = None
    protocol_custom: Optional[Callable[[bytes], tuple[str, bool]]] = None
    ping_handler: Optional[FrameHandler] = None
    pong_handler: Optional[FrameHandler] = None
    message_type: Optional[MessageType] = None
    tls_config: Optional[ssl.SSLContext] = None
    keep_alive: float = 0.0
    idle_timeout: float = 0.0
    on_closed: Optional[Callable[[Any], None]] = None
    combine_writes: bool = False

    def __post_init__(self) -> None:
        self.message_type = _coerce_message_type(self.message_type)


@dataclass
class ClientOptions:
    """How a websocket client dials: timeout in seconds, subprotocols to offer, TLS."""

    timeout: float = DEFAULT_TIMEOUT
    subprotocols: list[str] = field(default_factory=list)
    message_type: Optional[MessageType] = None
    tls_config: Optional[ssl.SSLContext] = None
    combine_writes: bool = False

    def __post_init__(self) -> None:
        self.subprotocols = list(self.subprotocols)
        self.message_type = _coerce_message_type(self.message_type)