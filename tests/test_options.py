import dataclasses

import pytest

from tnet.websocket.frames import MessageType
from tnet.websocket.options import ClientOptions, ServerOptions


def test_server_combined_writes_option():
    opts = ServerOptions(combine_writes=True)
    assert opts.combine_writes is True
    opts = dataclasses.replace(opts, combine_writes=False)
    assert opts.combine_writes is False


def test_client_combined_writes_option():
    opts = ClientOptions(combine_writes=True)
    assert opts.combine_writes is True
    opts = dataclasses.replace(opts, combine_writes=False)
    assert opts.combine_writes is False


def test_client_default_timeout():
    assert ClientOptions().timeout == 10


def test_client_defaults():
    opts = ClientOptions()
    assert opts.subprotocols == []
    assert opts.message_type is None
    assert opts.tls_config is None
    assert opts.combine_writes is False


def test_client_subprotocols_are_not_shared():
    first = ClientOptions()
    first.subprotocols.append("chat")
    assert ClientOptions().subprotocols == []


def test_client_subprotocols_copied_to_list():
    offered = ("chat", "superchat")
    opts = ClientOptions(subprotocols=offered)
    assert opts.subprotocols == ["chat", "superchat"]


def test_server_default_hooks():
    opts = ServerOptions()
    ctx = {"remote": "peer"}
    assert opts.before_handshake(ctx) is ctx
    assert opts.after_handshake(ctx, object()) is None
    assert opts.new_handshake_context() == {}


def test_server_new_contexts_are_distinct():
    opts = ServerOptions()
    first = opts.new_handshake_context()
    first["key"] = "value"
    assert opts.new_handshake_context() == {}


def test_server_defaults():
    opts = ServerOptions()
    assert opts.protocol_select is None
    assert opts.protocol_custom is None
    assert opts.ping_handler is None
    assert opts.pong_handler is None
    assert opts.message_type is None
    assert opts.keep_alive == 0
    assert opts.idle_timeout == 0
    assert opts.on_closed is None


def test_custom_hooks_kept():
    def select(proto):
        return proto == b"chat"

    opts = ServerOptions(protocol_select=select, idle_timeout=60.0)
    assert opts.protocol_select(b"chat") is True
    assert opts.protocol_select(b"superchat") is False
    assert opts.idle_timeout == 60.0


def test_message_type_coerced_from_int():
    assert ServerOptions(message_type=2).message_type is MessageType.BINARY
    assert ClientOptions(message_type=1).message_type is MessageType.TEXT


@pytest.mark.parametrize("cls", [ServerOptions, ClientOptions])
def test_invalid_message_type_rejected(cls):
    with pytest.raises(ValueError):
        cls(message_type=9)