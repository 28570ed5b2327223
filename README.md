# tnet

Building blocks for event-driven network code. The package has no
third-party dependencies.

## What is inside

- **`tnet.buffer.buffer.Buffer`** is a chain of byte blocks. One reader and
  one writer may use it at the same time.
  - Writing: `write(safe, data)` and `writev(safe, *chunks)` append data. With
    `safe=True` the data is copied into the buffer's own blocks. With
    `safe=False` the caller's objects are linked in by reference.
  - Reading: `peek(n)`, `skip(n)`, `next(n)`, `readinto(buf)`, `read_block()`,
    `skip_blocks(n)` and `peek_blocks(count)`. Asking for more than is
    buffered raises `NoEnoughDataError`. A negative size raises
    `InvalidParamError`.
  - Filling from a source: `fill(reader, n)` reads straight into free blocks.
    The `reader` must provide `readv(buffers)` over a list of `memoryview`s
    and return the number of bytes written. If the buffer already holds more
    than `max_buffer_size` bytes, `fill` raises `BufferFullError`.
  - Memory: `release()` drops blocks that have been read completely. It also
    grows the size of new blocks while automatic sizing is on; see
    `set_auto_node_block_size`.
  - Housekeeping: `optimize_memory()`, `clean_up()`, `free()`, `len_read()`
    and `len_write()`. `set_clean_up(True)` makes every buffer drop all its
    blocks whenever it runs empty.
- **`tnet.buffer.node.Node`** is the single block with read and write offsets
  that buffers are built from. The buffer errors are defined in the same
  module.
- **`tnet.buffer.fixed_buffer.FixedReadBuffer`** is a thread-safe reader over
  one fixed block of bytes. It provides `readinto`, `peek`, `skip`, `next`,
  `read_n`, `len_read` and `cur_pos`. When the data runs out it raises
  `EOFError`.
- **`tnet.asynctimer`** is a timing wheel.
  - A `TimeWheel(interval, slot_num)` runs on its own thread once `start()`
    is called.
  - A `Timer(data, expired_handle, timeout)` calls `expired_handle(data)`
    once `timeout` seconds pass. Calling `add` again on an active timer
    restarts its countdown.
  - A delay shorter than one tick raises `ShortDelayError`. A non-positive
    interval or slot count raises `InvalidParamError`.
  - The module-level `add`, `delete` and `stop` use a shared wheel that ticks
    once a second.
- **`tnet.autopostpone.PostponeWrite`** holds the counters that decide when a
  connection's writes should be postponed.
  - `check_loop_cnt` and `inc_reading_try_lock_fail` switch postponing on
    under contention.
  - `check_and_disable` switches it off after 70 rounds with the same packet
    count.
- **`tnet.websocket.frames`** covers the wire format.
  - Types: `MessageType`, `OpCode` and `Header` (`encode`).
  - Functions: `read_header`, `apply_mask` and `write_message`. Frames written
    from the client side are masked.
  - Mappings: `message_type_for` and `opcode_for`.
- **`tnet.websocket.options`** holds the settings dataclasses `ServerOptions`
  and `ClientOptions`. The client timeout defaults to 10 seconds.
- **`tnet.websocket.control_handler.ControlHandler`** answers control frames.
  - Ping: it answers with a pong, unless a custom handler is set.
  - Pong: it calls the custom handler, if one is set.
  - Close: it echoes the close frame and raises `ConnectionClosedError`. An
    invalid close frame is answered with status 1002 and raises
    `ProtocolError`.
- **`tnet.websocket.conn`** works over any raw object that provides `read`,
  `write`, `writev` and `close`.
  - `Conn` reads messages with `read_message`, `read_any_message`,
    `next_message_reader` and stream-style `read`.
  - It writes with `write_message`, `writev_message`, `next_message_writer`
    and `write`.
  - With `combine_writes` set, header and payload go out in one `write` call
    through `BufWriter`.
  - Pings and pongs that arrive between data frames go to the control
    handler.

## Examples

```python
from tnet.buffer.buffer import Buffer

buf = Buffer()
buf.writev(False, b"\x01\x02\x03", b"\x04\x05\x06")
assert buf.peek(5) == b"\x01\x02\x03\x04\x05"
buf.skip(2)
assert buf.next(4) == b"\x03\x04\x05\x06"
```

```python
import time
from tnet.asynctimer import TimeWheel, Timer

wheel = TimeWheel(0.01, 3)
wheel.start()
fired = []
wheel.add(Timer("job", fired.append, 0.05))
time.sleep(0.2)
wheel.stop()
assert fired == ["job"]
```

```python
import io
from tnet.websocket.frames import OpCode, read_header, write_message

out = io.BytesIO()
write_message(out, False, OpCode.TEXT, b"hello")
out.seek(0)
header = read_header(out)
assert header.opcode is OpCode.TEXT and header.length == 5
```

## What it does not do

The package does not open sockets. It has no poller, no TCP or UDP
listener or dialer, and no service loop.

For WebSocket, it provides framing and the message layer on top of a
connection you supply. It does not perform the HTTP upgrade handshake, does
not dial `ws://` or `wss://` URLs, and does not run a server. The options in
`ServerOptions` and `ClientOptions` describe those steps, but nothing in the
package carries them out. TLS is likewise left to the caller.

## Install and test

```
pip install .[test]
pytest
```