import io

import pytest

from tnet.buffer.buffer import Buffer, set_clean_up
from tnet.buffer.node import BufferFullError, InvalidParamError, NoEnoughDataError

S1, S2, S3 = bytes([1, 2, 3]), bytes([4, 5, 6]), bytes([7, 8, 9])


class StringReader:
    def __init__(self, text):
        self._src = io.BytesIO(text.encode())

    def readv(self, buffers):
        data = self._src.read(sum(len(b) for b in buffers))
        offset = 0
        for view in buffers:
            if offset >= len(data):
                break
            chunk = data[offset:offset + len(view)]
            view[: len(chunk)] = chunk
            offset += len(chunk)
        return len(data)


@pytest.fixture
def linked():
    buf = Buffer()
    buf.writev(False, S1, S2, S3)
    return buf


def test_new_buffer_is_empty():
    buf = Buffer()
    assert buf.len_read() == 0
    assert buf.len_write() == 0


def test_writev():
    buf = Buffer()
    assert buf.writev(True) == 0
    assert buf.writev(False, S1, S2, S3) == 9
    assert buf.len_read() == 9


def test_write_copies_when_safe():
    buf = Buffer()
    src = bytearray(S1)
    assert buf.write(True, src) == 3
    src[0] = 99
    assert buf.next(3) == S1


def test_write_links_when_unsafe():
    buf = Buffer()
    src = bytearray(S1)
    assert buf.write(False, src) == 3
    src[0] = 9
    assert buf.next(1) == bytes([9])


def test_peek():
    buf = Buffer()
    buf.writev(False, S1, S2)
    with pytest.raises(InvalidParamError):
        buf.peek(-1)
    assert buf.peek(3) == bytes([1, 2, 3])
    assert buf.peek(5) == bytes([1, 2, 3, 4, 5])
    assert buf.peek(6) == bytes([1, 2, 3, 4, 5, 6])
    with pytest.raises(NoEnoughDataError):
        buf.peek(7)
    assert buf.len_read() == 6


def test_peek_err():
    buf = Buffer()
    buf.writev(False, S1)
    with pytest.raises(NoEnoughDataError):
        buf.peek(4)


def test_skip(linked):
    with pytest.raises(InvalidParamError):
        linked.skip(-1)
    linked.skip(3)
    assert linked.len_read() == 6
    linked.skip(5)
    assert linked.len_read() == 1
    linked.skip(1)
    assert linked.len_read() == 0
    with pytest.raises(NoEnoughDataError):
        linked.skip(1)


def test_skip_err():
    buf = Buffer()
    buf.writev(False, S1)
    with pytest.raises(NoEnoughDataError):
        buf.skip(4)


def test_next(linked):
    with pytest.raises(InvalidParamError):
        linked.next(-1)
    assert linked.next(3) == bytes([1, 2, 3])
    assert linked.next(6) == bytes([4, 5, 6, 7, 8, 9])


def test_next_err():
    buf = Buffer()
    buf.writev(False, S1)
    with pytest.raises(NoEnoughDataError):
        buf.next(4)
    assert buf.len_read() == 3


def test_readinto(linked):
    assert linked.readinto(bytearray(0)) == 0
    res = bytearray(1)
    assert linked.readinto(res) == 1
    assert res == bytes([1])
    res = bytearray(2)
    assert linked.readinto(res) == 2
    assert res == bytes([2, 3])
    res = bytearray(4)
    assert linked.readinto(res) == 4
    assert res == bytes([4, 5, 6, 7])


def test_readinto_less_than_required(linked):
    res = bytearray(10)
    n = linked.readinto(res)
    assert n == 9
    assert res[:n] == bytes(range(1, 10))
    assert linked.len_read() == 0


def test_peek_blocks(linked):
    assert linked.peek_blocks(3) == [S1, S2, S3]
    assert linked.peek_blocks(0) == []
    assert linked.len_read() == 9


def test_read_block(linked):
    assert linked.read_block() == S1
    assert linked.read_block() == S2
    assert linked.read_block() == S3
    with pytest.raises(NoEnoughDataError):
        linked.read_block()


def test_skip_blocks(linked):
    linked.skip_blocks(1)
    assert linked.len_read() == 6
    linked.skip_blocks(2)
    assert linked.len_read() == 0


def test_skip_blocks_too_many(linked):
    with pytest.raises(NoEnoughDataError):
        linked.skip_blocks(4)
    with pytest.raises(InvalidParamError):
        linked.skip_blocks(-1)


def test_clean_up():
    buf = Buffer()
    buf.clean_up()
    assert buf.len_read() == 0
    assert buf.len_write() == 0
    buf.writev(False, S1, S2, S3)
    buf.next(9)
    buf.clean_up()
    assert buf.len_write() == 0
    buf.fill(StringReader("12345"), 5)
    assert buf.next(5) == b"12345"
    buf.clean_up()
    assert buf.len_read() == 0
    assert buf.len_write() == 0


def test_release_with_clean_up():
    set_clean_up(True)
    try:
        buf = Buffer()
        s1 = "123456789123"
        buf.fill(StringReader(s1), len(s1))
        assert buf.len_read() == len(s1)
        assert buf.next(3) == b"123"
        buf.next(3)
        buf.release()
        assert buf.next(4) == s1[6:10].encode()
        buf.release()
        assert buf.len_read() == 2
        assert buf.next(2) == b"23"
        buf.release()
        assert buf.len_write() == 0
    finally:
        set_clean_up(False)


def test_release_keeps_block_without_clean_up():
    buf = Buffer(block_size=8)
    buf.write(True, b"abc")
    assert buf.next(3) == b"abc"
    buf.release()
    assert buf.len_read() == 0
    assert buf.len_write() == 8


def test_fill_small_block_size():
    s = "0123456789a1b2c3d4e5f6g7h8i9j1k2l3m4n5o6p7q8"
    reader = StringReader(s)
    buf = Buffer(block_size=10)
    buf.fill(reader, 10)
    assert buf.next(8) == s[:8].encode()
    assert buf.next(2) == s[8:10].encode()
    buf.fill(reader, 10)
    assert buf.next(8) == s[10:18].encode()
    assert buf.next(2) == s[18:20].encode()


def test_fill_max_buffer_size():
    s = "0123456789a1b2c3d4e5f6g7h8i9j1k2l3m4n5o6p7q8"
    reader = StringReader(s)
    buf = Buffer(block_size=10)
    buf.fill(reader, 10)
    buf.max_buffer_size = 8
    with pytest.raises(BufferFullError):
        buf.fill(reader, 10)


def test_fill_buffer_not_full():
    s = "012345"
    buf = Buffer(block_size=10)
    buf.fill(StringReader(s), len(s))
    assert buf.next(5) == s[:5].encode()
    with pytest.raises(NoEnoughDataError):
        buf.next(2)
    buf.fill(StringReader(s), 10)
    assert buf.next(5) == b"50123"


def test_fill_more_than_one_node():
    s = "123456"
    buf = Buffer(block_size=10)
    buf.fill(StringReader(s), 30)
    assert buf.next(5) == s[:5].encode()
    with pytest.raises(NoEnoughDataError):
        buf.next(2)
    buf.fill(StringReader(s), 30)
    assert buf.next(5) == b"61234"
    assert buf.next(2) == b"56"


def test_free_resets_buffer(linked):
    linked.free()
    assert linked.len_read() == 0
    assert linked.len_write() == 0
    assert linked.write(True, S1) == 3
    assert linked.next(3) == S1


def test_cal_nodes_num():
    buf = Buffer(block_size=6)
    assert buf._cal_nodes_num(0) == 0
    assert buf._cal_nodes_num(5) == 1
    assert buf._cal_nodes_num(6) == 1
    assert buf._cal_nodes_num(7) == 2


def test_invalid_block_size():
    with pytest.raises(InvalidParamError):
        Buffer(block_size=0)