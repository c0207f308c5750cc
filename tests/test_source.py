import io
import os

from hypothesis import given, settings
from hypothesis import strategies as st

from mono_convert.source import ByteCounter, CountingReader


def _reader(payload: bytes) -> CountingReader:
    return CountingReader(io.BytesIO(payload), ByteCounter(), len(payload))


@settings(max_examples=75, deadline=None)
@given(
    payload=st.binary(min_size=0, max_size=4096),
    chunks=st.lists(st.integers(min_value=1, max_value=700), min_size=1, max_size=20),
)
def test_full_read_counts_every_byte_once(payload, chunks):
    reader = _reader(payload)
    idx = 0
    while True:
        data = reader.read(chunks[idx % len(chunks)])
        idx += 1
        if not data:
            break
    assert reader.bytes_read == len(payload)
    assert reader.total_length == len(payload)


def test_seek_does_not_touch_counter():
    reader = _reader(bytes(range(256)))
    reader.read(100)
    assert reader.seek(10) == 10
    assert reader.seek(-6, os.SEEK_END) == 250
    assert reader.tell() == 250
    assert reader.bytes_read == 100


def test_rereading_after_seek_counts_volume_not_position():
    reader = _reader(b"x" * 64)
    reader.read(64)
    reader.seek(0)
    reader.read(32)
    assert reader.bytes_read == 96


def test_readinto_counts_bytes():
    reader = _reader(b"abcdef")
    buf = bytearray(4)
    assert reader.readinto(buf) == 4
    assert bytes(buf) == b"abcd"
    assert reader.bytes_read == 4


def test_reader_reports_seekable_and_shares_counter():
    counter = ByteCounter()
    first = CountingReader(io.BytesIO(b"12345"), counter, 5)
    assert first.seekable()
    assert first.readable()
    first.read()
    counter.add(0)
    counter.add(-3)
    assert counter.value == 5


def test_close_closes_inner_stream():
    inner = io.BytesIO(b"data")
    reader = CountingReader(inner, ByteCounter(), 4)
    with reader:
        reader.read(2)
    assert inner.closed
    assert reader.closed
