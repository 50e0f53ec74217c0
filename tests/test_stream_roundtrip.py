"""Round-trip and chunking behaviour of the encoding/decoding streams."""
from __future__ import annotations

import io
import os

import pytest
from hypothesis import given, settings, strategies as st

from aead_stream import MAC_SIZE, AeadDecodingStream, AeadEncodingStream, StreamState
from aead_stream.api import encode_bytes

from conftest import KEY, NONCE, BlockLagMode, TrickleReader


def _encode(plaintext: bytes, *, mode=None, chunk: int | None = None) -> bytes:
    sink = io.BytesIO()
    stream = AeadEncodingStream(sink, KEY, nonce=NONCE, mode=mode, close_sink=False)
    if chunk is None:
        stream.write(plaintext)
    else:
        for start in range(0, len(plaintext), chunk):
            stream.write(plaintext[start : start + chunk])
    stream.close()
    return sink.getvalue()


def _decode(encoded: bytes, read_size: int, **kwargs) -> tuple[bytes, AeadDecodingStream]:
    stream = AeadDecodingStream(io.BytesIO(encoded), KEY, **kwargs)
    chunks = []
    while True:
        chunk = stream.read(read_size)
        assert len(chunk) <= read_size
        if not chunk:
            break
        chunks.append(chunk)
    chunks.append(stream.close())
    return b"".join(chunks), stream


def test_three_byte_payload_layout_and_single_byte_reads() -> None:
    encoded = _encode(b"\x01\x02\x03")
    assert len(encoded) == 16 + 3 + MAC_SIZE
    assert encoded[:16] == NONCE

    stream = AeadDecodingStream(io.BytesIO(encoded), KEY)
    assert [stream.read(1) for _ in range(3)] == [b"\x01", b"\x02", b"\x03"]
    assert stream.read(1) == b""
    assert stream.close() == b""
    assert stream.state is StreamState.VERIFIED
    assert stream.verified is True


def test_empty_payload_round_trip() -> None:
    encoded = _encode(b"")
    assert len(encoded) == 16 + MAC_SIZE
    plaintext, stream = _decode(encoded, 64)
    assert plaintext == b""
    assert stream.verified is True


@pytest.mark.parametrize("read_size", [1, 7, 16, 17, 4096, 1 << 20])
def test_read_size_does_not_change_plaintext(read_size: int) -> None:
    payload = os.urandom(1000)
    encoded = _encode(payload, chunk=33)
    plaintext, _stream = _decode(encoded, read_size)
    assert plaintext == payload


@pytest.mark.parametrize("read_size", [1, 5, 15, 16, 31, 100, 4096])
def test_block_lagging_mode_uses_excess_buffer(read_size: int) -> None:
    payload = os.urandom(517)
    encoded = _encode(payload)
    assert _encode(payload, mode=BlockLagMode()) == encoded

    plaintext, stream = _decode(encoded, read_size, mode=BlockLagMode())
    assert plaintext == payload
    assert stream.verified is True


def test_block_lagging_mode_releases_partial_block_on_close() -> None:
    payload = b"z" * 20
    stream = AeadDecodingStream(io.BytesIO(_encode(payload)), KEY, mode=BlockLagMode())
    assert stream.read() == b"z" * 16
    assert stream.close() == b"z" * 4


def test_excess_bytes_are_served_before_new_ciphertext() -> None:
    payload = bytes(range(64))
    source = io.BytesIO(_encode(payload))
    stream = AeadDecodingStream(source, KEY, mode=BlockLagMode())

    assert stream.read(20) == payload[:16]
    first = stream.read(3)
    position = source.tell()
    assert stream.read(3) == payload[19:22]
    assert source.tell() == position
    assert first == payload[16:19]


def test_short_reads_from_source() -> None:
    payload = os.urandom(300)
    source = TrickleReader(_encode(payload), max_chunk=5)
    stream = AeadDecodingStream(source, KEY)
    collected = bytearray()
    while chunk := stream.read(64):
        assert 0 < len(chunk) <= 64
        collected.extend(chunk)
    stream.close()
    assert bytes(collected) == payload
    assert source.closed


def test_no_spurious_empty_reads_while_tag_is_held_back() -> None:
    stream = AeadDecodingStream(TrickleReader(_encode(b"abc"), max_chunk=1), KEY)
    assert stream.read(1) == b"a"


def test_readinto_and_readall() -> None:
    payload = os.urandom(100)
    stream = AeadDecodingStream(io.BytesIO(_encode(payload)), KEY, ciphertext_length=len(payload))
    buf = bytearray(10)
    assert stream.readinto(buf) == 10
    assert bytes(buf) == payload[:10]
    assert stream.readall() == payload[10:]
    stream.close()


def test_known_ciphertext_length_stops_before_tag() -> None:
    payload = os.urandom(50)
    trailer = b"next record"
    source = io.BytesIO(_encode(payload) + trailer)
    stream = AeadDecodingStream(source, KEY, ciphertext_length=len(payload), close_source=False)
    assert stream.read() == payload
    stream.close()
    assert source.read() == trailer


def test_context_managers_round_trip() -> None:
    sink = io.BytesIO()
    with AeadEncodingStream(sink, KEY, close_sink=False) as enc:
        enc.write(b"hello ")
        enc.write(memoryview(b"world"))
    with AeadDecodingStream(io.BytesIO(sink.getvalue()), KEY) as dec:
        assert dec.read() == b"hello world"
    assert dec.verified is True


def test_iv_size_accessor() -> None:
    enc = AeadEncodingStream(io.BytesIO(), KEY)
    assert enc.iv_size == 16
    assert len(enc.nonce) == enc.iv_size
    dec = AeadDecodingStream(io.BytesIO(encode_bytes(KEY, b"x")), KEY)
    assert dec.iv_size == 16


def test_create_aes_factories() -> None:
    sink = io.BytesIO()
    enc = AeadEncodingStream.create_aes(sink, KEY, close_sink=False)
    enc.write(b"factory")
    enc.close()
    dec = AeadDecodingStream.create_aes(io.BytesIO(sink.getvalue()), KEY)
    assert dec.read() == b"factory"
    dec.close()


@settings(max_examples=60, deadline=None)
@given(
    payload=st.binary(max_size=600),
    write_size=st.integers(min_value=1, max_value=64),
    read_size=st.integers(min_value=1, max_value=80),
    source_chunk=st.integers(min_value=1, max_value=50),
    lagging=st.booleans(),
)
def test_round_trip_under_arbitrary_chunking(
    payload: bytes, write_size: int, read_size: int, source_chunk: int, lagging: bool
) -> None:
    encoded = _encode(payload, chunk=write_size, mode=BlockLagMode() if lagging else None)
    stream = AeadDecodingStream(
        TrickleReader(encoded, source_chunk),
        KEY,
        mode=BlockLagMode() if lagging else None,
    )
    collected = bytearray()
    while chunk := stream.read(read_size):
        collected.extend(chunk)
    collected.extend(stream.close())
    assert bytes(collected) == payload
