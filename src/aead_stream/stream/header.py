"""Nonce frame header handling.

Every stream starts with the nonce in the clear. Its length is the block size
of the cipher primitive, so it is always passed in by the caller rather than
fixed here.
"""
from __future__ import annotations

from typing import BinaryIO

from aead_stream.errors import FramingError


def read_exact(source: BinaryIO, size: int, what: str) -> bytes:
    """Read exactly ``size`` bytes, tolerating short reads from ``source``.

    Raises :class:`FramingError` if the source is exhausted first.
    """
    if size == 0:
        return b""
    chunks = bytearray()
    while len(chunks) < size:
        chunk = source.read(size - len(chunks))
        if not chunk:
            raise FramingError(
                f"Stream truncated while reading {what}: expected {size} bytes, got {len(chunks)}"
            )
        chunks.extend(chunk)
    return bytes(chunks)


def read_nonce(source: BinaryIO, nonce_size: int) -> bytes:
    return read_exact(source, nonce_size, "nonce header")


def write_nonce(sink: BinaryIO, nonce: bytes, nonce_size: int) -> None:
    if len(nonce) != nonce_size:
        raise ValueError(f"Nonce must be {nonce_size} bytes long, got {len(nonce)}")
    sink.write(nonce)


def frame_overhead(nonce_size: int, tag_size: int) -> int:
    """Bytes a stream adds on top of its plaintext length."""
    return nonce_size + tag_size
