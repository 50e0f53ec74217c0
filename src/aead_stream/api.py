"""High-level helpers for encrypting bytes and files with the stream codec."""
from __future__ import annotations

import io
import logging
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Optional

from aead_stream.crypto.mode import MAC_SIZE, GCM_BLOCK_SIZE
from aead_stream.errors import FramingError
from aead_stream.stream.decoder import STREAM_CHUNK_SIZE, AeadDecodingStream
from aead_stream.stream.encoder import AeadEncodingStream
from aead_stream.stream.header import frame_overhead, read_nonce

logger = logging.getLogger(__name__)

DEFAULT_SUFFIX = ".aead"


@dataclass(frozen=True)
class StreamOverview:
    nonce: bytes
    ciphertext_length: int
    tag_length: int
    total_length: int


def _ensure_output(path: Path, overwrite: bool) -> None:
    if path.exists():
        if not overwrite:
            raise FileExistsError(f"Refusing to overwrite existing file: {path}")
        if path.is_dir():
            raise IsADirectoryError(f"Output path is a directory: {path}")
    path.parent.mkdir(parents=True, exist_ok=True)


def _copy_through(source: BinaryIO, target, chunk_size: int) -> int:
    total = 0
    while True:
        chunk = source.read(chunk_size)
        if not chunk:
            return total
        target.write(chunk)
        total += len(chunk)


def encode_bytes(key: bytes, plaintext: bytes, *, nonce: Optional[bytes] = None) -> bytes:
    """Encrypt ``plaintext`` into a complete ``nonce | ciphertext | tag`` blob."""

    sink = io.BytesIO()
    with AeadEncodingStream(sink, key, nonce=nonce, close_sink=False) as stream:
        stream.write(plaintext)
    return sink.getvalue()


def decode_bytes(key: bytes, data: bytes) -> bytes:
    """Decrypt and verify a blob produced by :func:`encode_bytes`.

    Nothing is returned unless the tag verifies.
    """

    ciphertext_length = len(data) - frame_overhead(GCM_BLOCK_SIZE, MAC_SIZE)
    if ciphertext_length < 0:
        raise FramingError("Stream too short to hold a nonce and an authentication tag")
    stream = AeadDecodingStream(io.BytesIO(data), key, ciphertext_length=ciphertext_length)
    try:
        plaintext = stream.readall()
    except BaseException:
        stream.abort()
        raise
    return plaintext + stream.close()


def encrypt_file(
    in_path: Path,
    out_path: Path,
    key: bytes,
    *,
    nonce: Optional[bytes] = None,
    overwrite: bool = False,
    chunk_size: int = STREAM_CHUNK_SIZE,
) -> int:
    """Encrypt ``in_path`` into ``out_path`` and return the number of bytes written."""

    if not in_path.exists():
        raise FileNotFoundError(in_path)
    if not in_path.is_file():
        raise IsADirectoryError(f"Input path is not a regular file: {in_path}")
    _ensure_output(out_path, overwrite)

    temp_file = tempfile.NamedTemporaryFile(dir=out_path.parent, prefix=".aead-", delete=False)
    temp_path = Path(temp_file.name)
    try:
        with in_path.open("rb") as src:
            with AeadEncodingStream(temp_file, key, nonce=nonce) as stream:
                _copy_through(src, stream, chunk_size)
        temp_path.replace(out_path)
    finally:
        temp_file.close()
        temp_path.unlink(missing_ok=True)

    size = out_path.stat().st_size
    logger.debug("Encrypted %s -> %s (%d bytes)", in_path, out_path, size)
    return size


def decrypt_file(
    in_path: Path,
    out_path: Path,
    key: bytes,
    *,
    overwrite: bool = False,
    chunk_size: int = STREAM_CHUNK_SIZE,
) -> int:
    """Decrypt ``in_path`` into ``out_path`` and return the plaintext length.

    Plaintext is streamed to a temporary file next to ``out_path`` which only
    replaces the destination once the tag has been verified. On any failure
    the temporary file is deleted and ``out_path`` is left untouched.
    """

    overview = inspect_stream(in_path)
    _ensure_output(out_path, overwrite)

    temp_file = tempfile.NamedTemporaryFile(dir=out_path.parent, prefix=".aead-", delete=False)
    temp_path = Path(temp_file.name)
    try:
        with temp_file, in_path.open("rb") as source:
            stream = AeadDecodingStream(
                source,
                key,
                ciphertext_length=overview.ciphertext_length,
                close_source=False,
            )
            try:
                written = _copy_through(stream, temp_file, chunk_size)
            except BaseException:
                stream.abort()
                raise
            trailing = stream.close()
            if trailing:
                temp_file.write(trailing)
                written += len(trailing)
        temp_path.replace(out_path)
    finally:
        temp_path.unlink(missing_ok=True)

    logger.debug("Decrypted %s -> %s (%d bytes)", in_path, out_path, written)
    return written


def inspect_stream(path: Path, *, nonce_size: int = GCM_BLOCK_SIZE, tag_size: int = MAC_SIZE) -> StreamOverview:
    """Describe an encrypted file from its size and header, without a key."""

    if not path.exists():
        raise FileNotFoundError(path)
    total = path.stat().st_size
    ciphertext_length = total - frame_overhead(nonce_size, tag_size)
    with path.open("rb") as f:
        nonce = read_nonce(f, nonce_size)
    if ciphertext_length < 0:
        raise FramingError("Stream too short to hold a nonce and an authentication tag")
    return StreamOverview(
        nonce=nonce,
        ciphertext_length=ciphertext_length,
        tag_length=tag_size,
        total_length=total,
    )


__all__ = [
    "DEFAULT_SUFFIX",
    "StreamOverview",
    "decode_bytes",
    "decrypt_file",
    "encode_bytes",
    "encrypt_file",
    "inspect_stream",
]
