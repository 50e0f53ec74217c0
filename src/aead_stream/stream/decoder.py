"""Decrypting, authenticating reader for ``nonce | ciphertext | tag`` streams."""
from __future__ import annotations

import logging
from types import TracebackType
from typing import BinaryIO, Optional, Type

from cryptography.exceptions import InvalidTag

from aead_stream.crypto.mode import MAC_SIZE, AeadBlockMode, GcmBlockMode, create_aes_mode
from aead_stream.errors import AeadStreamError, AuthenticationError, FramingError, StreamStateError
from aead_stream.stream.buffer import ExcessBuffer
from aead_stream.stream.header import read_exact, read_nonce
from aead_stream.stream.state import StreamState

logger = logging.getLogger(__name__)

STREAM_CHUNK_SIZE = 1024 * 64


class AeadDecodingStream:
    """Read plaintext from an encrypted stream, verifying it on :meth:`close`.

    IMPORTANT: the tag is only checked when the stream is closed. Every byte
    returned by :meth:`read` before a successful :meth:`close` is
    unauthenticated and must be treated as provisional. ``close`` raises
    :class:`AuthenticationError` if the data was tampered with, so never
    suppress exceptions from it and never treat a failed close as a normal
    end of stream. Use :meth:`abort` to close deliberately without
    verification.

    The nonce header is consumed by the constructor. If the mode then rejects
    the key or nonce, the error propagates, no stream object exists and the
    source is left positioned just after the header.

    If ``ciphertext_length`` is given, reads stop after that many ciphertext
    bytes and ``close`` reads the tag directly after them; a stream cut short
    anywhere before the end of the tag raises :class:`FramingError`. Otherwise
    the last ``tag_size`` bytes of the source are withheld from the cipher and
    used as the tag once the source is exhausted. In that mode a truncated
    stream can only be told apart from a complete one when fewer than
    ``tag_size`` bytes follow the header (:class:`FramingError`); any longer
    truncated stream fails with :class:`AuthenticationError` instead.

    ``close`` returns plaintext that the mode only releases after a successful
    verification. It is always empty for GCM; callers plugging in a mode that
    buffers partial blocks must append it to what they have read. If the
    caller stopped reading early, ``close`` discards the unread plaintext and
    this trailing part with it, returning ``b""``. The context manager
    discards this value.
    """

    def __init__(
        self,
        source: BinaryIO,
        key: bytes,
        *,
        mode: Optional[AeadBlockMode] = None,
        ciphertext_length: Optional[int] = None,
        tag_size: int = MAC_SIZE,
        close_source: bool = True,
    ) -> None:
        if ciphertext_length is not None and ciphertext_length < 0:
            raise ValueError("ciphertext_length must be non-negative")

        self._mode = mode if mode is not None else GcmBlockMode()
        self._source = source
        self._close_source = close_source
        self._nonce = read_nonce(source, self._mode.block_size)
        self._mode.init(False, key, self._nonce, tag_size * 8)

        self._tag_size = self._mode.tag_size
        self._remaining = ciphertext_length
        self._tail = bytearray()
        self._eof = False
        self._excess = ExcessBuffer(self._mode.block_size)
        self._state = StreamState.STREAMING
        self._failure: Optional[Exception] = None
        logger.debug(
            "Opened decoding stream (nonce %d bytes, tag %d bytes, ciphertext length %s)",
            len(self._nonce),
            self._tag_size,
            "unknown" if ciphertext_length is None else ciphertext_length,
        )

    @classmethod
    def create_aes(cls, source: BinaryIO, key: bytes, **kwargs) -> AeadDecodingStream:
        """Open an AES-GCM decoding stream over ``source``."""
        return cls(source, key, mode=create_aes_mode(), **kwargs)

    @property
    def iv_size(self) -> int:
        """Length of the nonce header in bytes (the cipher block size)."""
        return self._mode.block_size

    @property
    def tag_size(self) -> int:
        return self._tag_size

    @property
    def nonce(self) -> bytes:
        return self._nonce

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._state.is_closed

    @property
    def verified(self) -> Optional[bool]:
        """True after a successful close, False after a failed one, else None."""
        if self._state is StreamState.VERIFIED:
            return True
        if self._state is StreamState.FAILED:
            return False
        return None

    def readable(self) -> bool:
        return True

    def writable(self) -> bool:
        return False

    def seekable(self) -> bool:
        return False

    def _check_open(self) -> None:
        if self._state.is_closed:
            raise StreamStateError("I/O operation on closed decoding stream")

    def _pull(self, length: int) -> Optional[bytes]:
        """Fetch up to ``length`` ciphertext bytes for the cipher.

        Returns None once the ciphertext is exhausted. An empty result means
        the bytes read so far are still being held back as a tag candidate.
        """
        if self._eof:
            return None
        if self._remaining is not None:
            if self._remaining == 0:
                self._eof = True
                return None
            data = self._source.read(min(length, self._remaining))
            if not data:
                self._eof = True
                return None
            self._remaining -= len(data)
            return data

        data = self._source.read(length)
        if not data:
            self._eof = True
            return None
        self._tail.extend(data)
        overflow = len(self._tail) - self._tag_size
        if overflow <= 0:
            return b""
        ciphertext = bytes(self._tail[:overflow])
        del self._tail[:overflow]
        return ciphertext

    def _read_chunk(self, length: int) -> bytes:
        self._check_open()
        if length == 0:
            return b""
        if self._excess:
            return self._excess.take(length)

        while True:
            ciphertext = self._pull(length)
            if ciphertext is None:
                return b""
            if not ciphertext:
                continue
            expected = self._mode.update_output_size(len(ciphertext))
            output = self._mode.process_bytes(ciphertext)
            if len(output) != expected:
                raise AeadStreamError(
                    f"Cipher mode produced {len(output)} bytes but declared {expected}"
                )
            if expected > length:
                self._excess.fill(output[length:])
                return output[:length]
            if output:
                return output

    def read(self, size: Optional[int] = -1) -> bytes:
        """Return up to ``size`` bytes of plaintext, or everything left if negative.

        An empty result means the ciphertext is exhausted. A short result is
        legal and does not imply the end of the stream.
        """
        if size is None or size < 0:
            return self.readall()
        return self._read_chunk(size)

    def readall(self) -> bytes:
        self._check_open()
        chunks = bytearray()
        while True:
            chunk = self._read_chunk(STREAM_CHUNK_SIZE)
            if not chunk:
                return bytes(chunks)
            chunks.extend(chunk)

    def readinto(self, buffer) -> int:
        view = memoryview(buffer).cast("B")
        chunk = self._read_chunk(len(view))
        view[: len(chunk)] = chunk
        return len(chunk)

    def _drain(self) -> int:
        """Push ciphertext the caller never read through the cipher."""
        dropped = len(self._excess)
        while True:
            ciphertext = self._pull(STREAM_CHUNK_SIZE)
            if ciphertext is None:
                return dropped
            if ciphertext:
                dropped += len(self._mode.process_bytes(ciphertext))

    def _collect_tag(self) -> bytes:
        if self._remaining is not None:
            if self._remaining:
                raise FramingError("Stream truncated before authentication tag")
            return read_exact(self._source, self._tag_size, "authentication tag")
        if len(self._tail) < self._tag_size:
            raise FramingError(
                f"Stream truncated while reading authentication tag: expected {self._tag_size} bytes, "
                f"got {len(self._tail)}"
            )
        return bytes(self._tail)

    def _release(self) -> None:
        self._excess.release()
        self._tail.clear()

    def close(self) -> bytes:
        """Verify the authentication tag and close the source.

        Raises :class:`FramingError` if the tag is missing or incomplete and
        :class:`AuthenticationError` if it does not match. The source is closed
        in every case, after the check. Calling ``close`` again after a failure
        raises the same error again.

        Returns the plaintext released by the mode at the end, or ``b""`` when
        unread plaintext had to be dropped.
        """
        if self._state is StreamState.FAILED and self._failure is not None:
            raise self._failure
        if self._state.is_closed:
            return b""

        try:
            dropped = self._drain()
            if dropped:
                logger.debug("Discarded %d unread plaintext bytes before verification", dropped)
            tag = self._collect_tag()
            try:
                trailing = self._mode.finalize(tag)
            except InvalidTag as exc:
                raise AuthenticationError(
                    "Stream failed authentication; all data read from it must be discarded"
                ) from exc
        except Exception as exc:
            self._state = StreamState.FAILED
            self._failure = exc
            logger.warning("Decoding stream failed verification: %s", exc)
            raise
        finally:
            self._release()
            if self._close_source:
                self._source.close()

        self._state = StreamState.VERIFIED
        logger.debug("Decoding stream verified")
        if dropped and trailing:
            # the caller's plaintext already has a gap; a tail would not line up with it
            logger.debug("Dropped %d trailing plaintext bytes after unread data", len(trailing))
            return b""
        return trailing

    def abort(self) -> None:
        """Close without verifying the tag. Data already read stays unauthenticated."""
        if self._state.is_closed:
            return
        self._state = StreamState.ABORTED
        self._release()
        if self._close_source:
            self._source.close()
        logger.debug("Decoding stream aborted without verification")

    def __enter__(self) -> AeadDecodingStream:
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> bool:
        if exc_type is None:
            self.close()
        else:
            self.abort()
        return False

    def __del__(self) -> None:
        excess = getattr(self, "_excess", None)
        if excess is not None:
            excess.release()


__all__ = ["AeadDecodingStream", "STREAM_CHUNK_SIZE"]
