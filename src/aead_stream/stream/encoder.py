"""Encrypting writer producing ``nonce | ciphertext | tag`` streams."""
from __future__ import annotations

import logging
import os
from types import TracebackType
from typing import BinaryIO, Optional, Type

from aead_stream.crypto.mode import MAC_SIZE, AeadBlockMode, GcmBlockMode, create_aes_mode
from aead_stream.errors import StreamStateError
from aead_stream.stream.header import write_nonce
from aead_stream.stream.state import StreamState

logger = logging.getLogger(__name__)


class AeadEncodingStream:
    """Encrypt everything written to it into ``sink``.

    The nonce is written immediately. It must never be reused with the same
    key; when ``nonce`` is omitted a random one of ``iv_size`` bytes is
    generated. Ciphertext is written as soon as the mode releases it and the
    tag is appended by :meth:`close`. A stream that is aborted, or never
    closed, has no tag and will not decode.
    """

    def __init__(
        self,
        sink: BinaryIO,
        key: bytes,
        *,
        nonce: Optional[bytes] = None,
        mode: Optional[AeadBlockMode] = None,
        tag_size: int = MAC_SIZE,
        close_sink: bool = True,
    ) -> None:
        self._mode = mode if mode is not None else GcmBlockMode()
        self._sink = sink
        self._close_sink = close_sink
        self._nonce = nonce if nonce is not None else os.urandom(self._mode.block_size)
        self._mode.init(True, key, self._nonce, tag_size * 8)
        write_nonce(sink, self._nonce, self._mode.block_size)
        self._plaintext_length = 0
        self._state = StreamState.STREAMING
        logger.debug("Opened encoding stream (nonce %d bytes)", len(self._nonce))

    @classmethod
    def create_aes(cls, sink: BinaryIO, key: bytes, **kwargs) -> AeadEncodingStream:
        """Open an AES-GCM encoding stream over ``sink``."""
        return cls(sink, key, mode=create_aes_mode(), **kwargs)

    @property
    def iv_size(self) -> int:
        """Length of the nonce header in bytes (the cipher block size)."""
        return self._mode.block_size

    @property
    def tag_size(self) -> int:
        return self._mode.tag_size

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
    def plaintext_length(self) -> int:
        return self._plaintext_length

    def readable(self) -> bool:
        return False

    def writable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return False

    def write(self, data) -> int:
        if self._state.is_closed:
            raise StreamStateError("I/O operation on closed encoding stream")
        data = bytes(data)
        if not data:
            return 0
        ciphertext = self._mode.process_bytes(data)
        if ciphertext:
            self._sink.write(ciphertext)
        self._plaintext_length += len(data)
        return len(data)

    def flush(self) -> None:
        if self._state.is_closed:
            raise StreamStateError("I/O operation on closed encoding stream")
        flush = getattr(self._sink, "flush", None)
        if flush is not None:
            flush()

    def close(self) -> None:
        """Write the buffered remainder and the tag, then close the sink."""
        if self._state.is_closed:
            return
        self._state = StreamState.CLOSED
        try:
            self._sink.write(self._mode.finalize())
            flush = getattr(self._sink, "flush", None)
            if flush is not None:
                flush()
        finally:
            if self._close_sink:
                self._sink.close()
        logger.debug("Encoding stream closed after %d plaintext bytes", self._plaintext_length)

    def abort(self) -> None:
        """Close the sink without writing a tag."""
        if self._state.is_closed:
            return
        self._state = StreamState.ABORTED
        if self._close_sink:
            self._sink.close()
        logger.debug("Encoding stream aborted; output has no tag")

    def __enter__(self) -> AeadEncodingStream:
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


__all__ = ["AeadEncodingStream"]
