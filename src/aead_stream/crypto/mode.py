"""Authenticated block-cipher mode adapters.

A mode adapter turns a raw block-cipher primitive into an incremental AEAD
transform with a small, explicit contract:

* ``init`` is called exactly once, before any other operation;
* ``update_output_size(n)`` declares how many bytes the next
  ``process_bytes`` call with ``n`` input bytes returns. Modes that buffer
  partial blocks may return less or more than ``n``;
* ``process_bytes`` feeds data and returns whatever output is ready;
* ``finalize`` ends the transform. On encryption it returns any buffered
  output followed by the tag. On decryption it verifies the tag, raising
  :class:`cryptography.exceptions.InvalidTag` on mismatch, and returns any
  plaintext the mode withheld until the end.

The streams in :mod:`aead_stream.stream` only rely on this contract, so any
object implementing :class:`AeadBlockMode` can be plugged in.
"""

from __future__ import annotations

from typing import Callable, Optional, Protocol

from cryptography.hazmat.primitives.ciphers import BlockCipherAlgorithm, Cipher, algorithms, modes

from aead_stream.errors import StreamStateError, UnsupportedFeatureError

MAC_SIZE = 16
GCM_BLOCK_SIZE = 16
MIN_TAG_BITS = 96
MAX_TAG_BITS = MAC_SIZE * 8


class AeadBlockMode(Protocol):
    @property
    def block_size(self) -> int: ...

    @property
    def tag_size(self) -> int: ...

    def init(self, for_encryption: bool, key: bytes, nonce: bytes, tag_length_bits: int) -> None: ...

    def update_output_size(self, input_length: int) -> int: ...

    def process_bytes(self, data: bytes) -> bytes: ...

    def finalize(self, tag: Optional[bytes] = None) -> bytes: ...


class GcmBlockMode:
    """GCM over a 128-bit block cipher from ``cryptography``.

    GCM is a counter mode, so every input byte yields exactly one output byte
    and ``finalize`` never releases withheld data.
    """

    def __init__(self, algorithm: Callable[[bytes], BlockCipherAlgorithm] = algorithms.AES) -> None:
        block_bits = getattr(algorithm, "block_size", None)
        if block_bits is None or block_bits // 8 != GCM_BLOCK_SIZE:
            raise UnsupportedFeatureError("GCM requires a block cipher with a 128-bit block")
        self._algorithm = algorithm
        self._block_size = block_bits // 8
        self._tag_size = 0
        self._for_encryption = False
        self._ctx = None
        self._finished = False

    @property
    def block_size(self) -> int:
        return self._block_size

    @property
    def tag_size(self) -> int:
        return self._tag_size

    def init(self, for_encryption: bool, key: bytes, nonce: bytes, tag_length_bits: int) -> None:
        if self._ctx is not None or self._finished:
            raise StreamStateError("Mode already initialised")
        if tag_length_bits % 8 or not MIN_TAG_BITS <= tag_length_bits <= MAX_TAG_BITS:
            raise UnsupportedFeatureError(f"Unsupported tag length: {tag_length_bits} bits")
        if len(nonce) != self._block_size:
            raise ValueError(f"Nonce must be {self._block_size} bytes long, got {len(nonce)}")

        self._tag_size = tag_length_bits // 8
        self._for_encryption = for_encryption
        cipher = Cipher(self._algorithm(key), modes.GCM(nonce, min_tag_length=self._tag_size))
        self._ctx = cipher.encryptor() if for_encryption else cipher.decryptor()

    def _require_ctx(self):
        if self._ctx is None:
            if self._finished:
                raise StreamStateError("Mode already finalized")
            raise StreamStateError("Mode not initialised")
        return self._ctx

    def update_output_size(self, input_length: int) -> int:
        return input_length

    def process_bytes(self, data: bytes) -> bytes:
        return self._require_ctx().update(data)

    def finalize(self, tag: Optional[bytes] = None) -> bytes:
        ctx = self._require_ctx()
        self._ctx = None
        self._finished = True
        if self._for_encryption:
            remainder = ctx.finalize()
            return remainder + ctx.tag[: self._tag_size]
        if tag is None or len(tag) != self._tag_size:
            raise ValueError(f"Tag must be {self._tag_size} bytes long")
        return ctx.finalize_with_tag(tag)


def create_aes_mode() -> GcmBlockMode:
    """Return a fresh AES-GCM adapter."""

    return GcmBlockMode(algorithms.AES)


__all__ = [
    "AeadBlockMode",
    "GCM_BLOCK_SIZE",
    "GcmBlockMode",
    "MAC_SIZE",
    "MAX_TAG_BITS",
    "MIN_TAG_BITS",
    "create_aes_mode",
]
