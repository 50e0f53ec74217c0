import io
import sys
from pathlib import Path
from typing import Optional

import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
SRC_DIR = PROJECT_ROOT / "src"
if SRC_DIR.exists():
    sys.path.insert(0, str(SRC_DIR))

from aead_stream.crypto.mode import GcmBlockMode  # noqa: E402

KEY = bytes(range(32))
NONCE = bytes(range(100, 116))


class BlockLagMode:
    """AES-GCM that only releases whole blocks, the way OCB-style modes do.

    The wire format is identical to :class:`GcmBlockMode`, but output lags
    behind input and ``finalize`` releases the last partial block.
    """

    def __init__(self) -> None:
        self._inner = GcmBlockMode()
        self._pending = bytearray()
        self._for_encryption = False

    @property
    def block_size(self) -> int:
        return self._inner.block_size

    @property
    def tag_size(self) -> int:
        return self._inner.tag_size

    def init(self, for_encryption: bool, key: bytes, nonce: bytes, tag_length_bits: int) -> None:
        self._for_encryption = for_encryption
        self._inner.init(for_encryption, key, nonce, tag_length_bits)

    def update_output_size(self, input_length: int) -> int:
        total = len(self._pending) + input_length
        return total - total % self.block_size

    def process_bytes(self, data: bytes) -> bytes:
        self._pending.extend(data)
        ready = len(self._pending) - len(self._pending) % self.block_size
        if not ready:
            return b""
        chunk = bytes(self._pending[:ready])
        del self._pending[:ready]
        return self._inner.process_bytes(chunk)

    def finalize(self, tag: Optional[bytes] = None) -> bytes:
        rest = bytes(self._pending)
        self._pending.clear()
        out = self._inner.process_bytes(rest) if rest else b""
        if self._for_encryption:
            return out + self._inner.finalize()
        trailing = self._inner.finalize(tag)
        return out + trailing


class TrickleReader(io.RawIOBase):
    """Binary source that never returns more than ``max_chunk`` bytes per read."""

    def __init__(self, data: bytes, max_chunk: int) -> None:
        self._inner = io.BytesIO(data)
        self._max_chunk = max_chunk
        self.read_sizes: list[int] = []

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        self.read_sizes.append(len(buffer))
        chunk = self._inner.read(min(len(buffer), self._max_chunk))
        buffer[: len(chunk)] = chunk
        return len(chunk)


@pytest.fixture
def key() -> bytes:
    return KEY


@pytest.fixture
def nonce() -> bytes:
    return NONCE


@pytest.fixture
def lag_mode() -> BlockLagMode:
    return BlockLagMode()
