"""Excess output buffer used by the streams."""
from __future__ import annotations

from aead_stream.crypto.secure_memory import SecureBuffer


class ExcessBuffer:
    """Holds one run of produced-but-undelivered bytes.

    At most one run is outstanding at a time: :meth:`fill` is only legal when
    the buffer is empty, and :meth:`take` hands bytes out strictly in order.
    Once the run is fully consumed both cursors return to zero. The backing
    memory is a :class:`SecureBuffer` so leftover plaintext is wiped.
    """

    def __init__(self, capacity: int) -> None:
        self._storage = SecureBuffer(capacity)
        self._start = 0
        self._end = 0

    @property
    def capacity(self) -> int:
        return len(self._storage)

    def __len__(self) -> int:
        return self._end - self._start

    def __bool__(self) -> bool:
        return self._end != self._start

    def fill(self, data: bytes) -> None:
        if self:
            raise ValueError("Excess buffer still holds undelivered bytes")
        if len(data) > self.capacity:
            raise ValueError(f"Excess of {len(data)} bytes exceeds buffer capacity {self.capacity}")
        self._storage.buffer[: len(data)] = data
        self._start = 0
        self._end = len(data)

    def take(self, length: int) -> bytes:
        """Remove and return up to ``length`` bytes from the front."""
        count = min(length, len(self))
        start = self._start
        chunk = bytes(self._storage.buffer[start : start + count])
        self._start += count
        if self._start == self._end:
            self.clear()
        return chunk

    def clear(self) -> None:
        self._storage.wipe()
        self._start = 0
        self._end = 0

    def release(self) -> None:
        self._start = 0
        self._end = 0
        self._storage.release()
