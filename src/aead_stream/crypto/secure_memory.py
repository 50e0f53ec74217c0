"""Zeroable buffers for plaintext and key-derived material.

Stream buffers may hold decrypted data between calls. They are allocated
through :class:`SecureBuffer`, which tries to ``mlock`` the backing memory so
it is not swapped out, and wipes it when released. Locking is best effort:
where libc or ``mlock`` is unavailable the buffer still zeroes on release.
"""
from __future__ import annotations

import ctypes
import ctypes.util
import logging
import platform

logger = logging.getLogger(__name__)

_libc: ctypes.CDLL | None = None

if platform.system() != "Windows":
    try:
        _libc_name = ctypes.util.find_library("c")
        if _libc_name:
            _libc = ctypes.CDLL(_libc_name, use_errno=True)
    except OSError:
        _libc = None


def mlock_available() -> bool:
    """Return True if libc ``mlock`` could be loaded on this platform."""
    return _libc is not None


def secure_zeroize(data: bytearray | memoryview | None) -> None:
    """Overwrite a mutable buffer with zeros in place."""
    if data is None:
        return
    view = memoryview(data).cast("B")
    view[:] = bytes(len(view))


class SecureBuffer:
    """Fixed-size bytearray that is locked in memory when possible.

    Usage::

        with SecureBuffer(16) as buf:
            buf[:4] = chunk
        # buf is zeroed and unlocked here
    """

    def __init__(self, size: int) -> None:
        if size < 0:
            raise ValueError("SecureBuffer size must be non-negative")
        self._buffer = bytearray(size)
        self._locked = False
        self._released = False
        if size and _libc is not None:
            self._locked = self._call_libc("mlock")

    def _call_libc(self, name: str) -> bool:
        try:
            region = (ctypes.c_char * len(self._buffer)).from_buffer(self._buffer)
            result = getattr(_libc, name)(ctypes.addressof(region), len(self._buffer))
            del region
        except (AttributeError, OSError, ValueError):
            logger.debug("%s unavailable, continuing without memory lock", name)
            return False
        if result != 0:
            logger.debug("%s failed (errno=%d), continuing without memory lock", name, ctypes.get_errno())
            return False
        return True

    def __enter__(self) -> bytearray:
        return self._buffer

    def __exit__(self, *args: object) -> None:
        self.release()

    def __len__(self) -> int:
        return len(self._buffer)

    @property
    def buffer(self) -> bytearray:
        return self._buffer

    @property
    def locked(self) -> bool:
        return self._locked

    @property
    def released(self) -> bool:
        return self._released

    def wipe(self) -> None:
        """Zero the contents while keeping the buffer usable."""
        secure_zeroize(self._buffer)

    def release(self) -> None:
        """Zero the buffer and drop the memory lock. Safe to call twice."""
        if self._released:
            return
        self.wipe()
        if self._locked:
            self._call_libc("munlock")
            self._locked = False
        self._released = True
