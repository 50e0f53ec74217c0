"""Keyfile support: turn an arbitrary file into stream key material."""
from __future__ import annotations

import hashlib
import logging
import os
from pathlib import Path

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

logger = logging.getLogger(__name__)

KEYFILE_KEY_LEN = 32
KEYFILE_READ_CHUNK = 65536
# Domain-separation label for keyfile HKDF derivation.
_KEYFILE_DERIVE_INFO = b"aead-stream-keyfile-v1"


def derive_key_from_keyfile(keyfile_path: Path, length: int = KEYFILE_KEY_LEN) -> bytes:
    """Read a keyfile and derive ``length`` bytes of AES key material.

    The file contents are hashed with BLAKE2b and the digest is expanded with
    HKDF-SHA256 under a fixed info label, so any file (a random blob written
    by :func:`generate_keyfile`, or something else the user keeps secret)
    yields a uniformly distributed key of a valid AES size.
    """
    if length not in (16, 24, 32):
        raise ValueError(f"Key length must be 16, 24 or 32 bytes, got {length}")
    if not keyfile_path.exists():
        raise FileNotFoundError(f"Keyfile not found: {keyfile_path}")
    if not keyfile_path.is_file():
        raise ValueError(f"Keyfile path is not a regular file: {keyfile_path}")

    hasher = hashlib.blake2b(digest_size=32)
    with keyfile_path.open("rb") as f:
        while True:
            chunk = f.read(KEYFILE_READ_CHUNK)
            if not chunk:
                break
            hasher.update(chunk)

    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=length,
        salt=None,
        info=_KEYFILE_DERIVE_INFO,
    )
    return hkdf.derive(hasher.digest())


def generate_keyfile(keyfile_path: Path, *, overwrite: bool = False, size: int = KEYFILE_KEY_LEN) -> Path:
    """Write ``size`` random bytes to ``keyfile_path`` with owner-only permissions."""
    if keyfile_path.exists() and not overwrite:
        raise FileExistsError(f"Refusing to overwrite existing file: {keyfile_path}")
    keyfile_path.parent.mkdir(parents=True, exist_ok=True)

    flags = os.O_WRONLY | os.O_CREAT | os.O_TRUNC
    fd = os.open(keyfile_path, flags, 0o600)
    with os.fdopen(fd, "wb") as f:
        f.write(os.urandom(size))
    logger.debug("Wrote %d-byte keyfile to %s", size, keyfile_path)
    return keyfile_path
