"""Streaming authenticated encryption over byte streams."""

from importlib.metadata import PackageNotFoundError, version

from aead_stream.crypto.mode import MAC_SIZE, AeadBlockMode, GcmBlockMode
from aead_stream.errors import (
    AeadStreamError,
    AuthenticationError,
    FramingError,
    StreamStateError,
    UnsupportedFeatureError,
)
from aead_stream.stream import AeadDecodingStream, AeadEncodingStream, StreamState

__all__ = [
    "AeadBlockMode",
    "AeadDecodingStream",
    "AeadEncodingStream",
    "AeadStreamError",
    "AuthenticationError",
    "FramingError",
    "GcmBlockMode",
    "MAC_SIZE",
    "StreamState",
    "StreamStateError",
    "UnsupportedFeatureError",
    "__version__",
]

try:
    __version__ = version("aead-stream")
except PackageNotFoundError:  # pragma: no cover - happens only from source checkout
    __version__ = "0.0.0-dev"
