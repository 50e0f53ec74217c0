"""Custom exceptions for aead-stream."""


class AeadStreamError(Exception):
    """Base exception for aead-stream."""


class FramingError(AeadStreamError):
    """Stream ended before the nonce header or authentication tag was complete."""


class AuthenticationError(AeadStreamError):
    """Authentication tag did not match the stream contents."""


class StreamStateError(AeadStreamError, ValueError):
    """Operation is not valid in the current stream or mode state."""


class UnsupportedFeatureError(AeadStreamError):
    """Cipher, mode or parameter combination is not supported."""
