"""Encoding and decoding streams for the nonce | ciphertext | tag wire format."""
from __future__ import annotations

from aead_stream.stream.decoder import AeadDecodingStream
from aead_stream.stream.encoder import AeadEncodingStream
from aead_stream.stream.state import StreamState

__all__ = ["AeadDecodingStream", "AeadEncodingStream", "StreamState"]
