"""Lifecycle states shared by the encoding and decoding streams."""
from __future__ import annotations

from enum import Enum


class StreamState(Enum):
    STREAMING = "streaming"
    # Decoding stream closed and the tag matched.
    VERIFIED = "verified"
    # Decoding stream closed and the tag was missing or did not match.
    FAILED = "failed"
    # Encoding stream closed and the tag was written.
    CLOSED = "closed"
    # Closed without a tag check (decode) or without writing a tag (encode).
    ABORTED = "aborted"

    @property
    def is_closed(self) -> bool:
        return self is not StreamState.STREAMING
