"""
Frame Data Model
=================

Internal frame representation for the ingestion pipeline.

This module defines the typed Frame class that is passed from the
multipart adapter through dispatch into the archive writer, and the
FramePart that the adapter produces before the timestamp is validated.

Design Rules:
    - Frame is the ONLY format handed to the archive writer
    - Does NOT decode or manipulate image data
    - Timestamps are integer milliseconds supplied by the producer
"""

import re
from dataclasses import dataclass
from typing import Optional

from mjpeg_service.errors import FrameParseError


FRAME_SUFFIX = ".jpg"

_TIMESTAMP_RE = re.compile(r"\d+", re.ASCII)


def parse_timestamp_ms(raw: Optional[str]) -> int:
    """
    Parse a decimal millisecond timestamp.

    Args:
        raw: Header value or entry stem, e.g. "1707321234567"

    Returns:
        Timestamp in milliseconds

    Raises:
        FrameParseError: If the value is missing or not a plain decimal integer
    """
    if raw is None:
        raise FrameParseError("missing timestamp")
    value = raw.strip()
    if not _TIMESTAMP_RE.fullmatch(value):
        raise FrameParseError(f"malformed timestamp: {raw!r}")
    return int(value)


def entry_name_for(timestamp_ms: int) -> str:
    """Archive entry name for a frame timestamp."""
    return f"{timestamp_ms}{FRAME_SUFFIX}"


def parse_entry_name(name: str) -> int:
    """
    Recover the frame timestamp from an archive entry name.

    Raises:
        FrameParseError: If the name does not follow "<ms>.jpg"
    """
    if not name.endswith(FRAME_SUFFIX):
        raise FrameParseError(f"unexpected entry name: {name!r}")
    return parse_timestamp_ms(name[: -len(FRAME_SUFFIX)])


@dataclass(frozen=True, slots=True)
class FramePart:
    """
    One part of the multipart upload, before validation.

    Attributes:
        timestamp: Raw X-Client-Timestamp header value (None if absent)
        data: Raw JPEG bytes of the part body
    """

    timestamp: Optional[str]
    data: bytes

    def __repr__(self) -> str:
        return f"FramePart(timestamp={self.timestamp!r}, size={len(self.data)})"


@dataclass(frozen=True, slots=True)
class Frame:
    """
    Validated frame from the upload stream.

    Immutable (frozen) so the same instance can be handed to the
    archive writer and the transcoder without shared mutable state.

    Attributes:
        timestamp_ms: Capture time in milliseconds, as sent by the producer
        data: Raw JPEG payload (NOT decoded)
    """

    timestamp_ms: int
    data: bytes

    @classmethod
    def from_part(cls, part: FramePart) -> "Frame":
        """
        Validate a multipart part into a Frame.

        Raises:
            FrameParseError: If the timestamp header is missing or malformed
        """
        return cls(timestamp_ms=parse_timestamp_ms(part.timestamp), data=part.data)

    @property
    def entry_name(self) -> str:
        """Name of this frame inside an archive segment."""
        return entry_name_for(self.timestamp_ms)

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the full image."""
        return f"Frame(timestamp_ms={self.timestamp_ms}, size={len(self.data)})"
