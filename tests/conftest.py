"""
Test Configuration
==================

Pytest fixtures and test configuration for mjpeg_service.
"""

import asyncio
import tarfile
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

import pytest

from mjpeg_service.errors import TranscoderError


def jpeg_payload(timestamp_ms: int) -> bytes:
    """Fake JPEG with SOI/EOI markers and a body unique to the timestamp."""
    return b"\xff\xd8" + f"frame-{timestamp_ms}".encode() + b"\xff\xd9"


def read_entries(path: Path) -> List[Tuple[str, bytes]]:
    """All regular entries of a tar segment, in storage order."""
    entries = []
    with tarfile.open(path, mode="r:") as archive:
        for member in archive:
            if member.isreg():
                entries.append((member.name, archive.extractfile(member).read()))
    return entries


def build_multipart(
    parts: Iterable[Tuple[Optional[object], bytes]],
    boundary: str = "frameboundary",
) -> bytes:
    """Multipart body with one image/jpeg part per (timestamp, data)."""
    body = bytearray()
    for timestamp, data in parts:
        body += f"--{boundary}\r\n".encode()
        body += b"Content-Type: image/jpeg\r\n"
        if timestamp is not None:
            body += f"X-Client-Timestamp: {timestamp}\r\n".encode()
        body += b"\r\n" + data + b"\r\n"
    body += f"--{boundary}--\r\n".encode()
    return bytes(body)


async def aiter_items(items):
    for item in items:
        yield item


class RecordingSink:
    """
    In-memory TranscoderSink.

    Args:
        fail_after: Raise TranscoderError once this many frames were written
        gate: If given, every write waits for this event
    """

    def __init__(self, fail_after: Optional[int] = None, gate: Optional[asyncio.Event] = None):
        self.fail_after = fail_after
        self.gate = gate
        self.frames: List[bytes] = []
        self.started = False
        self.closed = False
        self.aborted = False

    async def start(self) -> None:
        self.started = True

    async def write(self, data: bytes) -> None:
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_after is not None and len(self.frames) >= self.fail_after:
            raise TranscoderError("ffmpeg stdin is closed")
        self.frames.append(data)

    async def close(self) -> Optional[int]:
        self.closed = True
        return 0

    async def abort(self) -> None:
        self.aborted = True


@pytest.fixture
def archive_root(tmp_path):
    """Archive root directory for a test."""
    root = tmp_path / "jpeg"
    root.mkdir()
    return root


@pytest.fixture
def segment_builder(archive_root):
    """
    Build finalized segments directly on disk.

    Usage:
        path = segment_builder("cam", 0, [5, 15, 25])
    """
    from mjpeg_service.archive.segment import SegmentFile
    from mjpeg_service.stream.frame import Frame

    def build(stream_name: str, segment_start_ms: int, timestamps: Iterable[int]) -> Path:
        directory = archive_root / stream_name
        directory.mkdir(exist_ok=True)
        segment = SegmentFile.create(directory, stream_name, segment_start_ms)
        for ts in timestamps:
            segment.append(Frame(timestamp_ms=ts, data=jpeg_payload(ts)))
        segment.finalize()
        return segment.path

    return build
