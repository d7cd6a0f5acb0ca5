"""
Archive Module
==============

Time-windowed frame archive and point-in-time retrieval.

This module provides:
    - SegmentFile: Append-only tar segment for one rotation window
    - ArchiveWriter: Single-owner task rotating segments per stream
    - RetrievalEngine: Latest frame at or before a timestamp

Example:
    from mjpeg_service.archive import ArchiveWriter, RetrievalEngine

    writer = ArchiveWriter(directory, "camera_0", handoff, window_ms=60000)
    task = asyncio.create_task(writer.run())

    engine = RetrievalEngine(root)
    jpeg = engine.find_frame("camera_0", 1707321234567)
"""

from mjpeg_service.archive.segment import (
    SegmentFile,
    parse_segment_start,
    segment_file_name,
    validate_stream_name,
)
from mjpeg_service.archive.writer import ArchiveWriter, ArchiveWriterMetrics, WriterState
from mjpeg_service.archive.retrieval import RetrievalEngine


__all__ = [
    "SegmentFile",
    "parse_segment_start",
    "segment_file_name",
    "validate_stream_name",
    "ArchiveWriter",
    "ArchiveWriterMetrics",
    "WriterState",
    "RetrievalEngine",
]
