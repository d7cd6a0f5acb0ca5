"""
Stream Module
=============

Frame ingestion components.

This module provides the producer side of an ingestion session:
    - Frame / FramePart: Typed frame data models
    - ArchiveHandoff: Bounded queue to the archive writer (drops new on overflow)
    - iter_frame_parts: Streaming multipart decoder
    - DispatchPipeline: Fan-out to archive and live transcoder

Example:
    from mjpeg_service.stream import ArchiveHandoff, DispatchPipeline, iter_frame_parts

    handoff = ArchiveHandoff(maxsize=300)
    pipeline = DispatchPipeline("camera_0", handoff, transcoder)
    await pipeline.run(iter_frame_parts(content_type, request.stream()))
"""

from mjpeg_service.stream.frame import Frame, FramePart, parse_timestamp_ms
from mjpeg_service.stream.buffer import ArchiveHandoff
from mjpeg_service.stream.multipart import iter_frame_parts, parse_boundary
from mjpeg_service.stream.dispatch import DispatchMetrics, DispatchPipeline


__all__ = [
    "Frame",
    "FramePart",
    "parse_timestamp_ms",
    "ArchiveHandoff",
    "iter_frame_parts",
    "parse_boundary",
    "DispatchMetrics",
    "DispatchPipeline",
]
