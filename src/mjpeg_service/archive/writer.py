"""
Archive Writer
==============

Single-owner task that persists one stream's frames into rotating segments.

State machine:
    NO_SEGMENT --first frame--> SEGMENT_OPEN --rotation--> SEGMENT_OPEN (new)
        ... --hand-off closed OR cancellation--> CLOSED

Rotation rule:
    A new segment is opened when no segment is open, or when
    frame.timestamp_ms - segment_start_ms >= window_ms. The new segment
    starts at the triggering frame's timestamp.

Error Policy:
    - Segment creation failure is fatal to archival for this stream
    - A single entry write failure skips that frame only
    - The live transcode path is never affected by either

Design Rules:
    - The open segment is private to this task
    - Frames arrive ONLY through the ArchiveHandoff
    - Disk I/O runs off the event loop
"""

import asyncio
import logging
from enum import Enum
from pathlib import Path
from typing import List, Optional, Union

from mjpeg_service.archive.segment import SegmentFile
from mjpeg_service.errors import SegmentCreateError, SegmentWriteError
from mjpeg_service.stream.buffer import ArchiveHandoff
from mjpeg_service.stream.frame import Frame


logger = logging.getLogger(__name__)


DEFAULT_WINDOW_MS = 60000


class WriterState(str, Enum):
    """Lifecycle of an ArchiveWriter."""

    NO_SEGMENT = "NO_SEGMENT"
    SEGMENT_OPEN = "SEGMENT_OPEN"
    CLOSED = "CLOSED"


class ArchiveWriterMetrics:
    """Metrics for ArchiveWriter observability."""

    __slots__ = (
        "frames_written",
        "write_errors",
        "segments_created",
        "last_timestamp_ms",
    )

    def __init__(self) -> None:
        self.frames_written: int = 0
        self.write_errors: int = 0
        self.segments_created: int = 0
        self.last_timestamp_ms: int = -1

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "frames_written": self.frames_written,
            "write_errors": self.write_errors,
            "segments_created": self.segments_created,
            "last_timestamp_ms": self.last_timestamp_ms,
        }


class ArchiveWriter:
    """
    Writes frames from a hand-off into time-windowed tar segments.

    Attributes:
        directory: Stream directory receiving the segments
        stream_name: Stream identifier encoded into segment names
        window_ms: Rotation window in milliseconds
        state: Current WriterState
        metrics: Operational metrics
        segments: Segments created by this writer, in creation order

    Example:
        handoff = ArchiveHandoff(maxsize=300)
        writer = ArchiveWriter("/data/jpeg/cam0", "cam0", handoff)

        task = asyncio.create_task(writer.run())
        ...
        handoff.close()
        await task
    """

    def __init__(
        self,
        directory: Union[str, Path],
        stream_name: str,
        handoff: ArchiveHandoff,
        window_ms: int = DEFAULT_WINDOW_MS,
        cancel: Optional[asyncio.Event] = None,
    ) -> None:
        """
        Initialize archive writer.

        Args:
            directory: Existing directory for this stream's segments
            stream_name: Stream identifier
            handoff: Hand-off the frames arrive on
            window_ms: Segment rotation window (ms)
            cancel: Session cancellation event
        """
        if window_ms < 1:
            raise ValueError("window_ms must be >= 1")

        self.directory = Path(directory)
        self.stream_name = stream_name
        self.handoff = handoff
        self.window_ms = window_ms
        self.cancel = cancel if cancel is not None else asyncio.Event()

        self.state = WriterState.NO_SEGMENT
        self.metrics = ArchiveWriterMetrics()
        self.segments: List[SegmentFile] = []
        self._segment: Optional[SegmentFile] = None

    @property
    def current_segment_start(self) -> Optional[int]:
        return self._segment.segment_start_ms if self._segment else None

    async def run(self) -> None:
        """
        Consume the hand-off until it is closed or the session is cancelled.

        Never raises for archive I/O problems; those are logged and end
        archival for this stream.
        """
        logger.info(f"Starting archive writer for stream {self.stream_name}")
        try:
            while True:
                frame = await self.handoff.get(self.cancel)
                if frame is None:
                    break
                if not await self._archive(frame):
                    logger.error("ARCHIVER: Halting due to file creation failure.")
                    return

            if self.cancel.is_set():
                await self._drain()
        finally:
            await self._close()
            logger.info(f"Archive writer for stream {self.stream_name} stopped.")

    async def _drain(self) -> None:
        """Persist frames already admitted before cancellation."""
        drained = 0
        while (frame := self.handoff.get_nowait()) is not None:
            if not await self._archive(frame):
                break
            drained += 1
        if drained:
            logger.info(f"ARCHIVER: Wrote {drained} pending frames after cancellation")

    async def _archive(self, frame: Frame) -> bool:
        """
        Rotate if needed and append one frame.

        Returns:
            False if a new segment could not be created (fatal), True otherwise.
        """
        if self._needs_rotation(frame.timestamp_ms):
            try:
                await self._rotate(frame.timestamp_ms)
            except SegmentCreateError as e:
                logger.error(f"ARCHIVER: {e}")
                return False

        try:
            await asyncio.to_thread(self._segment.append, frame)
        except SegmentWriteError as e:
            self.metrics.write_errors += 1
            logger.warning(f"ARCHIVER: {e}")
            return True

        self.metrics.frames_written += 1
        self.metrics.last_timestamp_ms = frame.timestamp_ms
        return True

    def _needs_rotation(self, timestamp_ms: int) -> bool:
        if self._segment is None:
            return True
        return timestamp_ms - self._segment.segment_start_ms >= self.window_ms

    async def _rotate(self, segment_start_ms: int) -> None:
        previous, self._segment = self._segment, None
        if previous is not None:
            await asyncio.to_thread(previous.finalize)
        self.state = WriterState.NO_SEGMENT

        segment = await asyncio.to_thread(
            SegmentFile.create,
            self.directory,
            self.stream_name,
            segment_start_ms,
        )
        self._segment = segment
        self.segments.append(segment)
        self.metrics.segments_created += 1
        self.state = WriterState.SEGMENT_OPEN
        logger.info(f"ARCHIVER: Created new archive file: {segment.path}")

    async def _close(self) -> None:
        segment, self._segment = self._segment, None
        if segment is not None:
            await asyncio.to_thread(segment.finalize)
        self.state = WriterState.CLOSED
