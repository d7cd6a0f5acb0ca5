"""
Dispatch Pipeline
=================

Fans every incoming frame out to the archive and to the live transcoder.

Priorities:
    - Live path first: the transcoder write may wait, archival admission never does
    - A full hand-off drops the frame for archival only
    - A frame with a bad timestamp reaches neither consumer

Termination:
    End of input, source read error, transcoder failure or cancellation
    all end the loop; the hand-off is always closed on the way out so the
    archive writer can finalize its segment.
"""

import logging
from typing import AsyncIterator

from mjpeg_service.errors import FrameParseError, FrameSourceError, TranscoderError
from mjpeg_service.stream.buffer import ArchiveHandoff
from mjpeg_service.stream.frame import Frame, FramePart
from mjpeg_service.transcode.sink import TranscoderSink


logger = logging.getLogger(__name__)


class DispatchMetrics:
    """Metrics for DispatchPipeline observability."""

    __slots__ = (
        "frames_received",
        "frames_admitted",
        "frames_rejected",
        "archive_drops",
        "transcoder_errors",
        "source_errors",
        "last_timestamp_ms",
    )

    def __init__(self) -> None:
        self.frames_received: int = 0
        self.frames_admitted: int = 0
        self.frames_rejected: int = 0
        self.archive_drops: int = 0
        self.transcoder_errors: int = 0
        self.source_errors: int = 0
        self.last_timestamp_ms: int = -1

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "frames_received": self.frames_received,
            "frames_admitted": self.frames_admitted,
            "frames_rejected": self.frames_rejected,
            "archive_drops": self.archive_drops,
            "transcoder_errors": self.transcoder_errors,
            "source_errors": self.source_errors,
            "last_timestamp_ms": self.last_timestamp_ms,
        }


class DispatchPipeline:
    """
    Producer side of one ingestion session.

    Attributes:
        stream_name: Stream identifier (for logs)
        handoff: Bounded hand-off to the archive writer
        sink: Live-path consumer
        metrics: Operational metrics

    Example:
        pipeline = DispatchPipeline("camera_0", handoff, transcoder)
        await pipeline.run(iter_frame_parts(content_type, body))
    """

    def __init__(
        self,
        stream_name: str,
        handoff: ArchiveHandoff,
        sink: TranscoderSink,
    ) -> None:
        self.stream_name = stream_name
        self.handoff = handoff
        self.sink = sink
        self.metrics = DispatchMetrics()

    async def admit(self, frame: Frame) -> None:
        """
        Forward one frame to both consumers.

        Archival admission is attempted first and never waits. The
        transcoder write may wait on a saturated consumer.

        Raises:
            TranscoderError: If the live consumer failed
        """
        if not self.handoff.try_put(frame):
            self.metrics.archive_drops += 1

        await self.sink.write(frame.data)
        self.metrics.frames_admitted += 1
        self.metrics.last_timestamp_ms = frame.timestamp_ms

    async def admit_part(self, part: FramePart) -> bool:
        """
        Validate a raw part and admit it.

        Returns:
            False if the part was rejected for a bad timestamp.

        Raises:
            TranscoderError: If the live consumer failed
        """
        self.metrics.frames_received += 1
        try:
            frame = Frame.from_part(part)
        except FrameParseError as e:
            self.metrics.frames_rejected += 1
            logger.warning(f"Rejecting multipart part for {self.stream_name}: {e}")
            return False

        await self.admit(frame)
        return True

    async def run(self, parts: AsyncIterator[FramePart]) -> None:
        """
        Dispatch parts until the source ends or a consumer fails.

        Source and transcoder errors end the loop without raising; the
        hand-off is closed in every case, including cancellation.
        """
        logger.info(f"Dispatch pipeline started for stream {self.stream_name}")
        try:
            async for part in parts:
                await self.admit_part(part)
        except FrameSourceError as e:
            self.metrics.source_errors += 1
            logger.warning(f"Upload for {self.stream_name} ended with error: {e}")
        except TranscoderError as e:
            self.metrics.transcoder_errors += 1
            logger.error(f"Live path for {self.stream_name} failed: {e}")
        finally:
            self.handoff.close()
            logger.info(
                f"Dispatch pipeline for {self.stream_name} stopped: "
                f"{self.metrics.frames_admitted} admitted, "
                f"{self.metrics.archive_drops} archive drops, "
                f"{self.metrics.frames_rejected} rejected"
            )
