"""
Archive Hand-off
================

Bounded, closable queue between the dispatch pipeline and the archive writer.

This module provides the ArchiveHandoff class, the only channel through
which frames reach the archive writer.

Design Rules:
    - Fixed maximum size (drops the NEW frame on overflow)
    - Producer side never blocks
    - Consumer wait ends on a frame, on close, or on cancellation
    - Close is idempotent
    - Does NOT process or modify frames
"""

import asyncio
import logging
from typing import Optional

from mjpeg_service.stream.frame import Frame


logger = logging.getLogger(__name__)


class ArchiveHandoff:
    """
    Async bounded hand-off for frames headed to the archive.

    The live path has priority over archival completeness, so when the
    queue is full the incoming frame is discarded instead of waiting for
    the writer to catch up.

    Attributes:
        maxsize: Maximum number of frames to buffer
        dropped_count: Number of frames dropped due to overflow
        closed: Whether the producer side has been closed

    Example:
        handoff = ArchiveHandoff(maxsize=300)

        # Producer
        if not handoff.try_put(frame):
            ...  # archival drop

        # Consumer
        frame = await handoff.get()
        if frame is None:
            ...  # closed and drained
    """

    def __init__(self, maxsize: int = 300) -> None:
        """
        Initialize hand-off.

        Args:
            maxsize: Maximum frames to buffer. Must be >= 1.
        """
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")

        self._maxsize = maxsize
        self._queue: asyncio.Queue[Frame] = asyncio.Queue(maxsize=maxsize)
        self._closed = asyncio.Event()
        self._dropped_count: int = 0
        self._total_put: int = 0

    @property
    def maxsize(self) -> int:
        """Maximum buffer size."""
        return self._maxsize

    @property
    def size(self) -> int:
        """Current number of frames in buffer."""
        return self._queue.qsize()

    @property
    def dropped_count(self) -> int:
        """Number of frames dropped due to overflow."""
        return self._dropped_count

    @property
    def total_put(self) -> int:
        """Total frames accepted into the buffer."""
        return self._total_put

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def try_put(self, frame: Frame) -> bool:
        """
        Offer a frame without waiting.

        Args:
            frame: Frame to archive

        Returns:
            True if the frame was queued, False if it was dropped
            (buffer full or hand-off already closed).
        """
        if self._closed.is_set():
            logger.warning(f"Hand-off closed, dropping frame {frame.timestamp_ms}")
            self._dropped_count += 1
            return False

        try:
            self._queue.put_nowait(frame)
        except asyncio.QueueFull:
            self._dropped_count += 1
            logger.warning(
                f"Archive hand-off is full. Dropping frame {frame.timestamp_ms} "
                f"for archival to prioritize live stream. "
                f"Total dropped: {self._dropped_count}"
            )
            return False

        self._total_put += 1
        return True

    def close(self) -> None:
        """Signal that no more frames will be offered. Safe to call repeatedly."""
        if not self._closed.is_set():
            self._closed.set()
            logger.debug(f"Hand-off closed with {self.size} frames pending")

    async def get(self, cancel: Optional[asyncio.Event] = None) -> Optional[Frame]:
        """
        Wait for the next frame.

        Frames queued before close() are still delivered; None is returned
        only once the hand-off is closed and drained, or when `cancel`
        is set.

        Args:
            cancel: Optional session cancellation event

        Returns:
            Next frame, or None on close/cancellation.
        """
        while True:
            if cancel is not None and cancel.is_set():
                return None

            frame = self.get_nowait()
            if frame is not None:
                return frame

            if self._closed.is_set():
                return None

            waiters = {
                asyncio.ensure_future(self._queue.get()),
                asyncio.ensure_future(self._closed.wait()),
            }
            if cancel is not None:
                waiters.add(asyncio.ensure_future(cancel.wait()))

            try:
                done, _ = await asyncio.wait(
                    waiters, return_when=asyncio.FIRST_COMPLETED
                )
            finally:
                for waiter in waiters:
                    if not waiter.done():
                        waiter.cancel()

            for waiter in done:
                result = waiter.result()
                if isinstance(result, Frame):
                    return result

    def get_nowait(self) -> Optional[Frame]:
        """
        Get next frame without waiting.

        Returns:
            Next frame if available, None otherwise.
        """
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def metrics(self) -> dict:
        """
        Get hand-off metrics for observability.

        Returns:
            Dict with size, maxsize, dropped_count, total_put, closed
        """
        return {
            "size": self.size,
            "maxsize": self._maxsize,
            "dropped_count": self._dropped_count,
            "total_put": self._total_put,
            "closed": self.closed,
        }
