"""
Transcoder Sink
===============

Abstract consumer of the live JPEG byte stream.

The dispatch pipeline only needs "accepts an ordered byte stream; signals
completion or failure". What happens to the bytes (HLS encoding, relay,
nothing at all) is the sink's business.
"""

import logging
from typing import Optional, Protocol


logger = logging.getLogger(__name__)


class TranscoderSink(Protocol):
    """
    Protocol for live-path consumers.

    All implementations must provide:
        - start(): acquire resources (spawn process, open socket)
        - write(data): forward one JPEG, waiting while the consumer is saturated
        - close(): signal end of input and wait for completion
        - abort(): stop immediately on cancellation
    """

    async def start(self) -> None:
        ...

    async def write(self, data: bytes) -> None:
        """
        Forward one frame payload.

        Raises:
            TranscoderError: If the consumer is closed or failed
        """
        ...

    async def close(self) -> Optional[int]:
        """
        Signal end of input and wait for the consumer to finish.

        Returns:
            Exit status if the consumer has one, else None
        """
        ...

    async def abort(self) -> None:
        ...


class NullSink:
    """Sink used when the live transcode path is disabled."""

    def __init__(self) -> None:
        self.bytes_written: int = 0
        self.frames_written: int = 0

    async def start(self) -> None:
        logger.info("Live transcoding disabled, frames are archived only")

    async def write(self, data: bytes) -> None:
        self.frames_written += 1
        self.bytes_written += len(data)

    async def close(self) -> Optional[int]:
        return None

    async def abort(self) -> None:
        return None
