"""
Ingestion Session
=================

Wires one stream's upload into the archive writer and the live transcoder.

Lifecycle:
    1. prepare(): discard and recreate the stream's directories
    2. run(parts): start writer + transcoder, dispatch until input ends
    3. cleanup: close hand-off, close (or abort) transcoder, wait for writer

Cancellation:
    cancel() is the single signal for the session. It reaches
        - the archive writer's wait (event)
        - the dispatch pipeline's blocking transcoder write (task cancel)
        - the transcoder process (killed instead of closed)
"""

import asyncio
import logging
import shutil
import time
from pathlib import Path
from typing import AsyncIterator, Dict, Optional, Union

from mjpeg_service.archive.segment import validate_stream_name
from mjpeg_service.archive.writer import DEFAULT_WINDOW_MS, ArchiveWriter
from mjpeg_service.errors import StreamBusyError
from mjpeg_service.stream.buffer import ArchiveHandoff
from mjpeg_service.stream.dispatch import DispatchPipeline
from mjpeg_service.stream.frame import FramePart
from mjpeg_service.transcode.sink import TranscoderSink


logger = logging.getLogger(__name__)


def reset_directory(path: Union[str, Path]) -> None:
    """Remove a directory tree (if present) and recreate it empty."""
    path = Path(path)
    if path.exists():
        shutil.rmtree(path)
    path.mkdir(parents=True, exist_ok=True)


class IngestSession:
    """
    One live upload for one stream.

    Attributes:
        stream_name: Stream identifier
        directory: Segment directory of the stream
        hls_dir: Transcoder output directory (reset alongside, if given)
        handoff: Bounded hand-off between dispatch and writer
        writer: Archive writer task body
        pipeline: Dispatch pipeline
        sink: Live-path consumer

    Example:
        session = IngestSession("camera_0", "/data/jpeg", transcoder)
        session.prepare()
        summary = await session.run(iter_frame_parts(content_type, body))
    """

    def __init__(
        self,
        stream_name: str,
        archive_root: Union[str, Path],
        sink: TranscoderSink,
        window_ms: int = DEFAULT_WINDOW_MS,
        handoff_capacity: int = 300,
        hls_dir: Optional[Union[str, Path]] = None,
    ) -> None:
        self.stream_name = validate_stream_name(stream_name)
        self.directory = Path(archive_root) / stream_name
        self.hls_dir = Path(hls_dir) if hls_dir is not None else None
        self.sink = sink

        self.cancel_event = asyncio.Event()
        self.handoff = ArchiveHandoff(maxsize=handoff_capacity)
        self.writer = ArchiveWriter(
            self.directory,
            stream_name,
            self.handoff,
            window_ms=window_ms,
            cancel=self.cancel_event,
        )
        self.pipeline = DispatchPipeline(stream_name, self.handoff, sink)

        self.started_at: float = time.time()
        self.transcoder_returncode: Optional[int] = None
        self._dispatch_task: Optional[asyncio.Task] = None
        self._writer_task: Optional[asyncio.Task] = None

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def prepare(self) -> None:
        """
        Discard the stream's previous archive and HLS output.

        Raises:
            OSError: If the directories cannot be removed or created
        """
        reset_directory(self.directory)
        if self.hls_dir is not None:
            reset_directory(self.hls_dir)

    def cancel(self) -> None:
        """Cancel the session. Safe to call repeatedly or after completion."""
        if self.cancel_event.is_set():
            return
        logger.info(f"Cancelling ingestion session for {self.stream_name}")
        self.cancel_event.set()
        if self._dispatch_task is not None and not self._dispatch_task.done():
            self._dispatch_task.cancel()

    async def run(self, parts: AsyncIterator[FramePart]) -> dict:
        """
        Run the session until the upload ends or the session is cancelled.

        Raises:
            TranscoderError: If the transcoder cannot be started (archive
                writer is stopped cleanly first)
        """
        self._writer_task = asyncio.create_task(
            self.writer.run(),
            name=f"archive_writer:{self.stream_name}",
        )

        try:
            await self.sink.start()
        except BaseException:
            self.handoff.close()
            await self._writer_task
            raise

        self._dispatch_task = asyncio.create_task(
            self.pipeline.run(parts),
            name=f"dispatch:{self.stream_name}",
        )
        if self.cancel_event.is_set():
            self._dispatch_task.cancel()

        outer_cancelled = False
        try:
            await self._dispatch_task
        except asyncio.CancelledError:
            if not self.cancel_event.is_set():
                # The task running this session was cancelled from outside
                outer_cancelled = True
                self.cancel_event.set()
        finally:
            self.handoff.close()
            if self.cancel_event.is_set():
                await self.sink.abort()
            else:
                self.transcoder_returncode = await self.sink.close()
            await self._writer_task

        logger.info(f"Finished processing stream for {self.stream_name}")
        if outer_cancelled:
            raise asyncio.CancelledError()
        return self.summary()

    def summary(self) -> dict:
        """Counters of the session for responses and /metrics."""
        return {
            "stream": self.stream_name,
            "uptime_seconds": round(time.time() - self.started_at, 1),
            "cancelled": self.cancelled,
            "writer_state": self.writer.state.value,
            "current_segment_start": self.writer.current_segment_start,
            "transcoder_returncode": self.transcoder_returncode,
            "handoff": self.handoff.metrics(),
            "dispatch": self.pipeline.metrics.to_dict(),
            "archive": self.writer.metrics.to_dict(),
        }


class SessionRegistry:
    """
    Active sessions by stream name.

    Concurrent uploads for the same stream would fight over one
    directory, so only one session per name may be registered.
    A session is unregistered by its upload handler once run() has
    returned, i.e. after its last segment is finalized.
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, IngestSession] = {}
        self._idle = asyncio.Event()
        self._idle.set()

    def __contains__(self, stream_name: str) -> bool:
        return stream_name in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def register(self, session: IngestSession) -> None:
        """
        Raises:
            StreamBusyError: If the stream already has an active session
        """
        if session.stream_name in self._sessions:
            raise StreamBusyError(f"stream {session.stream_name} is already being ingested")
        self._sessions[session.stream_name] = session
        self._idle.clear()

    def unregister(self, session: IngestSession) -> None:
        if self._sessions.get(session.stream_name) is session:
            del self._sessions[session.stream_name]
        if not self._sessions:
            self._idle.set()

    def get(self, stream_name: str) -> Optional[IngestSession]:
        return self._sessions.get(stream_name)

    def cancel_all(self) -> None:
        for session in list(self._sessions.values()):
            session.cancel()

    async def wait_idle(self, timeout: float) -> bool:
        """
        Wait until every registered session has been unregistered.

        Returns:
            False if sessions were still active after `timeout` seconds
        """
        try:
            await asyncio.wait_for(self._idle.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    def summaries(self) -> Dict[str, dict]:
        return {name: session.summary() for name, session in self._sessions.items()}
