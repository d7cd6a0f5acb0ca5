"""
Archive Segment Format
======================

On-disk layout of one time window of frames.

Layout:
    <root>/<stream>/<stream>_<segment_start_ms>.tar
        <timestamp_ms>.jpg   (raw JPEG bytes)
        <timestamp_ms>.jpg
        ...

Design Rules:
    - Coverage is decidable from file names alone (no index file)
    - Entries are appended in arrival order, never re-sorted
    - Each entry is flushed after writing so readers see the open segment
    - A segment is finalized exactly once
"""

import io
import logging
import os
import tarfile
import time
from pathlib import Path
from typing import Optional, Union

from mjpeg_service.errors import (
    InvalidStreamName,
    SegmentCreateError,
    SegmentWriteError,
)
from mjpeg_service.stream.frame import Frame


logger = logging.getLogger(__name__)


SEGMENT_SUFFIX = ".tar"
ENTRY_MODE = 0o644


def validate_stream_name(stream_name: str) -> str:
    """
    Ensure a stream name maps to exactly one directory under the root.

    Raises:
        InvalidStreamName: If the name is empty, a dot path, or contains a separator
    """
    if not stream_name or stream_name in (".", ".."):
        raise InvalidStreamName(f"invalid stream name: {stream_name!r}")
    if "/" in stream_name or "\\" in stream_name or "\x00" in stream_name:
        raise InvalidStreamName(f"invalid stream name: {stream_name!r}")
    return stream_name


def segment_file_name(stream_name: str, segment_start_ms: int) -> str:
    """File name of the segment starting at `segment_start_ms`."""
    return f"{stream_name}_{segment_start_ms}{SEGMENT_SUFFIX}"


def parse_segment_start(file_name: str) -> Optional[int]:
    """
    Extract the segment start from a segment file name.

    The start is the last "_"-separated token of the stem, so stream
    names may themselves contain underscores.

    Returns:
        Segment start in milliseconds, or None if the name is not a segment
    """
    if not file_name.endswith(SEGMENT_SUFFIX):
        return None
    stem = file_name[: -len(SEGMENT_SUFFIX)]
    parts = stem.split("_")
    if len(parts) < 2:
        return None
    token = parts[-1]
    if not token.isascii() or not token.isdigit():
        return None
    return int(token)


class SegmentFile:
    """
    Append-only writer for a single archive segment.

    Owned by the archive writer; nothing else may write to it.

    Attributes:
        path: Segment file path
        segment_start_ms: Timestamp of the first frame of the window
        entry_count: Entries written successfully
    """

    def __init__(self, path: Union[str, Path], segment_start_ms: int) -> None:
        self.path = Path(path)
        self.segment_start_ms = segment_start_ms
        self.entry_count: int = 0
        self._fileobj: Optional[io.BufferedWriter] = None
        self._tar: Optional[tarfile.TarFile] = None
        self._finalized: bool = False
        self._broken: bool = False

    @classmethod
    def create(
        cls,
        directory: Union[str, Path],
        stream_name: str,
        segment_start_ms: int,
    ) -> "SegmentFile":
        """
        Create a new segment file on disk.

        Raises:
            SegmentCreateError: If the file cannot be created
        """
        path = Path(directory) / segment_file_name(stream_name, segment_start_ms)
        segment = cls(path, segment_start_ms)
        try:
            segment._fileobj = open(path, "wb")
            segment._tar = tarfile.open(fileobj=segment._fileobj, mode="w")
        except (OSError, tarfile.TarError) as e:
            if segment._fileobj is not None:
                segment._fileobj.close()
            raise SegmentCreateError(f"failed to create segment {path}: {e}") from e
        return segment

    @property
    def finalized(self) -> bool:
        return self._finalized

    def append(self, frame: Frame) -> None:
        """
        Append a frame entry named by its timestamp.

        Raises:
            SegmentWriteError: If the header or payload cannot be written
        """
        if self._tar is None or self._fileobj is None or self._finalized:
            raise SegmentWriteError(f"segment {self.path.name} is not open")
        if self._broken:
            raise SegmentWriteError(
                f"segment {self.path.name} has an unrecoverable partial entry"
            )

        info = tarfile.TarInfo(name=frame.entry_name)
        info.size = len(frame.data)
        info.mode = ENTRY_MODE
        info.mtime = int(time.time())
        offset = self._tar.offset
        try:
            self._tar.addfile(info, io.BytesIO(frame.data))
            self._fileobj.flush()
        except (OSError, tarfile.TarError) as e:
            self._rollback(offset)
            raise SegmentWriteError(
                f"failed to write {frame.entry_name} to {self.path.name}: {e}"
            ) from e
        self.entry_count += 1

    def _rollback(self, offset: int) -> None:
        """Cut a partially written entry so the next one starts on a header boundary."""
        try:
            self._fileobj.seek(offset)
            self._fileobj.truncate()
        except OSError as e:
            self._broken = True
            logger.error(
                f"ARCHIVER: Could not discard partial entry in {self.path.name}, "
                f"no further frames will be appended: {e}"
            )
        self._tar.offset = offset

    def finalize(self) -> bool:
        """
        Flush and close the segment.

        Returns:
            True if this call closed the segment, False if it was already closed.
        """
        if self._finalized:
            return False
        self._finalized = True

        try:
            if self._tar is not None:
                self._tar.close()
        except (OSError, tarfile.TarError) as e:
            logger.error(f"ARCHIVER: Failed to finalize {self.path.name}: {e}")
        finally:
            if self._fileobj is not None:
                try:
                    self._fileobj.flush()
                    os.fsync(self._fileobj.fileno())
                except OSError as e:
                    logger.error(f"ARCHIVER: Failed to flush {self.path.name}: {e}")
                finally:
                    self._fileobj.close()
            self._tar = None
            self._fileobj = None

        logger.info(
            f"ARCHIVER: Finalized {self.path.name} ({self.entry_count} frames)"
        )
        return True

    def __repr__(self) -> str:
        return (
            f"SegmentFile(path={self.path.name!r}, "
            f"start={self.segment_start_ms}, entries={self.entry_count})"
        )
