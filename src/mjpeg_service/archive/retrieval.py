"""
Retrieval Engine
================

Point-in-time frame lookup over a stream's archive segments.

Algorithm:
    1. List the stream directory and parse every segment start from its
       file name; pick the greatest start <= target.
    2. Scan that segment in storage order, keeping the last entry whose
       timestamp is <= target. Stop at the first entry past the target.
    3. Return the kept payload, or None when nothing qualifies.

Design Rules:
    - Read-only; never mutates a segment
    - Not-found is None; unreadable segments raise RetrievalError
    - A truncated tail (entry still being written) ends the scan
    - Early stop relies on entries being appended in non-decreasing order
"""

import logging
import os
import tarfile
from pathlib import Path
from typing import List, Optional, Tuple, Union

from mjpeg_service.archive.segment import parse_segment_start, validate_stream_name
from mjpeg_service.errors import FrameParseError, RetrievalError
from mjpeg_service.stream.frame import parse_entry_name


logger = logging.getLogger(__name__)


class RetrievalEngine:
    """
    Finds the most recent archived frame at or before a timestamp.

    Attributes:
        root: Archive root holding one directory per stream

    Example:
        engine = RetrievalEngine("/mnt/nfs/streams/jpeg")
        jpeg = engine.find_frame("camera_0", 1707321234567)
        if jpeg is None:
            ...  # not found
    """

    def __init__(self, root: Union[str, Path]) -> None:
        self.root = Path(root)

    def stream_directory(self, stream_name: str) -> Path:
        return self.root / validate_stream_name(stream_name)

    def list_segments(self, stream_name: str) -> List[Tuple[int, Path]]:
        """
        Enumerate a stream's segments from file names.

        Returns:
            (segment_start_ms, path) pairs sorted by start. Empty if the
            stream has never been ingested.

        Raises:
            InvalidStreamName: If the stream name is unsafe
            RetrievalError: If the directory exists but cannot be listed
        """
        directory = self.stream_directory(stream_name)
        try:
            entries = list(os.scandir(directory))
        except FileNotFoundError:
            return []
        except OSError as e:
            logger.error(f"Failed to read directory {directory}: {e}")
            raise RetrievalError(f"could not read stream directory: {e}") from e

        segments = []
        for entry in entries:
            if not entry.is_file():
                continue
            start = parse_segment_start(entry.name)
            if start is None:
                continue
            segments.append((start, Path(entry.path)))
        segments.sort(key=lambda item: item[0])
        return segments

    def select_segment(
        self,
        stream_name: str,
        target_ms: int,
    ) -> Optional[Tuple[int, Path]]:
        """
        Pick the segment whose window started latest at or before target.

        Returns:
            (segment_start_ms, path), or None if no segment qualifies
        """
        best: Optional[Tuple[int, Path]] = None
        for start, path in self.list_segments(stream_name):
            if start <= target_ms and (best is None or start > best[0]):
                best = (start, path)
        return best

    def find_frame(self, stream_name: str, target_ms: int) -> Optional[bytes]:
        """
        Return the JPEG of the latest frame with timestamp <= target_ms.

        Args:
            stream_name: Stream identifier
            target_ms: Target timestamp in milliseconds

        Returns:
            Raw JPEG bytes, or None if not found

        Raises:
            InvalidStreamName: If the stream name is unsafe
            RetrievalError: If the selected segment cannot be read
        """
        selected = self.select_segment(stream_name, target_ms)
        if selected is None:
            logger.debug(f"No segment for {stream_name} at {target_ms}")
            return None

        _, path = selected
        return self.scan_segment(path, target_ms)

    def scan_segment(self, path: Union[str, Path], target_ms: int) -> Optional[bytes]:
        """
        Scan one segment for the latest entry at or before target_ms.

        Raises:
            RetrievalError: If the segment cannot be opened or its headers read
        """
        path = Path(path)
        try:
            if path.stat().st_size == 0:
                # Created but nothing flushed yet
                return None
            archive = tarfile.open(path, mode="r:")
        except (OSError, tarfile.TarError) as e:
            logger.error(f"Failed to open tar file {path}: {e}")
            raise RetrievalError(f"failed to open archive file: {e}") from e

        best: Optional[bytes] = None
        headers_read = 0
        with archive:
            while True:
                try:
                    member = archive.next()
                except tarfile.ReadError as e:
                    if not headers_read:
                        logger.error(f"Error reading tar header in {path}: {e}")
                        raise RetrievalError(f"failed to read archive file: {e}") from e
                    # Entry still being written
                    logger.warning(f"Truncated tail in {path.name}, ending scan: {e}")
                    break
                except (OSError, tarfile.TarError) as e:
                    logger.error(f"Error reading tar header in {path}: {e}")
                    raise RetrievalError(f"failed to read archive file: {e}") from e
                if member is None:
                    break
                headers_read += 1
                if not member.isreg():
                    continue

                try:
                    frame_ms = parse_entry_name(member.name)
                except FrameParseError as e:
                    logger.warning(
                        f"Could not parse timestamp from frame name "
                        f"{member.name} in {path.name}: {e}"
                    )
                    continue

                if frame_ms > target_ms:
                    break

                data = self._read_member(archive, member, path)
                if data is not None:
                    best = data

        return best

    @staticmethod
    def _read_member(
        archive: tarfile.TarFile,
        member: tarfile.TarInfo,
        path: Path,
    ) -> Optional[bytes]:
        try:
            fileobj = archive.extractfile(member)
            if fileobj is None:
                return None
            data = fileobj.read()
        except (OSError, tarfile.TarError) as e:
            logger.warning(f"Error reading frame data for {member.name} in {path.name}: {e}")
            return None
        if len(data) != member.size:
            logger.warning(
                f"Truncated frame data for {member.name} in {path.name}: "
                f"{len(data)}/{member.size} bytes"
            )
            return None
        return data
