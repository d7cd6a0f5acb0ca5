"""
Multipart Frame Source
======================

Incremental decoder turning a streaming multipart upload into FrameParts.

Each part of the upload is one JPEG; its capture time travels in the
`X-Client-Timestamp` part header as decimal milliseconds.

Design Rules:
    - Never buffers the whole body; parts are yielded as soon as they end
    - Does NOT validate timestamps (dispatch does)
    - Malformed bodies raise FrameSourceError
"""

import logging
from collections import deque
from typing import AsyncIterator, Deque, Dict, List, Optional

from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header

from mjpeg_service.errors import FrameSourceError
from mjpeg_service.stream.frame import FramePart


logger = logging.getLogger(__name__)


TIMESTAMP_HEADER = "x-client-timestamp"


def parse_boundary(content_type: Optional[str]) -> bytes:
    """
    Extract the multipart boundary from a Content-Type header.

    Raises:
        FrameSourceError: If the type is not multipart/* or has no boundary
    """
    if not content_type:
        raise FrameSourceError("missing Content-Type")
    media_type, params = parse_options_header(content_type)
    if not media_type.lower().startswith(b"multipart/"):
        raise FrameSourceError("invalid Content-Type, must be multipart/*")
    boundary = params.get(b"boundary")
    if not boundary:
        raise FrameSourceError("multipart Content-Type has no boundary")
    return boundary


class _PartCollector:
    """Accumulates parser callbacks into complete FrameParts."""

    def __init__(self) -> None:
        self.completed: Deque[FramePart] = deque()
        self._headers: Dict[str, str] = {}
        self._field: List[bytes] = []
        self._value: List[bytes] = []
        self._body: List[bytes] = []

    def callbacks(self) -> dict:
        return {
            "on_part_begin": self.on_part_begin,
            "on_header_field": self.on_header_field,
            "on_header_value": self.on_header_value,
            "on_header_end": self.on_header_end,
            "on_part_data": self.on_part_data,
            "on_part_end": self.on_part_end,
        }

    def on_part_begin(self) -> None:
        self._headers = {}
        self._body = []

    def on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._field.append(data[start:end])

    def on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._value.append(data[start:end])

    def on_header_end(self) -> None:
        name = b"".join(self._field).decode("latin-1").strip().lower()
        value = b"".join(self._value).decode("latin-1").strip()
        self._headers[name] = value
        self._field = []
        self._value = []

    def on_part_data(self, data: bytes, start: int, end: int) -> None:
        self._body.append(data[start:end])

    def on_part_end(self) -> None:
        self.completed.append(
            FramePart(
                timestamp=self._headers.get(TIMESTAMP_HEADER),
                data=b"".join(self._body),
            )
        )
        self._body = []


async def iter_frame_parts(
    content_type: Optional[str],
    chunks: AsyncIterator[bytes],
) -> AsyncIterator[FramePart]:
    """
    Decode a streaming multipart body into FrameParts.

    Args:
        content_type: Content-Type header of the upload
        chunks: Body chunks in arrival order

    Yields:
        One FramePart per completed multipart part

    Raises:
        FrameSourceError: On invalid Content-Type or malformed body
    """
    boundary = parse_boundary(content_type)
    collector = _PartCollector()
    parser = MultipartParser(boundary, collector.callbacks())

    async for chunk in chunks:
        if not chunk:
            continue
        try:
            parser.write(chunk)
        except MultipartParseError as e:
            raise FrameSourceError(f"error reading multipart part: {e}") from e
        while collector.completed:
            yield collector.completed.popleft()

    try:
        parser.finalize()
    except MultipartParseError as e:
        raise FrameSourceError(f"error finishing multipart body: {e}") from e
    while collector.completed:
        yield collector.completed.popleft()
