"""
Multipart Frame Source Tests
============================

Streaming decode of the upload body into FrameParts.
"""

import pytest

from conftest import aiter_items, build_multipart, jpeg_payload
from mjpeg_service.errors import FrameSourceError
from mjpeg_service.stream.multipart import iter_frame_parts, parse_boundary


CONTENT_TYPE = "multipart/form-data; boundary=frameboundary"


async def collect(content_type, chunks):
    return [part async for part in iter_frame_parts(content_type, aiter_items(chunks))]


def split(data: bytes, size: int):
    return [data[i:i + size] for i in range(0, len(data), size)]


class TestBoundary:
    """Tests for Content-Type validation."""

    def test_extracts_boundary(self):
        assert parse_boundary(CONTENT_TYPE) == b"frameboundary"

    def test_quoted_boundary(self):
        assert parse_boundary('multipart/x-mixed-replace; boundary="abc"') == b"abc"

    @pytest.mark.parametrize(
        "content_type",
        [None, "", "image/jpeg", "application/json; boundary=x", "multipart/form-data"],
    )
    def test_rejects_non_multipart(self, content_type):
        with pytest.raises(FrameSourceError):
            parse_boundary(content_type)


class TestDecode:
    """Tests for part extraction."""

    @pytest.mark.asyncio
    async def test_parts_in_order(self):
        body = build_multipart([(1000, jpeg_payload(1000)), (1200, jpeg_payload(1200))])

        parts = await collect(CONTENT_TYPE, [body])

        assert [(p.timestamp, p.data) for p in parts] == [
            ("1000", jpeg_payload(1000)),
            ("1200", jpeg_payload(1200)),
        ]

    @pytest.mark.asyncio
    async def test_small_chunks(self):
        frames = [(ts, jpeg_payload(ts)) for ts in (5, 15, 25)]
        body = build_multipart(frames)

        parts = await collect(CONTENT_TYPE, split(body, 7))

        assert [(p.timestamp, p.data) for p in parts] == [(str(ts), d) for ts, d in frames]

    @pytest.mark.asyncio
    async def test_missing_timestamp_header(self):
        body = build_multipart([(None, b"\xff\xd8x\xff\xd9"), (7, jpeg_payload(7))])

        parts = await collect(CONTENT_TYPE, [body])

        assert parts[0].timestamp is None
        assert parts[1].timestamp == "7"

    @pytest.mark.asyncio
    async def test_binary_payload_preserved(self):
        payload = b"\xff\xd8" + bytes(range(256)) * 4 + b"\xff\xd9"
        body = build_multipart([(1, payload)])

        parts = await collect(CONTENT_TYPE, split(body, 64))

        assert parts[0].data == payload

    @pytest.mark.asyncio
    async def test_invalid_content_type(self):
        with pytest.raises(FrameSourceError):
            await collect("text/plain", [b"hello"])
