"""
Frame Model Tests
=================

Timestamp parsing, entry naming and segment naming.
"""

import pytest

from mjpeg_service.archive.segment import (
    parse_segment_start,
    segment_file_name,
    validate_stream_name,
)
from mjpeg_service.errors import FrameParseError, InvalidStreamName
from mjpeg_service.stream.frame import (
    Frame,
    FramePart,
    parse_entry_name,
    parse_timestamp_ms,
)


class TestTimestampParsing:
    """Tests for the X-Client-Timestamp marker."""

    def test_plain_decimal(self):
        assert parse_timestamp_ms("1707321234567") == 1707321234567

    def test_surrounding_whitespace_is_ignored(self):
        assert parse_timestamp_ms(" 42 ") == 42

    @pytest.mark.parametrize("raw", [None, "", "abc", "12.5", "-5", "1_000", "0x10"])
    def test_rejects_malformed(self, raw):
        with pytest.raises(FrameParseError):
            parse_timestamp_ms(raw)


class TestFrame:
    """Tests for Frame construction."""

    def test_from_part(self):
        frame = Frame.from_part(FramePart(timestamp="1500", data=b"jpeg"))
        assert frame.timestamp_ms == 1500
        assert frame.data == b"jpeg"
        assert frame.entry_name == "1500.jpg"

    def test_from_part_without_timestamp(self):
        with pytest.raises(FrameParseError):
            Frame.from_part(FramePart(timestamp=None, data=b"jpeg"))

    def test_frame_is_immutable(self):
        frame = Frame(timestamp_ms=1, data=b"x")
        with pytest.raises(AttributeError):
            frame.timestamp_ms = 2

    def test_repr_does_not_dump_payload(self):
        frame = Frame(timestamp_ms=7, data=b"\xff" * 4096)
        assert "size=4096" in repr(frame)
        assert len(repr(frame)) < 100

    def test_entry_name_round_trip(self):
        assert parse_entry_name(Frame(timestamp_ms=60500, data=b"").entry_name) == 60500

    @pytest.mark.parametrize("name", ["60500.png", "notes.txt", "abc.jpg", ".jpg"])
    def test_entry_name_rejects_foreign_entries(self, name):
        with pytest.raises(FrameParseError):
            parse_entry_name(name)


class TestSegmentNames:
    """Tests for the file-name encoded segment index."""

    def test_segment_file_name(self):
        assert segment_file_name("camera_0", 60000) == "camera_0_60000.tar"

    def test_parse_uses_last_token(self):
        assert parse_segment_start("camera_0_60000.tar") == 60000

    @pytest.mark.parametrize(
        "name",
        ["camera.tar", "camera_abc.tar", "camera_60000.tar.tmp", "camera_60000.zip", "_.tar"],
    )
    def test_parse_ignores_non_segments(self, name):
        assert parse_segment_start(name) is None

    def test_sorting_names_by_start(self):
        names = [segment_file_name("cam", start) for start in (120000, 0, 60000)]
        starts = sorted(parse_segment_start(name) for name in names)
        assert starts == [0, 60000, 120000]

    @pytest.mark.parametrize("name", ["", ".", "..", "a/b", "..\\x", "cam\x00"])
    def test_invalid_stream_names(self, name):
        with pytest.raises(InvalidStreamName):
            validate_stream_name(name)

    def test_valid_stream_name(self):
        assert validate_stream_name("camera_3") == "camera_3"
