"""
Transcode Module
================

Live path consumers of the frame stream.

    - TranscoderSink: Protocol the dispatch pipeline writes to
    - FfmpegTranscoder: ffmpeg subprocess producing HLS
    - NullSink: Discarding sink for archive-only deployments
"""

from mjpeg_service.transcode.sink import NullSink, TranscoderSink
from mjpeg_service.transcode.ffmpeg import FfmpegTranscoder


__all__ = [
    "TranscoderSink",
    "NullSink",
    "FfmpegTranscoder",
]
