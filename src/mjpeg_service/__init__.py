"""
mjpeg_service
=============

Live MJPEG ingestion with a time-windowed frame archive.

Cameras push timestamped JPEG frames over a streaming multipart upload.
Every frame is fanned out to two consumers:

    - archive: bounded hand-off to a single writer that rotates tar
      segments on a fixed time window
    - transcode: ffmpeg subprocess producing an HLS playlist

Historical frames are served back by point-in-time lookup against the
on-disk segments.

Components:
    - stream: Frame model, hand-off queue, multipart adapter, dispatch
    - archive: Segment format, writer task, retrieval engine
    - transcode: Transcoder sink protocol and ffmpeg implementation
    - session: Per-stream ingestion wiring and cancellation

Example:
    from mjpeg_service.archive import RetrievalEngine

    engine = RetrievalEngine("/mnt/nfs/streams/jpeg")
    jpeg = engine.find_frame("camera_0", 1707321234567)
"""

__version__ = "0.1.0"
__author__ = "mjpeg-service maintainers"

__all__ = [
    "__version__",
]
