"""
Error Types
===========

Exception hierarchy for the ingestion and archive layers.

Each error maps to one handling policy:
    - FrameParseError: frame discarded, pipeline continues
    - SegmentCreateError: archive writer stops for the stream
    - SegmentWriteError: single entry skipped, writer continues
    - RetrievalError: segment could not be read (not the same as not-found)
    - InvalidStreamName: rejected before touching the filesystem
    - FrameSourceError: upload body could not be decoded, pipeline ends
    - TranscoderError: live transcode path failed, pipeline ends
    - StreamBusyError: a second upload for a stream that is already live
"""


class MjpegServiceError(Exception):
    """Base class for all service errors."""
    pass


class FrameParseError(MjpegServiceError):
    """Raised when a frame's timestamp marker is missing or malformed."""
    pass


class InvalidStreamName(MjpegServiceError):
    """Raised when a stream name cannot be mapped to a directory safely."""
    pass


class SegmentCreateError(MjpegServiceError):
    """Raised when a new archive segment file cannot be created."""
    pass


class SegmentWriteError(MjpegServiceError):
    """Raised when a single frame entry cannot be written to a segment."""
    pass


class RetrievalError(MjpegServiceError):
    """Raised when a segment exists but cannot be read."""
    pass


class FrameSourceError(MjpegServiceError):
    """Raised when the incoming multipart stream cannot be decoded."""
    pass


class TranscoderError(MjpegServiceError):
    """Raised when the transcoder cannot be started or fed."""
    pass


class StreamBusyError(MjpegServiceError):
    """Raised when a stream already has an active ingestion session."""
    pass
