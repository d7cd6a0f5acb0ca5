"""
mjpeg_service Main Application
==============================

FastAPI entry point for the ingestion and archive service.

Endpoints:
    GET  /health                          - Liveness probe
    GET  /metrics                         - Active sessions and counters
    POST /stream/{stream_name}            - Streaming multipart frame upload
    GET  /image/{stream_name}/{timestamp} - Latest archived frame at or before timestamp
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from starlette.requests import ClientDisconnect

from mjpeg_service.config import settings
from mjpeg_service.archive import RetrievalEngine, validate_stream_name
from mjpeg_service.errors import (
    FrameParseError,
    FrameSourceError,
    InvalidStreamName,
    RetrievalError,
    StreamBusyError,
    TranscoderError,
)
from mjpeg_service.session import IngestSession, SessionRegistry
from mjpeg_service.stream import iter_frame_parts, parse_boundary, parse_timestamp_ms
from mjpeg_service.transcode import FfmpegTranscoder, NullSink


logger = logging.getLogger(__name__)


# =============================================================================
# Global State
# =============================================================================

_registry: SessionRegistry = SessionRegistry()
_retrieval_engine: Optional[RetrievalEngine] = None
_startup_time: float = 0.0


# =============================================================================
# Getters
# =============================================================================

def get_registry() -> SessionRegistry:
    return _registry

def get_retrieval_engine() -> RetrievalEngine:
    global _retrieval_engine
    if _retrieval_engine is None:
        _retrieval_engine = RetrievalEngine(settings.archive.root_path)
    return _retrieval_engine


# =============================================================================
# Session Factory
# =============================================================================

def create_session(stream_name: str) -> IngestSession:
    """
    Build an ingestion session from config.

    Uses ffmpeg for the live path unless the transcoder is disabled.
    """
    hls_dir: Optional[Path] = None
    if settings.transcoder.enabled:
        hls_dir = Path(settings.transcoder.hls_root) / stream_name
        sink = FfmpegTranscoder(
            output_dir=hls_dir,
            ffmpeg_path=settings.transcoder.ffmpeg_path,
            framerate=settings.transcoder.framerate,
            crf=settings.transcoder.crf,
            gop=settings.transcoder.gop,
            hls_time=settings.transcoder.hls_time,
            hls_list_size=settings.transcoder.hls_list_size,
            verbose=settings.transcoder.verbose,
            stop_timeout=settings.transcoder.stop_timeout_seconds,
        )
    else:
        sink = NullSink()

    return IngestSession(
        stream_name=stream_name,
        archive_root=settings.archive.root_path,
        sink=sink,
        window_ms=settings.archive.window_ms,
        handoff_capacity=settings.archive.handoff_capacity,
        hls_dir=hls_dir,
    )


async def _body_chunks(request: Request) -> AsyncIterator[bytes]:
    """Request body chunks; a client disconnect ends the upload as a source error."""
    try:
        async for chunk in request.stream():
            yield chunk
    except ClientDisconnect as e:
        raise FrameSourceError("client disconnected") from e


# =============================================================================
# Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager with graceful shutdown."""
    global _registry, _retrieval_engine, _startup_time

    _startup_time = time.time()
    _registry = SessionRegistry()
    logger.info(f"Starting {settings.service.name} {settings.service.version}")
    logger.info(f"Archive root: {settings.archive.root_path}")
    logger.info(
        f"Rotation window: {settings.archive.window_ms}ms, "
        f"hand-off capacity: {settings.archive.handoff_capacity}"
    )

    _retrieval_engine = RetrievalEngine(settings.archive.root_path)

    yield

    logger.info("Shutting down gracefully...")
    if len(_registry):
        logger.info(f"Cancelling {len(_registry)} active ingestion sessions")
        _registry.cancel_all()
        timeout = settings.server.shutdown_timeout_seconds
        if not await _registry.wait_idle(timeout):
            logger.warning(
                f"{len(_registry)} ingestion sessions still active after {timeout}s"
            )
    _retrieval_engine = None
    logger.info("Shutdown complete")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="mjpeg-service",
    description="Live MJPEG ingestion with a time-windowed frame archive",
    version=settings.service.version,
    lifespan=lifespan,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.info(f"Incoming request: Method={request.method}, Path={request.url.path}")
    return await call_next(request)


# =============================================================================
# HTTP Endpoints
# =============================================================================

@app.get("/health")
async def health() -> JSONResponse:
    """Liveness probe. Always returns 200 if the service is running."""
    return JSONResponse({"status": "ok"})


@app.get("/metrics")
async def metrics() -> JSONResponse:
    """Active ingestion sessions and their counters."""
    return JSONResponse({
        "uptime_seconds": round(time.time() - _startup_time, 1),
        "active_streams": len(_registry),
        "window_ms": settings.archive.window_ms,
        "handoff_capacity": settings.archive.handoff_capacity,
        "transcoder_enabled": settings.transcoder.enabled,
        "streams": _registry.summaries(),
    })


@app.post("/stream/{stream_name}")
async def ingest_stream(stream_name: str, request: Request) -> JSONResponse:
    """
    Ingest a streaming multipart upload of timestamped JPEG frames.

    Each part must carry an X-Client-Timestamp header (milliseconds).
    The response is sent once the upload ends.
    """
    try:
        validate_stream_name(stream_name)
    except InvalidStreamName as e:
        return JSONResponse({"error": str(e)}, status_code=400)

    content_type = request.headers.get("content-type")
    try:
        parse_boundary(content_type)
    except FrameSourceError:
        return JSONResponse(
            {"error": "invalid Content-Type, must be multipart/*"},
            status_code=400,
        )

    session = create_session(stream_name)
    try:
        _registry.register(session)
    except StreamBusyError as e:
        return JSONResponse({"error": str(e)}, status_code=409)

    try:
        try:
            await asyncio.to_thread(session.prepare)
        except OSError as e:
            logger.error(f"Failed to prepare directories for {stream_name}: {e}")
            return JSONResponse(
                {"error": "could not prepare stream directories"},
                status_code=500,
            )

        try:
            summary = await session.run(
                iter_frame_parts(content_type, _body_chunks(request))
            )
        except TranscoderError as e:
            logger.error(f"Failed to start transcoder for {stream_name}: {e}")
            return JSONResponse({"error": "failed to start ffmpeg"}, status_code=500)
    finally:
        _registry.unregister(session)

    return JSONResponse({"status": "ok", **summary})


@app.get("/image/{stream_name}/{timestamp}")
def get_image(stream_name: str, timestamp: str) -> Response:
    """
    Return the latest archived frame at or before `timestamp` (ms).

    Runs in the threadpool; segment scans are blocking file reads.
    """
    try:
        target_ms = parse_timestamp_ms(timestamp)
    except FrameParseError:
        return JSONResponse({"error": "Invalid timestamp format"}, status_code=400)

    try:
        data = get_retrieval_engine().find_frame(stream_name, target_ms)
    except InvalidStreamName as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    except RetrievalError as e:
        return JSONResponse({"error": str(e)}, status_code=500)

    if data is None:
        return JSONResponse(
            {"error": "No image found in archive matching or preceding the timestamp"},
            status_code=404,
        )

    return Response(content=data, media_type="image/jpeg")


# =============================================================================
# Main Entry Point
# =============================================================================

def run() -> None:
    """Run the service with uvicorn."""
    import uvicorn

    uvicorn.run(
        "mjpeg_service.main:app",
        host=settings.server.host,
        port=settings.server.port,
        reload=False,
    )


if __name__ == "__main__":
    run()
