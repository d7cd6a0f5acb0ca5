#!/usr/bin/env python3
"""
Frame Push Script
=================

Standalone script to exercise a running mjpeg-service.

This script:
    1. Streams synthetic JPEG frames to POST /stream/{name} (chunked)
    2. Paces them at a configurable frame rate
    3. Fetches one frame back via GET /image/{name}/{timestamp}
    4. Reports the upload summary returned by the service

Prerequisites:
    - mjpeg-service must be running at the configured URL
    - Synthetic frames are not decodable: run the service with
      MJPEG_TRANSCODER_ENABLED=false
    - Install dependencies: pip install -e .

Usage:
    python scripts/push_frames.py --frames 50 --fps 5
    python scripts/push_frames.py --url http://localhost:8080 --stream camera_0
"""

import argparse
import logging
import os
import sys
import time
from typing import Iterator, List

import requests


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger(__name__)


BOUNDARY = "mjpegframe"


def synthetic_jpeg(index: int) -> bytes:
    """SOI + marker-free body + EOI; enough for the archive, not for ffmpeg."""
    return b"\xff\xd8" + f"synthetic-frame-{index:06d}".encode() + b"\xff\xd9"


def multipart_body(timestamps: List[int], fps: float) -> Iterator[bytes]:
    """Yield one multipart part per frame, sleeping between frames."""
    interval = 1.0 / fps if fps > 0 else 0.0
    for index, ts in enumerate(timestamps):
        yield (
            f"--{BOUNDARY}\r\n"
            f"Content-Type: image/jpeg\r\n"
            f"X-Client-Timestamp: {ts}\r\n\r\n"
        ).encode() + synthetic_jpeg(index) + b"\r\n"
        if interval:
            time.sleep(interval)
    yield f"--{BOUNDARY}--\r\n".encode()


def run_push(url: str, stream: str, frames: int, fps: float) -> bool:
    """
    Push frames, then read one back.

    Returns:
        True if the frame fetched back matches what was sent
    """
    start_ms = int(time.time() * 1000)
    step_ms = int(1000 / fps) if fps > 0 else 200
    timestamps = [start_ms + i * step_ms for i in range(frames)]

    logger.info("=" * 60)
    logger.info("Frame Push")
    logger.info("=" * 60)
    logger.info(f"Service URL: {url}")
    logger.info(f"Stream: {stream}")
    logger.info(f"Frames: {frames} at {fps} fps")
    logger.info("=" * 60)

    try:
        r = requests.post(
            f"{url}/stream/{stream}",
            data=multipart_body(timestamps, fps),
            headers={"Content-Type": f"multipart/x-mixed-replace; boundary={BOUNDARY}"},
            timeout=frames / max(fps, 0.1) + 30,
        )
    except requests.RequestException as e:
        logger.error(f"Upload failed: {e}")
        return False

    if r.status_code != 200:
        logger.error(f"Upload rejected: {r.status_code} {r.text}")
        return False

    summary = r.json()
    logger.info(f"Frames written: {summary['archive']['frames_written']}")
    logger.info(f"Segments created: {summary['archive']['segments_created']}")
    logger.info(f"Archive drops: {summary['dispatch']['archive_drops']}")
    logger.info(f"Transcoder exit code: {summary['transcoder_returncode']}")

    if not timestamps:
        return True

    probe_index = len(timestamps) // 2
    probe_ts = timestamps[probe_index] + step_ms // 2
    r = requests.get(f"{url}/image/{stream}/{probe_ts}", timeout=5)
    if r.status_code != 200:
        logger.error(f"Lookup at {probe_ts} failed: {r.status_code} {r.text}")
        return False

    if r.content == synthetic_jpeg(probe_index):
        logger.info(f"✅ Lookup at {probe_ts} returned frame {probe_index}")
        return True

    logger.error(f"❌ Lookup at {probe_ts} returned unexpected bytes")
    return False


def main():
    parser = argparse.ArgumentParser(
        description="Push synthetic MJPEG frames to mjpeg-service"
    )
    parser.add_argument(
        "--url",
        type=str,
        default=os.environ.get("MJPEG_SERVICE_URL", "http://localhost:8080"),
        help="Base URL of mjpeg-service",
    )
    parser.add_argument(
        "--stream",
        type=str,
        default="camera_0",
        help="Stream name (default: camera_0)",
    )
    parser.add_argument(
        "--frames",
        type=int,
        default=50,
        help="Number of frames to send (default: 50)",
    )
    parser.add_argument(
        "--fps",
        type=float,
        default=5.0,
        help="Send rate in frames per second (default: 5)",
    )

    args = parser.parse_args()

    ok = run_push(
        url=args.url.rstrip("/"),
        stream=args.stream,
        frames=args.frames,
        fps=args.fps,
    )
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
