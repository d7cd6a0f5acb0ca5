"""
ffmpeg HLS Transcoder
=====================

Feeds the live MJPEG stream to an ffmpeg subprocess producing an HLS
playlist.

Output:
    <hls_dir>/playlist.m3u8
    <hls_dir>/segment000.ts, segment001.ts, ...

Design Rules:
    - Input is raw concatenated JPEGs on stdin (no extra framing)
    - Closing stdin is the end-of-input signal; ffmpeg then exits
    - Encoding itself is entirely ffmpeg's; nothing is re-implemented here
"""

import asyncio
import logging
from pathlib import Path
from typing import List, Optional, Union

from mjpeg_service.errors import TranscoderError


logger = logging.getLogger(__name__)


class FfmpegTranscoder:
    """
    ffmpeg subprocess wrapper implementing TranscoderSink.

    Attributes:
        output_dir: Directory receiving the playlist and .ts segments
        returncode: ffmpeg exit status once it has exited

    Example:
        transcoder = FfmpegTranscoder("/mnt/nfs/streams/hls/camera_0")
        await transcoder.start()
        await transcoder.write(jpeg_bytes)
        await transcoder.close()
    """

    def __init__(
        self,
        output_dir: Union[str, Path],
        ffmpeg_path: str = "ffmpeg",
        framerate: int = 5,
        crf: int = 23,
        gop: int = 10,
        hls_time: int = 2,
        hls_list_size: int = 5,
        verbose: bool = False,
        stop_timeout: float = 5.0,
    ) -> None:
        self.output_dir = Path(output_dir)
        self.ffmpeg_path = ffmpeg_path
        self.framerate = framerate
        self.crf = crf
        self.gop = gop
        self.hls_time = hls_time
        self.hls_list_size = hls_list_size
        self.verbose = verbose
        self.stop_timeout = stop_timeout

        self._process: Optional[asyncio.subprocess.Process] = None

    @property
    def returncode(self) -> Optional[int]:
        return self._process.returncode if self._process else None

    @property
    def running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    def build_command(self) -> List[str]:
        """Build the ffmpeg argument list for MJPEG stdin -> HLS."""
        cmd = [self.ffmpeg_path]
        if not self.verbose:
            cmd.extend(["-loglevel", "error"])

        cmd.extend([
            "-f", "mjpeg",
            "-framerate", str(self.framerate),
            "-i", "-",
            "-c:v", "libx264",
            "-preset", "veryfast",
            "-tune", "zerolatency",
            "-crf", str(self.crf),
            "-g", str(self.gop),
            "-hls_time", str(self.hls_time),
            "-hls_list_size", str(self.hls_list_size),
            "-hls_flags", "delete_segments",
            "-flush_packets", "1",
            "-hls_segment_filename", str(self.output_dir / "segment%03d.ts"),
            str(self.output_dir / "playlist.m3u8"),
        ])
        return cmd

    async def start(self) -> None:
        """
        Spawn ffmpeg with a stdin pipe.

        Raises:
            TranscoderError: If ffmpeg is already running or cannot be started
        """
        if self._process is not None:
            raise TranscoderError("Transcoder already running")

        cmd = self.build_command()
        logger.info(f"Starting ffmpeg: {' '.join(cmd)}")
        try:
            self._process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error(f"Failed to start ffmpeg: {e}")
            raise TranscoderError(f"failed to start ffmpeg: {e}") from e

    async def write(self, data: bytes) -> None:
        """
        Write one JPEG to ffmpeg's stdin, waiting for the pipe to drain.

        Raises:
            TranscoderError: If ffmpeg is not running or stdin is closed
        """
        if self._process is None or self._process.stdin is None:
            raise TranscoderError("Transcoder not started")
        stdin = self._process.stdin
        if stdin.is_closing():
            raise TranscoderError("ffmpeg stdin is closed")

        try:
            stdin.write(data)
            await stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise TranscoderError(f"error writing frame to ffmpeg: {e}") from e

    async def close(self) -> Optional[int]:
        """
        Close stdin and wait for ffmpeg to exit.

        ffmpeg is killed if it does not exit within stop_timeout.

        Returns:
            ffmpeg exit status, or None if it was never started
        """
        if self._process is None:
            return None

        stdin = self._process.stdin
        if stdin is not None and not stdin.is_closing():
            stdin.close()
            try:
                await stdin.wait_closed()
            except (BrokenPipeError, ConnectionResetError):
                pass

        try:
            await asyncio.wait_for(self._process.wait(), timeout=self.stop_timeout)
        except asyncio.TimeoutError:
            logger.warning("ffmpeg didn't exit after stdin closed, killing...")
            await self.abort()

        if self._process.returncode:
            logger.warning(f"ffmpeg command finished with error: exit status {self._process.returncode}")
        return self._process.returncode

    async def abort(self) -> None:
        """Kill ffmpeg immediately (session cancelled)."""
        if self._process is None or self._process.returncode is not None:
            return
        try:
            self._process.kill()
        except ProcessLookupError:
            pass
        await self._process.wait()
