"""
mjpeg_service Configuration
===========================

This module handles configuration loading for the ingestion service.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    MJPEG_ARCHIVE_ROOT       -> archive.root_path
    MJPEG_WINDOW_MS          -> archive.window_ms
    MJPEG_HANDOFF_CAPACITY   -> archive.handoff_capacity
    MJPEG_HLS_ROOT           -> transcoder.hls_root
    MJPEG_FFMPEG_PATH        -> transcoder.ffmpeg_path
    MJPEG_TRANSCODER_ENABLED -> transcoder.enabled
    MJPEG_VERBOSE            -> transcoder.verbose
    MJPEG_PORT               -> server.port
    MJPEG_LOG_LEVEL          -> logging.level
    PORT                     -> server.port (Cloud Run)

Example:
    from mjpeg_service.config import settings

    print(settings.archive.root_path)
    print(settings.archive.window_ms)
"""

import os
import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class ServiceConfig(BaseModel):
    """Service identification configuration."""

    name: str = Field(default="mjpeg-service", description="Service name")
    version: str = Field(default="v0.1.0", description="Service version")


class ArchiveConfig(BaseModel):
    """Frame archive configuration."""

    root_path: str = Field(
        default="/mnt/nfs/streams/jpeg",
        description="Directory holding one sub-directory of segments per stream",
    )
    window_ms: int = Field(
        default=60000,
        ge=1,
        description="Segment rotation window in milliseconds",
    )
    handoff_capacity: int = Field(
        default=300,
        ge=1,
        description="Frames buffered between dispatch and archive writer (~60s at 5fps)",
    )


class TranscoderConfig(BaseModel):
    """ffmpeg HLS transcoder configuration."""

    enabled: bool = Field(
        default=True,
        description="Spawn ffmpeg for the live HLS path",
    )
    hls_root: str = Field(
        default="/mnt/nfs/streams/hls",
        description="Directory holding one HLS playlist directory per stream",
    )
    ffmpeg_path: str = Field(default="ffmpeg", description="ffmpeg binary")
    framerate: int = Field(default=5, ge=1, le=120, description="Input frame rate")
    crf: int = Field(default=23, ge=0, le=51, description="x264 constant rate factor")
    gop: int = Field(default=10, ge=1, description="Keyframe interval in frames")
    hls_time: int = Field(default=2, ge=1, description="HLS segment duration (seconds)")
    hls_list_size: int = Field(default=5, ge=1, description="Segments kept in playlist")
    verbose: bool = Field(default=False, description="Enable verbose ffmpeg logs")
    stop_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Grace period for ffmpeg to exit after stdin closes",
    )


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8080, ge=1, le=65535, description="Bind port")
    shutdown_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Time allowed for active sessions to finalize on shutdown",
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="json", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for mjpeg_service.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    service: ServiceConfig = Field(default_factory=ServiceConfig)
    archive: ArchiveConfig = Field(default_factory=ArchiveConfig)
    transcoder: TranscoderConfig = Field(default_factory=TranscoderConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to config.yaml. If None, searches common locations.

    Returns:
        Settings: Loaded configuration
    """
    if config_path is None:
        if env_path := os.environ.get("MJPEG_CONFIG"):
            config_path = env_path
        else:
            search_paths = [
                Path("config.yaml"),
                Path("config.yml"),
                Path("/app/config.yaml"),
            ]
            for path in search_paths:
                if path.exists():
                    config_path = str(path)
                    break

    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.warning("No config file found, using defaults and environment variables")

    _apply_env_overrides(config_data)

    return Settings.model_validate(config_data)


def _env_flag(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Archive settings
    if env_root := os.environ.get("MJPEG_ARCHIVE_ROOT"):
        config_data.setdefault("archive", {})["root_path"] = env_root
    if env_window := os.environ.get("MJPEG_WINDOW_MS"):
        config_data.setdefault("archive", {})["window_ms"] = int(env_window)
    if env_capacity := os.environ.get("MJPEG_HANDOFF_CAPACITY"):
        config_data.setdefault("archive", {})["handoff_capacity"] = int(env_capacity)

    # Transcoder settings
    if env_hls := os.environ.get("MJPEG_HLS_ROOT"):
        config_data.setdefault("transcoder", {})["hls_root"] = env_hls
    if env_ffmpeg := os.environ.get("MJPEG_FFMPEG_PATH"):
        config_data.setdefault("transcoder", {})["ffmpeg_path"] = env_ffmpeg
    if env_enabled := os.environ.get("MJPEG_TRANSCODER_ENABLED"):
        config_data.setdefault("transcoder", {})["enabled"] = _env_flag(env_enabled)
    if env_verbose := os.environ.get("MJPEG_VERBOSE"):
        config_data.setdefault("transcoder", {})["verbose"] = _env_flag(env_verbose)

    # Server settings (Cloud Run uses PORT env var)
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    elif env_port := os.environ.get("MJPEG_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)

    # Logging settings
    if env_log := os.environ.get("MJPEG_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


# =============================================================================
# Global Settings Instance
# =============================================================================

# Global settings instance - loaded on import
settings = load_config()
setup_logging(settings)
