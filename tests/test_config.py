"""
Configuration Tests
===================

YAML loading, defaults and environment overrides.
"""

import pytest
from pydantic import ValidationError

from mjpeg_service.config import load_config


ENV_VARS = [
    "MJPEG_CONFIG",
    "MJPEG_ARCHIVE_ROOT",
    "MJPEG_WINDOW_MS",
    "MJPEG_HANDOFF_CAPACITY",
    "MJPEG_HLS_ROOT",
    "MJPEG_FFMPEG_PATH",
    "MJPEG_TRANSCODER_ENABLED",
    "MJPEG_VERBOSE",
    "MJPEG_PORT",
    "MJPEG_LOG_LEVEL",
    "PORT",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestLoadConfig:
    """Tests for load_config."""

    def test_defaults(self, tmp_path):
        settings = load_config(str(tmp_path / "missing.yaml"))

        assert settings.archive.root_path == "/mnt/nfs/streams/jpeg"
        assert settings.archive.window_ms == 60000
        assert settings.archive.handoff_capacity == 300
        assert settings.transcoder.hls_root == "/mnt/nfs/streams/hls"
        assert settings.server.port == 8080

    def test_yaml_values(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "archive:\n"
            "  root_path: /data/jpeg\n"
            "  window_ms: 30000\n"
            "transcoder:\n"
            "  enabled: false\n"
            "  framerate: 10\n"
        )

        settings = load_config(str(path))

        assert settings.archive.root_path == "/data/jpeg"
        assert settings.archive.window_ms == 30000
        assert settings.transcoder.enabled is False
        assert settings.transcoder.framerate == 10

    def test_env_overrides_yaml(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text("archive:\n  root_path: /data/jpeg\n")
        monkeypatch.setenv("MJPEG_ARCHIVE_ROOT", "/override/jpeg")
        monkeypatch.setenv("MJPEG_WINDOW_MS", "5000")
        monkeypatch.setenv("MJPEG_TRANSCODER_ENABLED", "no")
        monkeypatch.setenv("MJPEG_VERBOSE", "true")
        monkeypatch.setenv("MJPEG_PORT", "9000")

        settings = load_config(str(path))

        assert settings.archive.root_path == "/override/jpeg"
        assert settings.archive.window_ms == 5000
        assert settings.transcoder.enabled is False
        assert settings.transcoder.verbose is True
        assert settings.server.port == 9000

    def test_port_takes_precedence(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PORT", "7000")
        monkeypatch.setenv("MJPEG_PORT", "9000")

        settings = load_config(str(tmp_path / "missing.yaml"))

        assert settings.server.port == 7000

    def test_config_path_from_env(self, tmp_path, monkeypatch):
        path = tmp_path / "custom.yaml"
        path.write_text("archive:\n  handoff_capacity: 42\n")
        monkeypatch.setenv("MJPEG_CONFIG", str(path))

        settings = load_config()

        assert settings.archive.handoff_capacity == 42

    def test_invalid_window_rejected(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("archive:\n  window_ms: 0\n")

        with pytest.raises(ValidationError):
            load_config(str(path))
