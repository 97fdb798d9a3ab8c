"""Tests for configuration management."""

import tempfile
from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from mirrorfetch import __version__
from mirrorfetch.config import (
    Config, DownloaderConfig, LoggingConfig, default_config_path,
    get_default_config, load_config, save_config
)


class TestConfig:
    """Test configuration functionality."""

    def test_default_config(self):
        """Test default configuration creation."""
        config = get_default_config()

        assert config.downloader.download_dir == "."
        assert config.downloader.max_concurrency == 4
        assert config.downloader.max_attempts is None
        assert config.downloader.attempt_timeout_s is None
        assert config.http.connect_retries == 2
        assert config.logging.level == "INFO"

    def test_config_validation(self):
        """Test configuration validation."""
        config_data = {
            "downloader": {
                "download_dir": "/test",
                "max_concurrency": 8,
            },
            "http": {"timeout_read_s": 5},
        }
        config = Config(**config_data)
        assert config.downloader.download_dir == "/test"
        assert config.downloader.max_concurrency == 8
        assert config.http.timeout_read_s == 5

    def test_rejects_zero_concurrency(self):
        with pytest.raises(ValidationError):
            DownloaderConfig(max_concurrency=0)

    def test_config_default_headers(self):
        """Test default HTTP headers."""
        config = Config()
        assert config.http.headers["User-Agent"] == f"mirrorfetch/{__version__}"
        assert config.http.headers["Accept-Encoding"] == "identity"

    def test_custom_headers_kept(self):
        config = Config(http={"headers": {"User-Agent": "custom"}})
        assert config.http.headers == {"User-Agent": "custom"}

    def test_staging_dir_default(self):
        """Staging lives inside the download directory unless configured."""
        config = DownloaderConfig(download_dir="/data")
        assert config.resolved_staging_dir() == Path("/data/.mirrorfetch-staging")

        config = DownloaderConfig(download_dir="/data", staging_dir="/scratch")
        assert config.resolved_staging_dir() == Path("/scratch")

    def test_log_level_normalized(self):
        assert LoggingConfig(level="debug").level == "DEBUG"
        with pytest.raises(ValidationError):
            LoggingConfig(level="chatty")


class TestConfigIO:
    """Test configuration file I/O."""

    def test_save_load_config(self):
        """Test saving and loading configuration."""
        with tempfile.TemporaryDirectory() as tmpdir:
            config_path = Path(tmpdir) / "test_config.yaml"

            config = get_default_config()
            config.downloader.download_dir = "/test/root"
            config.downloader.max_attempts = 3

            save_config(config, str(config_path))
            loaded_config = load_config(str(config_path))

            assert loaded_config.downloader.download_dir == "/test/root"
            assert loaded_config.downloader.max_attempts == 3
            assert loaded_config == config

    def test_load_nonexistent_config(self):
        """Test loading nonexistent configuration file."""
        with tempfile.TemporaryDirectory() as tmpdir:
            config_path = Path(tmpdir) / "nonexistent.yaml"

            config = load_config(str(config_path))

            assert config == get_default_config()

    def test_load_empty_config(self):
        """Test loading empty configuration file."""
        with tempfile.TemporaryDirectory() as tmpdir:
            config_path = Path(tmpdir) / "empty.yaml"
            config_path.write_text("")

            config = load_config(str(config_path))

            assert config.downloader.download_dir == "."

    def test_config_yaml_format(self):
        """Test that saved config is valid YAML."""
        with tempfile.TemporaryDirectory() as tmpdir:
            config_path = Path(tmpdir) / "test.yaml"

            save_config(get_default_config(), str(config_path))

            with open(config_path, 'r') as f:
                data = yaml.safe_load(f)

            assert data is not None
            assert "http" in data
            assert "downloader" in data
            assert "logging" in data
            assert "staging_dir" not in data["downloader"]

    def test_config_path_from_environment(self, tmp_path, monkeypatch):
        config_path = tmp_path / "env.yaml"
        config_path.write_text("downloader:\n  max_concurrency: 2\n")
        monkeypatch.setenv("MIRRORFETCH_CONFIG", str(config_path))

        assert default_config_path() == config_path
        assert load_config().downloader.max_concurrency == 2

    def test_default_config_path(self, monkeypatch):
        monkeypatch.delenv("MIRRORFETCH_CONFIG", raising=False)
        assert default_config_path() == Path.home() / ".mirrorfetch" / "mirrorfetch.yaml"
