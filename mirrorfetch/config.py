"""Configuration management for mirrorfetch."""

import os
from pathlib import Path
from typing import Dict, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from . import __version__

CONFIG_ENV_VAR = "MIRRORFETCH_CONFIG"
STAGING_DIR_NAME = ".mirrorfetch-staging"


class HttpConfig(BaseModel):
    """HTTP fetcher configuration."""

    timeout_connect_s: float = 10
    timeout_read_s: float = 60
    http2: bool = False
    follow_redirects: bool = True
    headers: Dict[str, str] = Field(default_factory=dict, validate_default=True)
    connect_retries: int = Field(default=2, ge=0)
    retry_backoff_s: float = Field(default=0.5, ge=0)
    retry_backoff_max_s: float = Field(default=5.0, ge=0)

    @field_validator('headers', mode='before')
    @classmethod
    def set_default_headers(cls, v):
        if not v:
            return {
                "User-Agent": f"mirrorfetch/{__version__}",
                "Accept": "*/*",
                # Byte counts must match Content-Length, so ask for the raw body
                "Accept-Encoding": "identity",
            }
        return v


class DownloaderConfig(BaseModel):
    """Download engine configuration."""

    download_dir: str = "."
    staging_dir: Optional[str] = None
    max_concurrency: int = Field(default=4, ge=1)
    max_attempts: Optional[int] = Field(default=None, ge=1)
    attempt_timeout_s: Optional[float] = Field(default=None, gt=0)
    chunk_size_kb: int = Field(default=64, ge=1)
    fsync: bool = True
    history_file: Optional[str] = None
    progress_timeout_s: float = Field(default=5.0, ge=0)

    def resolved_staging_dir(self) -> Path:
        """Staging directory, defaulting to a hidden folder in the download dir."""
        if self.staging_dir:
            return Path(self.staging_dir)
        return Path(self.download_dir) / STAGING_DIR_NAME


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    file: Optional[str] = None

    @field_validator('level')
    @classmethod
    def normalize_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return level


class Config(BaseModel):
    """Main configuration."""

    http: HttpConfig = Field(default_factory=HttpConfig)
    downloader: DownloaderConfig = Field(default_factory=DownloaderConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def default_config_path() -> Path:
    """Config file location, honouring the MIRRORFETCH_CONFIG variable."""
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    return Path.home() / ".mirrorfetch" / "mirrorfetch.yaml"


def load_config(config_path: Optional[str] = None) -> Config:
    """Load configuration from file or create default."""
    load_dotenv()

    config_path = Path(config_path) if config_path else default_config_path()

    if config_path.exists():
        with open(config_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    else:
        data = {}

    return Config(**data)


def save_config(config: Config, config_path: Optional[str] = None) -> None:
    """Save configuration to file."""
    config_path = Path(config_path) if config_path else default_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)

    data = config.model_dump(exclude_none=True)

    with open(config_path, 'w', encoding='utf-8') as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)


def get_default_config() -> Config:
    """Get default configuration."""
    return Config()
