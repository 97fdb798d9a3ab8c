"""Utility functions for mirrorfetch."""

import hashlib
import json
import logging
import os
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional

import httpx
from rich.logging import RichHandler

from .config import LoggingConfig


def setup_logging(config: Optional[LoggingConfig] = None) -> None:
    """Configure the package logger with a rich console handler."""
    config = config or LoggingConfig()
    logger = logging.getLogger("mirrorfetch")
    logger.setLevel(config.level)
    logger.handlers.clear()
    logger.propagate = False

    logger.addHandler(RichHandler(rich_tracebacks=True, show_path=False))

    if config.file:
        ensure_directory(Path(config.file).parent)
        file_handler = logging.FileHandler(config.file, encoding='utf-8')
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        logger.addHandler(file_handler)


def calculate_sha256(file_path: Path) -> str:
    """Calculate SHA256 hash of a file in streaming mode."""
    sha256_hash = hashlib.sha256()

    with open(file_path, 'rb') as f:
        for chunk in iter(lambda: f.read(65536), b""):
            sha256_hash.update(chunk)

    return sha256_hash.hexdigest()


def append_jsonl(file_path: Path, record: Dict[str, Any]) -> None:
    """Append a record to a JSONL file."""
    line = json.dumps(record, ensure_ascii=False) + '\n'

    file_path.parent.mkdir(parents=True, exist_ok=True)

    with open(file_path, 'a', encoding='utf-8') as f:
        f.write(line)
        f.flush()
        os.fsync(f.fileno())


def read_jsonl(file_path: Path) -> Generator[Dict[str, Any], None, None]:
    """Read records from a JSONL file."""
    if not file_path.exists():
        return

    with open(file_path, 'r', encoding='utf-8') as f:
        for line in f:
            line = line.strip()
            if line:
                try:
                    yield json.loads(line)
                except json.JSONDecodeError:
                    continue


def load_jsonl(file_path: Path) -> List[Dict[str, Any]]:
    """Load all records from a JSONL file."""
    return list(read_jsonl(file_path))


def format_bytes(bytes_count: float) -> str:
    """Format bytes count in human readable format."""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if bytes_count < 1024.0:
            return f"{bytes_count:.1f} {unit}"
        bytes_count /= 1024.0
    return f"{bytes_count:.1f} PB"


def format_duration(seconds: float) -> str:
    """Format duration in human readable format."""
    if seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        minutes = seconds / 60
        return f"{minutes:.1f}m"
    else:
        hours = seconds / 3600
        return f"{hours:.1f}h"


def get_timestamp() -> str:
    """Get current UTC timestamp in ISO format."""
    return datetime.now(timezone.utc).strftime('%Y-%m-%dT%H:%M:%S.%fZ')


def file_name_from_url(url: str) -> str:
    """Return the last path segment of a URL, or '' when there is none."""
    if not url:
        return ''

    try:
        parsed = httpx.URL(url)
    except (httpx.InvalidURL, TypeError):
        return ''

    if not parsed.scheme or not parsed.host:
        return ''

    return parsed.path.rsplit('/', 1)[-1]


def ensure_directory(path: Path) -> None:
    """Ensure directory exists, create if necessary."""
    path.mkdir(parents=True, exist_ok=True)


def fsync_file(f) -> None:
    """Flush a file object and force its data to disk where supported."""
    f.flush()
    if hasattr(os, 'fsync'):
        os.fsync(f.fileno())


def copy_exclusive(src: Path, dest: Path) -> None:
    """Copy src to dest, failing with FileExistsError if dest exists."""
    with open(src, 'rb') as fin:
        with open(dest, 'xb') as fout:
            try:
                shutil.copyfileobj(fin, fout)
                fsync_file(fout)
            except BaseException:
                fout.close()
                dest.unlink(missing_ok=True)
                raise
