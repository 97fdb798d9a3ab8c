"""Shared fixtures for mirrorfetch tests."""

import asyncio
import errno
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

from mirrorfetch.config import Config
from mirrorfetch.errors import SourceError
from mirrorfetch.http_client import FetchStream, Fetcher


@dataclass
class FakeSource:
    """Scripted behaviour of one location."""
    data: bytes = b""
    delay: float = 0.0
    fail_after: Optional[int] = None
    declared_total: Optional[int] = -1
    error: Optional[Exception] = None
    hang_after_first_chunk: bool = False
    on_open: Optional[Callable[[], None]] = None


class FakeFetcher(Fetcher):
    """In-memory fetcher recording calls and concurrent open streams."""

    def __init__(self, sources: Dict[str, FakeSource], chunk_size: int = 4):
        self.sources = sources
        self.chunk_size = chunk_size
        self.calls: List[str] = []
        self.active = 0
        self.max_active = 0

    async def _chunks(self, source: FakeSource):
        sent = 0
        for i in range(0, len(source.data), self.chunk_size):
            if source.delay:
                await asyncio.sleep(source.delay)
            if source.fail_after is not None and sent >= source.fail_after:
                raise SourceError("connection reset by peer")
            chunk = source.data[i:i + self.chunk_size]
            sent += len(chunk)
            yield chunk
            if source.hang_after_first_chunk:
                await asyncio.Event().wait()

    @asynccontextmanager
    async def open(self, location: str):
        self.calls.append(location)
        source = self.sources.get(location)
        if source is None:
            raise SourceError(f"Cannot reach {location}")

        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if source.on_open is not None:
                source.on_open()
            if source.error is not None:
                raise source.error
            total = len(source.data) if source.declared_total == -1 else source.declared_total
            yield FetchStream(total=total, chunks=self._chunks(source))
        finally:
            self.active -= 1


@pytest.fixture
def config(tmp_path):
    """Config downloading into a temporary directory."""
    config = Config()
    config.downloader.download_dir = str(tmp_path / "downloads")
    config.downloader.fsync = False
    config.http.retry_backoff_s = 0
    return config


@pytest.fixture
def download_dir(config):
    return Path(config.downloader.download_dir)


@pytest.fixture
def staging_dir(config):
    path = config.downloader.resolved_staging_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


class FullDiskFile:
    """File wrapper whose writes fail as on a full disk."""

    def __init__(self, f):
        self._f = f

    def write(self, data):
        raise OSError(errno.ENOSPC, "No space left on device")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self._f.close()

    def __getattr__(self, name):
        return getattr(self._f, name)


def open_on_full_disk(path, mode):
    return FullDiskFile(open(path, mode))
