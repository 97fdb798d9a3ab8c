"""Tests for the HTTP fetcher."""

import httpx
import pytest

from mirrorfetch.config import Config
from mirrorfetch.errors import InvalidLocationError, SourceError
from mirrorfetch.http_client import HTTPFetcher


def make_fetcher(handler, **http_overrides):
    config = Config()
    config.http.retry_backoff_s = 0
    config.downloader.chunk_size_kb = 1
    for key, value in http_overrides.items():
        setattr(config.http, key, value)
    return HTTPFetcher(config, transport=httpx.MockTransport(handler))


async def read_all(fetcher, url):
    async with fetcher.open(url) as stream:
        body = b"".join([chunk async for chunk in stream.chunks])
    return stream.total, body


class TestHTTPFetcher:
    """Test streaming over HTTP."""

    @pytest.mark.asyncio
    async def test_streams_body(self):
        """The body is streamed with its declared length."""
        payload = b"z" * 5000
        fetcher = make_fetcher(lambda request: httpx.Response(200, content=payload))

        async with fetcher:
            total, body = await read_all(fetcher, "https://mirror.example.com/file.bin")

        assert total == 5000
        assert body == payload

    @pytest.mark.asyncio
    async def test_default_headers_sent(self):
        """Requests carry the configured headers."""
        seen = {}

        def handler(request):
            seen.update(request.headers)
            return httpx.Response(200, content=b"ok")

        async with make_fetcher(handler) as fetcher:
            await read_all(fetcher, "https://mirror.example.com/file.bin")

        assert seen["accept-encoding"] == "identity"
        assert seen["user-agent"].startswith("mirrorfetch/")

    @pytest.mark.asyncio
    async def test_http_error_is_source_error(self):
        """An error status is a failure of this mirror."""
        fetcher = make_fetcher(lambda request: httpx.Response(404, content=b"gone"))

        async with fetcher:
            with pytest.raises(SourceError, match="HTTP 404"):
                await read_all(fetcher, "https://mirror.example.com/file.bin")

    @pytest.mark.asyncio
    async def test_connect_error_retried_then_source_error(self):
        """Connection failures are retried, then reported as SourceError."""
        calls = []

        def handler(request):
            calls.append(request.url)
            raise httpx.ConnectError("connection refused", request=request)

        fetcher = make_fetcher(handler, connect_retries=2)

        async with fetcher:
            with pytest.raises(SourceError, match="Cannot reach"):
                await read_all(fetcher, "https://mirror.example.com/file.bin")

        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_connect_recovers(self):
        """A transient connection failure is absorbed by the retry."""
        calls = []

        def handler(request):
            calls.append(request.url)
            if len(calls) == 1:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, content=b"ok")

        async with make_fetcher(handler, connect_retries=1) as fetcher:
            total, body = await read_all(fetcher, "https://mirror.example.com/file.bin")

        assert body == b"ok"
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_read_timeout_is_source_error(self):
        """Timeouts are not retried by the fetcher but fail the mirror."""
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        async with make_fetcher(handler) as fetcher:
            with pytest.raises(SourceError):
                await read_all(fetcher, "https://mirror.example.com/file.bin")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("location", [
        "ftp://mirror.example.com/file.bin",
        "not a url",
        "",
        "file:///etc/passwd",
    ])
    async def test_invalid_locations(self, location):
        """Unsupported or malformed locations are rejected."""
        fetcher = make_fetcher(lambda request: httpx.Response(200, content=b"ok"))

        async with fetcher:
            with pytest.raises(InvalidLocationError):
                await read_all(fetcher, location)
