"""Transport used by the transfer worker to stream a location's content."""

import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

import httpx
from tenacity import (
    AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential
)

from .config import Config
from .errors import InvalidLocationError, SourceError

logger = logging.getLogger(__name__)


@dataclass
class FetchStream:
    """An open stream: the declared length, if any, and the body chunks."""
    total: Optional[int]
    chunks: AsyncIterator[bytes]


class Fetcher(ABC):
    """Opens byte streams for locations.

    Implementations raise `SourceError` for failures of the source that
    another mirror might not have, and `InvalidLocationError` for
    locations they cannot handle at all.
    """

    @abstractmethod
    def open(self, location: str):
        """Return an async context manager yielding a `FetchStream`."""

    async def close(self) -> None:
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


class HTTPFetcher(Fetcher):
    """HTTP(S) fetcher built on httpx, retrying connection setup with tenacity."""

    SCHEMES = ('http', 'https')

    def __init__(
        self,
        config: Config,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.chunk_size = config.downloader.chunk_size_kb * 1024

        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(
                connect=config.http.timeout_connect_s,
                read=config.http.timeout_read_s,
                write=config.http.timeout_read_s,
                pool=config.http.timeout_connect_s
            ),
            http2=config.http.http2,
            headers=config.http.headers,
            follow_redirects=config.http.follow_redirects,
            transport=transport,
        )

    def _build_request(self, location: str) -> httpx.Request:
        try:
            url = httpx.URL(location)
        except (httpx.InvalidURL, TypeError) as e:
            raise InvalidLocationError(f"Malformed location {location!r}: {e}") from e

        if url.scheme not in self.SCHEMES or not url.host:
            raise InvalidLocationError(f"Unsupported location {location!r}")

        return self.client.build_request("GET", url)

    async def _send(self, request: httpx.Request) -> httpx.Response:
        """Send with streaming, retrying only failures to establish a connection."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.config.http.connect_retries + 1),
            wait=wait_exponential(
                multiplier=self.config.http.retry_backoff_s,
                max=self.config.http.retry_backoff_max_s
            ),
            retry=retry_if_exception_type((httpx.ConnectError, httpx.ConnectTimeout)),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self.client.send(request, stream=True)

    async def _iter_body(self, response: httpx.Response) -> AsyncIterator[bytes]:
        try:
            async for chunk in response.aiter_bytes(self.chunk_size):
                yield chunk
        except (httpx.TransportError, httpx.DecodingError) as e:
            raise SourceError(f"Transfer from {response.url} interrupted: {e!r}") from e

    @staticmethod
    def _declared_length(response: httpx.Response) -> Optional[int]:
        # Content-Length counts encoded bytes; decoded bodies have another size
        if response.headers.get('content-encoding', 'identity') != 'identity':
            return None
        value = response.headers.get('content-length')
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            return None

    @asynccontextmanager
    async def open(self, location: str):
        request = self._build_request(location)

        try:
            response = await self._send(request)
        except httpx.UnsupportedProtocol as e:
            raise InvalidLocationError(f"Unsupported location {location!r}") from e
        except httpx.TransportError as e:
            raise SourceError(f"Cannot reach {location}: {e!r}") from e

        try:
            if response.is_error:
                raise SourceError(f"HTTP {response.status_code} from {location}")

            logger.debug("Streaming %s (%s bytes)", location,
                         response.headers.get('content-length', 'unknown'))
            yield FetchStream(total=self._declared_length(response),
                              chunks=self._iter_body(response))
        finally:
            await response.aclose()

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()
