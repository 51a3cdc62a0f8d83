"""HTTP transport for the assistant API.

``send`` performs one JSON request with bounded retries; ``stream`` opens a
chunked response and yields its raw lines for the event stream decoder.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import TypeVar

import httpx

from .api import APIRequest
from .cancellation import CancellationToken, check
from .config import MAX_ATTEMPTS, REQUEST_TIMEOUT, RETRY_DELAY
from .errors import (
    DecodingFailed,
    InvalidResponse,
    InvalidURL,
    MaxRetriesExceeded,
    NetworkUnavailable,
    RequestFailed,
    TransportError,
)
from .network import NetworkMonitor

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int = MAX_ATTEMPTS,
    base_delay: float = RETRY_DELAY,
    is_connected: Callable[[], bool] = lambda: True,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    token: CancellationToken | None = None,
) -> T:
    """Run *operation* up to *attempts* times, sleeping ``attempt × base_delay`` between tries.

    Only retryable transport errors are retried. A confirmed disconnect stops
    the loop with NetworkUnavailable; exhausting the budget raises
    MaxRetriesExceeded carrying the last concrete error.
    """
    last_error: TransportError | None = None
    for attempt in range(1, attempts + 1):
        check(token)
        try:
            return await operation()
        except TransportError as e:
            if not e.retryable:
                raise
            last_error = e
            logger.warning("Attempt %d/%d failed: %s", attempt, attempts, e)

        if not is_connected():
            raise NetworkUnavailable() from last_error
        if attempt < attempts:
            if token is not None:
                await token.sleep(base_delay * attempt, sleep)
            else:
                await sleep(base_delay * attempt)

    raise MaxRetriesExceeded(attempts, last_error) from last_error


class TransportClient:
    """Sends APIRequests to a fixed base URL with merged default headers."""

    def __init__(
        self,
        base_url: str,
        default_headers: dict[str, str],
        monitor: NetworkMonitor,
        *,
        timeout: float = REQUEST_TIMEOUT,
        max_attempts: int = MAX_ATTEMPTS,
        retry_delay: float = RETRY_DELAY,
        http_client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.base_url = base_url.rstrip("/")
        self.default_headers = dict(default_headers)
        self.monitor = monitor
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self._client = http_client or httpx.AsyncClient()
        self._sleep = sleep

    def build_url(self, request: APIRequest) -> httpx.URL:
        try:
            url = httpx.URL(self.base_url + request.path, params=request.query or None)
        except (httpx.InvalidURL, TypeError, ValueError) as e:
            raise InvalidURL(f"Invalid URL for {request.path}: {e}") from e
        if url.scheme not in ("http", "https") or not url.host:
            raise InvalidURL(f"Invalid URL: {url}")
        return url

    def build_headers(self, request: APIRequest) -> dict[str, str]:
        """Default headers overlaid with request headers; the request wins."""
        return {**self.default_headers, **request.headers}

    async def send(self, request: APIRequest, token: CancellationToken | None = None) -> dict:
        """Perform *request* and return its decoded JSON body."""
        if not self.monitor.is_connected:
            raise NetworkUnavailable()

        url = self.build_url(request)
        return await retry_async(
            lambda: self._perform(request, url),
            attempts=self.max_attempts,
            base_delay=self.retry_delay,
            is_connected=lambda: self.monitor.is_connected,
            sleep=self._sleep,
            token=token,
        )

    async def _perform(self, request: APIRequest, url: httpx.URL) -> dict:
        logger.debug("%s %s", request.method, url)
        try:
            response = await self._client.request(
                request.method,
                url,
                headers=self.build_headers(request),
                json=request.payload(),
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            raise RequestFailed(f"{request.method} {request.path} failed: {e}") from e

        if not response.is_success:
            raise InvalidResponse(
                f"{request.method} {request.path} returned {response.status_code}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise DecodingFailed(f"{request.method} {request.path} returned invalid JSON") from e
        if not isinstance(data, dict):
            raise DecodingFailed(f"{request.method} {request.path} returned a non-object body")
        return data

    async def stream(
        self, request: APIRequest, token: CancellationToken | None = None
    ) -> AsyncIterator[str]:
        """Yield raw response lines of a streaming request.

        Not retried: a partly consumed stream cannot be replayed without
        duplicating deltas. The stream has no read timeout.
        """
        if not self.monitor.is_connected:
            raise NetworkUnavailable()
        check(token)

        url = self.build_url(request)
        logger.debug("%s %s (stream)", request.method, url)
        try:
            async with self._client.stream(
                request.method,
                url,
                headers=self.build_headers(request),
                json=request.payload(),
                timeout=httpx.Timeout(self.timeout, read=None),
            ) as response:
                if not response.is_success:
                    await response.aread()
                    raise InvalidResponse(
                        f"{request.method} {request.path} returned {response.status_code}",
                        status_code=response.status_code,
                    )
                async for line in response.aiter_lines():
                    check(token)
                    if not self.monitor.is_connected:
                        raise NetworkUnavailable()
                    yield line
        except httpx.HTTPError as e:
            raise RequestFailed(f"{request.method} {request.path} stream failed: {e}") from e

    async def aclose(self) -> None:
        await self._client.aclose()
