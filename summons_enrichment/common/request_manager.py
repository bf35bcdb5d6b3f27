"""Request manager with retry and exponential backoff.

This module provides AsyncRequestManager, which owns the httpx client used
to fetch video pages and summons PDFs.

The request manager is responsible for:
- Maintaining the HTTP client (httpx.AsyncClient)
- Classifying failures as retryable or terminal
- Retrying retryable failures with capped exponential backoff

The retry algorithm uses exponential backoff::

    delay(attempt) = min(base_delay * 2^(attempt - 1), max_delay)

With the defaults (3 attempts, 1s base, 10s cap) a failing URL is tried at
t=0, t=1s and t=3s before the last error is raised.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from summons_enrichment.common.exceptions import (
    ClientErrorException,
    ConnectionDroppedException,
    RequestTimeoutException,
    ServerErrorException,
    TerminalRequestException,
    TransientException,
)
from summons_enrichment.data_types import FetchedResponse

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 1.0
DEFAULT_MAX_DELAY = 10.0

# Lower-cased fragments of transport error messages that mean the socket
# was dropped or never reached the server.
_RETRYABLE_MESSAGE_MARKERS = (
    "econnreset",
    "econnrefused",
    "enotfound",
    "etimedout",
    "eai_again",
    "socket hang up",
    "connection reset",
    "connection refused",
    "connection aborted",
    "broken pipe",
    "server disconnected",
    "network is unreachable",
    "name or service not known",
    "temporary failure in name resolution",
    "nodename nor servname provided",
)


def is_retryable(error: BaseException) -> bool:
    """Classify a fetch error as retryable (True) or terminal (False).

    Retryable: timeouts, refused/reset connections, name resolution
    failures, 5xx responses, and any error whose message says the socket
    was dropped or unreachable. Everything else, including every 4xx
    response, is terminal.

    Args:
        error: The exception raised by a fetch attempt.

    Returns:
        True if another attempt may succeed.
    """
    if isinstance(error, TransientException):
        return True
    if isinstance(error, TerminalRequestException):
        return False
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code >= 500
    if isinstance(
        error,
        (
            httpx.TimeoutException,
            httpx.NetworkError,
            httpx.RemoteProtocolError,
            asyncio.TimeoutError,
            ConnectionError,
        ),
    ):
        return True

    message = str(error).lower()
    return any(marker in message for marker in _RETRYABLE_MESSAGE_MARKERS)


class AsyncRequestManager:
    """Fetches URLs with a per-attempt timeout and retry/backoff.

    Example::

        async with AsyncRequestManager(timeout=30.0) as manager:
            response = await manager.fetch("https://example.com/video/123")
            html = response.text
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay: float = DEFAULT_BASE_DELAY,
        max_delay: float = DEFAULT_MAX_DELAY,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the request manager.

        Args:
            timeout: Per-attempt timeout in seconds.
            max_attempts: Total attempts per URL, including the first.
            base_delay: Delay before the second attempt, in seconds.
            max_delay: Upper bound for any single delay, in seconds.
            transport: Optional httpx transport (used by tests).
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.timeout = timeout
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay

        client_kwargs: dict[str, Any] = {
            "timeout": timeout,
            "follow_redirects": True,
        }
        if transport is not None:
            client_kwargs["transport"] = transport
        self._client = httpx.AsyncClient(**client_kwargs)

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        await self._client.aclose()

    async def __aenter__(self) -> AsyncRequestManager:
        """Async context manager entry."""
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit - closes the client."""
        await self.close()

    def backoff_delay(self, attempt: int) -> float:
        """Return the delay to wait after failed attempt number ``attempt``.

        Args:
            attempt: 1-based number of the attempt that just failed.

        Returns:
            Delay in seconds, doubling per attempt and capped at max_delay.
        """
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)

    async def fetch(
        self,
        url: str,
        headers: dict[str, str] | None = None,
    ) -> FetchedResponse:
        """GET a URL, retrying retryable failures.

        Args:
            url: Absolute URL to fetch.
            headers: Optional request headers.

        Returns:
            FetchedResponse for a 2xx/3xx answer.

        Raises:
            TransientException: The last retryable error, once attempts
                are exhausted.
            TerminalRequestException: On the first terminal error.
        """
        attempt = 1
        while True:
            try:
                return await self._fetch_once(url, headers)
            except TransientException as e:
                if attempt >= self.max_attempts:
                    logger.error(
                        f"Giving up on {url} after {attempt} attempts: {e}",
                        extra={"url": url, "attempts": attempt},
                    )
                    raise

                delay = self.backoff_delay(attempt)
                logger.warning(
                    f"Attempt {attempt}/{self.max_attempts} for {url} failed "
                    f"({e}); retrying in {delay:.1f}s",
                    extra={"url": url, "attempt": attempt, "delay": delay},
                )
                await asyncio.sleep(delay)
                attempt += 1

    async def _fetch_once(
        self,
        url: str,
        headers: dict[str, str] | None,
    ) -> FetchedResponse:
        """Make one attempt and translate failures into our exceptions.

        The whole attempt, body included, runs under ``self.timeout``;
        httpx's own timeout only bounds each connect or read step.
        """
        try:
            async with asyncio.timeout(self.timeout):
                http_response = await self._client.get(url, headers=headers)
        except (TimeoutError, httpx.TimeoutException) as e:
            raise RequestTimeoutException(
                url=url, timeout_seconds=self.timeout
            ) from e
        except httpx.TransportError as e:
            reason = str(e) or type(e).__name__
            if is_retryable(e):
                raise ConnectionDroppedException(url=url, reason=reason) from e
            raise TerminalRequestException(
                url, f"Request to {url} failed: {reason}"
            ) from e
        except (httpx.RequestError, httpx.InvalidURL) as e:
            reason = str(e) or type(e).__name__
            raise TerminalRequestException(
                url, f"Request to {url} failed: {reason}"
            ) from e

        status = http_response.status_code
        if status >= 500:
            raise ServerErrorException(status_code=status, url=url)
        if status >= 400:
            raise ClientErrorException(status_code=status, url=url)

        return FetchedResponse(
            status_code=status,
            headers=dict(http_response.headers),
            content=http_response.content,
            text=http_response.text,
            url=str(http_response.url),
        )
