"""HTTP client with retry logic, timeouts, and rate limit handling."""

import asyncio
import logging
from typing import Any

import httpx

from feedrelay.errors import TransientIOError

logger = logging.getLogger(__name__)


class HttpClient:
    """
    HTTP client with retry logic, timeouts, and rate limit handling.

    Uses httpx for async HTTP requests with exponential backoff
    retry logic and automatic rate limit handling.
    """

    DEFAULT_TIMEOUT = httpx.Timeout(
        connect=10.0,
        read=30.0,
        write=10.0,
        pool=10.0,
    )

    def __init__(
        self,
        base_url: str | None = None,
        timeout: httpx.Timeout | None = None,
        max_retries: int = 3,
        backoff_factor: float = 1.0,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the HTTP client.

        Args:
            base_url: Optional base URL for all requests
            timeout: Request timeout configuration
            max_retries: Maximum retry attempts
            backoff_factor: Exponential backoff multiplier
            headers: Default headers for all requests
            transport: Optional httpx transport (used by tests)
        """
        self._base_url = base_url
        self._timeout = timeout or self.DEFAULT_TIMEOUT
        self._max_retries = max_retries
        self._backoff_factor = backoff_factor
        self._default_headers = headers or {}
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base_url or "",
                timeout=self._timeout,
                headers=self._default_headers,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    def _calculate_backoff(self, attempt: int) -> float:
        """Calculate exponential backoff delay."""
        return self._backoff_factor * (2**attempt)

    def _retry_after(self, response: httpx.Response) -> float:
        """Seconds to wait after a 429 response."""
        retry_after = response.headers.get("Retry-After")
        if retry_after:
            try:
                return float(retry_after)
            except ValueError:
                pass
        return 60.0

    async def request(
        self,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """
        Make an HTTP request with retry logic.

        Rate limits, server errors, timeouts and connection errors are
        retried. Any other response is returned as-is.

        Args:
            method: HTTP method (GET, POST, etc.)
            url: Request URL
            **kwargs: Additional arguments for httpx

        Returns:
            httpx.Response

        Raises:
            TransientIOError: When retries are exhausted
        """
        client = await self._get_client()

        for attempt in range(self._max_retries + 1):
            last_attempt = attempt >= self._max_retries
            try:
                response = await client.request(method, url, **kwargs)
            except (httpx.TimeoutException, httpx.ConnectError) as e:
                if last_attempt:
                    raise TransientIOError(f"{method} {url} failed: {e}") from e
                backoff = self._calculate_backoff(attempt)
                logger.warning(
                    f"{type(e).__name__} on {method} {url}. "
                    f"Retrying in {backoff}s (attempt {attempt + 1})"
                )
                await asyncio.sleep(backoff)
                continue

            if response.status_code == 429:
                if last_attempt:
                    raise TransientIOError(f"{method} {url} still rate limited")
                retry_after = self._retry_after(response)
                logger.warning(
                    f"Rate limited on {method} {url}. "
                    f"Waiting {retry_after}s (attempt {attempt + 1})"
                )
                await asyncio.sleep(retry_after)
                continue

            if response.status_code >= 500:
                if last_attempt:
                    raise TransientIOError(f"{method} {url} returned {response.status_code}")
                backoff = self._calculate_backoff(attempt)
                logger.warning(
                    f"Server error {response.status_code} on {method} {url}. "
                    f"Retrying in {backoff}s (attempt {attempt + 1})"
                )
                await asyncio.sleep(backoff)
                continue

            return response

        raise RuntimeError("Unexpected retry loop exit")

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        """Make a GET request."""
        return await self.request("GET", url, **kwargs)

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
            logger.info("HTTP client closed")

    async def __aenter__(self) -> "HttpClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()
