"""Shared async HTTP client for the JSON and HTML upstreams."""

import logging
from typing import Any, Self

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from libspot.sources.errors import UpstreamMalformed, UpstreamUnavailable

logger = logging.getLogger(__name__)

MAX_WAIT_SECONDS = 8.0
RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})


class _RetryableStatus(Exception):
    def __init__(self, response: httpx.Response) -> None:
        super().__init__(f"HTTP {response.status_code}")
        self.response = response


def _should_retry(exc: BaseException) -> bool:
    return isinstance(exc, (httpx.TransportError, _RetryableStatus))


def _log_retry(retry_state) -> None:
    """Log retry attempts."""
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(f"Retry attempt {retry_state.attempt_number + 1} after: {exc}")


class UpstreamClient:
    """Async HTTP client with bounded retries and request counting.

    Transport errors and 429/5xx responses are retried with exponential
    backoff; anything still failing is raised as ``UpstreamUnavailable``.
    Use as an async context manager so the connection pool is closed.

    Example:
        async with UpstreamClient(timeout=15.0) as client:
            data = await client.get_json(url)
    """

    def __init__(
        self,
        timeout: float = 15.0,
        *,
        attempts: int = 3,
        retry_wait: float = 0.5,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            timeout: Per-request timeout in seconds
            attempts: Total attempts per request (1 disables retries)
            retry_wait: Initial backoff in seconds (0 retries immediately)
            transport: Optional transport override
        """
        self._timeout = timeout
        self._attempts = max(1, attempts)
        self._retry_wait = retry_wait
        self._transport = transport
        self.client: httpx.AsyncClient | None = None
        self._request_count = 0

    async def __aenter__(self) -> Self:
        """Create the underlying HTTP client."""
        self.client = httpx.AsyncClient(
            follow_redirects=True,
            timeout=self._timeout,
            transport=self._transport,
            headers={"Accept": "application/json, text/html;q=0.9"},
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Close the HTTP client and log the request count."""
        if self.client:
            if self._request_count > 0:
                logger.info(f"Upstream HTTP calls: {self._request_count}")
            await self.client.aclose()
            self.client = None

    @property
    def request_count(self) -> int:
        """Number of HTTP requests sent, retries included."""
        return self._request_count

    def _require_client(self) -> httpx.AsyncClient:
        if not self.client:
            raise RuntimeError("Client must be used as async context manager")
        return self.client

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            retry=retry_if_exception(_should_retry),
            stop=stop_after_attempt(self._attempts),
            wait=wait_exponential_jitter(
                initial=self._retry_wait,
                max=MAX_WAIT_SECONDS,
                jitter=self._retry_wait,
            ),
            before_sleep=_log_retry,
            reraise=True,
        )

    async def get(self, url: str, **kwargs) -> httpx.Response:
        """GET ``url``, retrying transient failures.

        Raises:
            UpstreamUnavailable: On any request error or a non-2xx final status
        """
        client = self._require_client()
        try:
            async for attempt in self._retrying():
                with attempt:
                    self._request_count += 1
                    response = await client.get(url, **kwargs)
                    if response.status_code in RETRYABLE_STATUS:
                        raise _RetryableStatus(response)
        except _RetryableStatus as e:
            raise UpstreamUnavailable(f"HTTP {e.response.status_code} from {url}") from e
        except httpx.TimeoutException as e:
            raise UpstreamUnavailable(f"Timed out fetching {url}") from e
        except httpx.TransportError as e:
            raise UpstreamUnavailable(f"Failed to reach {url}: {e}") from e
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(f"Request to {url} failed: {e!r}") from e

        if response.is_error:
            raise UpstreamUnavailable(f"HTTP {response.status_code} from {url}")
        return response

    async def get_text(self, url: str, **kwargs) -> str:
        """GET ``url`` and return the body as text."""
        response = await self.get(url, **kwargs)
        return response.text

    async def get_json(self, url: str, **kwargs) -> Any:
        """GET ``url`` and decode a JSON body.

        Raises:
            UpstreamMalformed: If the body is not valid JSON
        """
        response = await self.get(url, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamMalformed(f"Invalid JSON from {url}: {e}") from e
