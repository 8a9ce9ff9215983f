"""
Async HTTP transport for revhub.

Handles HTTP communication with automatic retry logic and error handling
using the httpx async client. Both platform adapters sit on top of it.
"""

import asyncio
import random
import time
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from typing import Any

import httpx

from revhub.exceptions import (
    ApiError,
    AuthenticationError,
    AuthorizationError,
    NotFoundError,
    RateLimitedError,
    ServerError,
    TransportError,
)
from revhub.logging import log_http_request, log_http_response


@dataclass
class RetryConfig:
    """Configuration for automatic retry behavior.

    Only transport failures and the 5xx codes in ``retry_on`` are retried;
    4xx responses never are.
    """

    max_attempts: int = 3
    backoff_base: float = 0.25  # Wait before the first retry, in seconds
    backoff_factor: float = 2.0
    retry_on: list[int] = field(default_factory=lambda: [500, 502, 503, 504])
    max_backoff: float = 10.0
    jitter: float = 0.1  # Jitter factor (0.1 = ±10%)


@dataclass(frozen=True)
class Credentials:
    """Base URL and token for one platform."""

    base_url: str
    token: str

    @property
    def root_url(self) -> str:
        return self.base_url.rstrip("/")


class AsyncHTTPTransport:
    """
    Async HTTP transport layer with retry logic.

    Handles:
    - Exponential backoff with jitter for transient failures
    - Error response parsing into typed exceptions
    - Request/response debug logging with secrets masked
    """

    def __init__(
        self,
        base_url: str,
        headers: dict[str, str] | None = None,
        timeout: float = 30.0,
        retry_config: RetryConfig | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize async HTTP transport.

        Args:
            base_url: Base URL for API requests (e.g., "https://gitlab.example.com/api/v4")
            headers: Default headers sent with every request
            timeout: Request timeout in seconds
            retry_config: Configuration for retry behavior
            http_transport: Optional httpx transport (used by tests to fake the network)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retry_config = retry_config or RetryConfig()

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers=headers or {},
            transport=http_transport,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "AsyncHTTPTransport":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
        data: dict[str, Any] | None = None,
    ) -> Any:
        """
        Make a request with automatic retry.

        Args:
            method: HTTP method
            path: API path relative to the base URL
            params: Query parameters
            json: JSON request body
            data: Form-encoded request body

        Returns:
            Parsed JSON response, the raw text for non-JSON bodies, or None
            for empty responses

        Raises:
            ApiError: On non-2xx responses
            TransportError: On network failures after all attempts
        """
        log_http_request(method, f"{self.base_url}{path}", params, json if json is not None else data)

        async def make_request() -> httpx.Response:
            return await self._client.request(method, path, params=params, json=json, data=data)

        return await self._execute_with_retry(make_request, path)

    async def _execute_with_retry(
        self,
        request_fn: Callable[[], Coroutine[Any, Any, httpx.Response]],
        path: str = "",
    ) -> Any:
        """
        Execute a request with automatic retry on retryable errors.

        Args:
            request_fn: Async function that makes the HTTP request
            path: Request path, for logging

        Returns:
            Parsed response body

        Raises:
            ApiError: On non-retryable errors or after the last attempt
            TransportError: On network errors after the last attempt
        """
        for attempt in range(self.retry_config.max_attempts):
            started = time.monotonic()
            try:
                response = await request_fn()
            except httpx.RequestError as e:
                # Network errors are retryable
                if attempt + 1 >= self.retry_config.max_attempts:
                    raise TransportError(f"{type(e).__name__}: {e}") from e
                await asyncio.sleep(self._get_backoff_time(attempt))
                continue

            log_http_response(
                response.status_code,
                f"{self.base_url}{path}",
                elapsed_ms=(time.monotonic() - started) * 1000,
                attempt=attempt,
            )

            if 200 <= response.status_code < 300:
                return self._parse_body(response)

            error = self._parse_error_response(response)
            if not self._should_retry(response.status_code, attempt):
                raise error

            await asyncio.sleep(self._get_backoff_time(attempt))

        raise TransportError("Request failed with no error details")

    def _should_retry(self, status_code: int, attempt: int) -> bool:
        """
        Determine if a request should be retried.

        Args:
            status_code: HTTP status code
            attempt: Current attempt number (0-indexed)

        Returns:
            True if the request should be retried
        """
        if attempt + 1 >= self.retry_config.max_attempts:
            return False

        return status_code >= 500 and status_code in self.retry_config.retry_on

    def _get_backoff_time(self, attempt: int) -> float:
        """
        Calculate backoff time for retry.

        Args:
            attempt: Current attempt number (0-indexed)

        Returns:
            Time to wait in seconds
        """
        base_wait = self.retry_config.backoff_base * self.retry_config.backoff_factor ** attempt

        jitter_range = base_wait * self.retry_config.jitter
        wait_time = base_wait + random.uniform(-jitter_range, jitter_range)

        return max(0.0, min(wait_time, self.retry_config.max_backoff))

    @staticmethod
    def _parse_body(response: httpx.Response) -> Any:
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    def _parse_error_response(self, response: httpx.Response) -> ApiError:
        """
        Parse an error response into a typed exception.

        Args:
            response: HTTP response with error status

        Returns:
            Appropriate ApiError subclass
        """
        try:
            data = response.json()
        except ValueError:
            data = None

        message: Any = None
        if isinstance(data, dict):
            message = data.get("message") or data.get("error_description") or data.get("error")
        if not message:
            message = response.text or f"HTTP {response.status_code}"
        if not isinstance(message, str):
            message = str(message)

        status_code = response.status_code

        if status_code == 401:
            return AuthenticationError(status_code, message)
        elif status_code == 403:
            return AuthorizationError(status_code, message)
        elif status_code == 404:
            return NotFoundError(message)
        elif status_code == 429:
            retry_after_str = response.headers.get("Retry-After", "60")
            try:
                retry_after = int(retry_after_str)
            except ValueError:
                retry_after = 60
            return RateLimitedError(status_code, message, retry_after)
        elif status_code >= 500:
            return ServerError(status_code, message)
        else:
            return ApiError(status_code, message)
