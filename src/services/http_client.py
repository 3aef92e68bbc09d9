"""HTTP client wrapper with configurable error handling and retry logic.

The expense API client sends every remote step through :class:`HttpClient`, so
transport-level retries live here and nowhere else. Key features:

- Centralized timeout configuration from ``settings.expenses``
- Pluggable error handling strategies
- Optional retry logic with exponential backoff
- Attempt counts reported on failure so callers can audit them

Usage Examples:

    # Raise on errors, no retries
    client = HttpClient()
    response = client.get("https://api.example.com/data")

    # Retry transient failures
    client = HttpClient(
        retry_config=RetryConfig(
            max_attempts=3,
            retry_status_codes={429, 500, 502, 503, 504},
            backoff_factor=1.0,
        )
    )
    response = client.post("https://api.example.com/expenses", json={...})
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum

import httpx

from config import settings

logger = logging.getLogger(__name__)


class ErrorStrategy(Enum):
    """Strategy for handling HTTP errors.

    - RAISE: Raise :class:`HttpRequestError` (default, for strict error handling)
    - LOG_AND_RETURN_NONE: Log error and return None (for graceful degradation)
    """

    RAISE = "raise"
    LOG_AND_RETURN_NONE = "log_and_return_none"


@dataclass
class ErrorConfig:
    """Configuration for error handling behavior.

    Args:
        strategy: How to handle HTTP errors
        log_level: Logging level for errors (default: ERROR)
        include_response_body: Whether to log response body on errors
    """

    strategy: ErrorStrategy = ErrorStrategy.RAISE
    log_level: int = logging.ERROR
    include_response_body: bool = False


@dataclass
class RetryConfig:
    """Configuration for retry logic with exponential backoff.

    Args:
        max_attempts: Maximum number of attempts (including initial attempt)
        retry_status_codes: HTTP status codes that should trigger a retry
        backoff_factor: Multiplier for exponential backoff (delay = backoff_factor * 2^attempt)
        max_backoff: Maximum backoff delay in seconds
        retry_exceptions: Exception types that should trigger a retry
    """

    max_attempts: int = 3
    retry_status_codes: set[int] = field(default_factory=lambda: {429, 500, 502, 503, 504})
    backoff_factor: float = 1.0
    max_backoff: float = 30.0
    retry_exceptions: tuple[type[Exception], ...] = (
        httpx.ConnectError,
        httpx.ReadTimeout,
        httpx.PoolTimeout,
    )

    @staticmethod
    def from_settings() -> "RetryConfig":
        """Build a retry configuration from expense API settings."""
        expenses_config = settings.expenses
        return RetryConfig(
            max_attempts=int(expenses_config.max_attempts),
            backoff_factor=float(expenses_config.backoff_factor),
            max_backoff=float(expenses_config.max_backoff),
        )


class HttpRequestError(Exception):
    """Raised when a request fails after all permitted attempts."""

    def __init__(
        self,
        message: str,
        *,
        attempts: int,
        status_code: int | None = None,
        response_text: str | None = None,
        timed_out: bool = False,
    ) -> None:
        """Initialize with the attempt count and the final response details."""
        super().__init__(message)
        self.attempts = attempts
        self.status_code = status_code
        self.response_text = response_text
        self.timed_out = timed_out


class HttpClient:
    """Synchronous HTTP client with configurable error handling and retries.

    This client wraps httpx.Client to provide:
    - Default timeout from settings.expenses.timeout
    - Pluggable error handling strategies
    - Optional retry logic with exponential backoff
    - Clean resource management via context managers

    Args:
        timeout: Request timeout in seconds (default: settings.expenses.timeout)
        connect_timeout: Connection timeout in seconds (default: settings.expenses.connect_timeout)
        error_config: Error handling configuration
        retry_config: Retry configuration (None = no retries)
        sleep: Delay function used between attempts
    """

    def __init__(
        self,
        timeout: int | None = None,
        connect_timeout: int | None = None,
        error_config: ErrorConfig | None = None,
        retry_config: RetryConfig | None = None,
        sleep=time.sleep,
    ):
        """Initialize the synchronous HTTP client."""
        self.timeout = timeout if timeout is not None else settings.expenses.timeout
        self.connect_timeout = (
            connect_timeout if connect_timeout is not None else settings.expenses.connect_timeout
        )
        self.error_config = error_config or ErrorConfig()
        self.retry_config = retry_config
        self._sleep = sleep

    def get(self, url: str, **kwargs) -> httpx.Response | None:
        """Perform a synchronous GET request."""
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs) -> httpx.Response | None:
        """Perform a synchronous POST request.

        Args:
            url: Target URL
            **kwargs: Additional arguments passed to httpx (json, data, headers, etc.)

        Returns:
            Response object, or None if error_strategy is LOG_AND_RETURN_NONE

        Raises:
            HttpRequestError: If error_strategy is RAISE and request fails
        """
        return self.request("POST", url, **kwargs)

    def patch(self, url: str, **kwargs) -> httpx.Response | None:
        """Perform a synchronous PATCH request."""
        return self.request("PATCH", url, **kwargs)

    def request(self, method: str, url: str, **kwargs) -> httpx.Response | None:
        """Execute an HTTP request with error handling and optional retries."""
        if self.retry_config is None:
            return self._execute_once(method, url, **kwargs)
        return self._execute_with_retry(method, url, **kwargs)

    def _execute_once(self, method: str, url: str, **kwargs) -> httpx.Response | None:
        """Execute a single HTTP request with error handling."""
        try:
            with httpx.Client(
                timeout=httpx.Timeout(self.timeout, connect=self.connect_timeout)
            ) as client:
                response = client.request(method, url, **kwargs)
                response.raise_for_status()
                return response
        except (httpx.HTTPStatusError, httpx.RequestError) as e:
            return self._handle_error(e, method, url, attempts=1)

    def _execute_with_retry(self, method: str, url: str, **kwargs) -> httpx.Response | None:
        """Execute an HTTP request with retry logic and exponential backoff."""
        assert self.retry_config is not None
        last_exception: Exception | None = None
        attempts = 0

        for attempt in range(self.retry_config.max_attempts):
            attempts = attempt + 1
            try:
                with httpx.Client(
                    timeout=httpx.Timeout(self.timeout, connect=self.connect_timeout)
                ) as client:
                    response = client.request(method, url, **kwargs)
                    response.raise_for_status()
                    return response
            except httpx.HTTPStatusError as e:
                last_exception = e
                # Only retry on specific status codes
                if e.response.status_code not in self.retry_config.retry_status_codes:
                    return self._handle_error(e, method, url, attempts=attempts)
                if attempts >= self.retry_config.max_attempts:
                    break
                delay = self._backoff_delay(attempt)
                logger.warning(
                    "HTTP %s %s failed with status %s, retrying in %.1fs (attempt %s/%s)",
                    method,
                    url,
                    e.response.status_code,
                    delay,
                    attempts,
                    self.retry_config.max_attempts,
                )
                self._sleep(delay)
            except self.retry_config.retry_exceptions as e:
                last_exception = e
                if attempts >= self.retry_config.max_attempts:
                    break
                delay = self._backoff_delay(attempt)
                logger.warning(
                    "HTTP %s %s failed with %s, retrying in %.1fs (attempt %s/%s)",
                    method,
                    url,
                    type(e).__name__,
                    delay,
                    attempts,
                    self.retry_config.max_attempts,
                )
                self._sleep(delay)
            except httpx.RequestError as e:
                # Non-retryable request error
                last_exception = e
                break

        assert last_exception is not None
        return self._handle_error(last_exception, method, url, attempts=attempts)

    def _backoff_delay(self, attempt: int) -> float:
        assert self.retry_config is not None
        return min(
            self.retry_config.backoff_factor * (2**attempt),
            self.retry_config.max_backoff,
        )

    def _handle_error(
        self,
        error: Exception,
        method: str,
        url: str,
        *,
        attempts: int,
    ) -> httpx.Response | None:
        """Handle HTTP errors according to configured strategy."""
        if self.error_config.strategy == ErrorStrategy.RAISE:
            raise _to_request_error(error, method, url, attempts) from error

        error_msg = f"HTTP {method} {url} failed after {attempts} attempt(s): {error}"
        if isinstance(error, httpx.HTTPStatusError) and self.error_config.include_response_body:
            error_msg += f"\nResponse body: {error.response.text}"
        logger.log(self.error_config.log_level, error_msg)
        return None


def _to_request_error(
    error: Exception,
    method: str,
    url: str,
    attempts: int,
) -> HttpRequestError:
    """Wrap an httpx failure with attempt and response metadata."""
    if isinstance(error, httpx.HTTPStatusError):
        return HttpRequestError(
            f"HTTP {method} {url} returned {error.response.status_code}",
            attempts=attempts,
            status_code=error.response.status_code,
            response_text=error.response.text,
        )
    return HttpRequestError(
        f"HTTP {method} {url} failed: {type(error).__name__}: {error}",
        attempts=attempts,
        timed_out=isinstance(error, httpx.TimeoutException),
    )
