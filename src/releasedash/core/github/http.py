"""
Async HTTP retry helpers with exponential backoff.

Transient failures (5xx responses, timeouts, connection errors and GitHub
rate limiting) are retried with exponential backoff plus jitter. Anything
else propagates on the first attempt.

Example:
    >>> from releasedash.core.github.http import RetryConfig, with_retry
    >>>
    >>> @with_retry(RetryConfig(max_retries=3))
    ... async def fetch(client: httpx.AsyncClient, url: str) -> httpx.Response:
    ...     response = await client.get(url)
    ...     response.raise_for_status()
    ...     return response

Configuration:
    - Default retries: 3 attempts
    - Default base delay: 1.0 seconds
    - Default multiplier: 2.0x per retry
    - Jitter: Random variance of ±20% added to delay
    - Retry-After: honored for rate-limited responses, capped at max_delay
"""

import asyncio
import functools
import logging
import random
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import httpx

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryConfig:
    """
    Configuration for retry behavior.

    Attributes:
        max_retries: Maximum number of retry attempts (default: 3)
        base_delay: Initial delay in seconds before first retry (default: 1.0)
        multiplier: Exponential backoff multiplier (default: 2.0)
        jitter: Whether to add jitter to delays (default: True)
        jitter_ratio: Random variance ratio for jitter (default: 0.2 = ±20%)
        max_delay: Upper bound for any single delay in seconds (default: 60.0)
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        multiplier: float = 2.0,
        jitter: bool = True,
        jitter_ratio: float = 0.2,
        max_delay: float = 60.0,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        if base_delay <= 0:
            raise ValueError("base_delay must be positive")
        if multiplier < 1.0:
            raise ValueError("multiplier must be >= 1.0")
        if not 0.0 <= jitter_ratio <= 1.0:
            raise ValueError("jitter_ratio must be between 0.0 and 1.0")
        if max_delay < base_delay:
            raise ValueError("max_delay must be >= base_delay")

        self.max_retries = max_retries
        self.base_delay = base_delay
        self.multiplier = multiplier
        self.jitter = jitter
        self.jitter_ratio = jitter_ratio
        self.max_delay = max_delay

    def calculate_delay(self, attempt: int, retry_after: float | None = None) -> float:
        """
        Calculate delay for a given retry attempt.

        Uses exponential backoff: delay = base_delay * (multiplier ^ attempt).
        A server-provided Retry-After value replaces the computed delay.

        Args:
            attempt: Retry attempt number (0-indexed)
            retry_after: Seconds the server asked us to wait, if any

        Returns:
            Delay in seconds before next retry
        """
        if retry_after is not None:
            return min(max(0.0, retry_after), self.max_delay)

        delay = self.base_delay * (self.multiplier**attempt)
        if self.jitter:
            variance = delay * self.jitter_ratio
            delay = delay + random.uniform(-variance, variance)

        return min(max(0.0, delay), self.max_delay)


def is_rate_limited(response: httpx.Response) -> bool:
    """GitHub signals rate limiting with 429, or 403 plus rate-limit headers."""
    if response.status_code == 429:
        return True
    if response.status_code == 403:
        return (
            response.headers.get("x-ratelimit-remaining") == "0"
            or "retry-after" in response.headers
        )
    return False


def retry_after_seconds(response: httpx.Response) -> float | None:
    """Parse a numeric Retry-After header, if present."""
    value = response.headers.get("retry-after")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def is_retryable_error(exception: Exception) -> bool:
    """
    Determine if an exception represents a transient, retryable error.

    Retryable errors include:
    - 5xx server errors
    - 429 and rate-limited 403 responses
    - Timeouts, connection errors and other transport errors

    Other 4xx responses (404, 401, 422) and non-HTTP exceptions are not
    retryable.
    """
    # HTTPStatusError is also an HTTPError, so check it first
    if isinstance(exception, httpx.HTTPStatusError):
        status_code = exception.response.status_code
        if 500 <= status_code < 600:
            return True
        return is_rate_limited(exception.response)

    if isinstance(exception, (httpx.TimeoutException, httpx.RequestError)):
        return True

    if isinstance(exception, httpx.HTTPError):
        return True

    return False


def with_retry(
    config: RetryConfig | None = None,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """
    Decorator adding retry with exponential backoff to a coroutine function.

    Args:
        config: Retry behavior (defaults to RetryConfig())

    Returns:
        Decorator wrapping the coroutine function with retry logic
    """
    if config is None:
        config = RetryConfig()

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            func_name = getattr(func, "__name__", repr(func))

            for attempt in range(config.max_retries + 1):
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    if not is_retryable_error(e):
                        logger.debug(
                            f"{func_name}: Non-retryable error on attempt {attempt + 1}: {e}"
                        )
                        raise

                    if attempt >= config.max_retries:
                        logger.warning(
                            f"{func_name}: Max retries ({config.max_retries}) exceeded: {e}"
                        )
                        raise

                    retry_after = None
                    if isinstance(e, httpx.HTTPStatusError):
                        retry_after = retry_after_seconds(e.response)
                    delay = config.calculate_delay(attempt, retry_after)
                    logger.info(
                        f"{func_name}: Retry attempt {attempt + 1}/{config.max_retries} "
                        f"after {delay:.2f}s due to: {e}"
                    )
                    await asyncio.sleep(delay)

            raise RuntimeError("Retry loop completed without success or exception")

        return wrapper

    return decorator


async def retry_request(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    config: RetryConfig | None = None,
    **kwargs: Any,
) -> httpx.Response:
    """
    Send a request on ``client`` with automatic retry logic.

    Args:
        client: Client to send the request with
        method: HTTP method (GET, POST, etc.)
        url: URL or path relative to the client's base URL
        config: Retry behavior (defaults to RetryConfig())
        **kwargs: Additional arguments passed to client.request()

    Returns:
        The successful response

    Raises:
        httpx.HTTPStatusError: On non-retryable statuses or after max retries
        httpx.TimeoutException: After max retries on timeout
        httpx.RequestError: After max retries on network errors
    """

    @with_retry(config)
    async def _send() -> httpx.Response:
        response = await client.request(method, url, **kwargs)
        response.raise_for_status()
        return response

    return await _send()


__all__ = [
    "RetryConfig",
    "is_rate_limited",
    "is_retryable_error",
    "retry_after_seconds",
    "retry_request",
    "with_retry",
]
