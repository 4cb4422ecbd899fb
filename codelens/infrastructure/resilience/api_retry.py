"""Retry policy for backend calls.

Implements exponential backoff with additive jitter for transient errors like
rate limits (429), timeouts, temporary server issues (500/503) or network
resets. Non-retryable errors (authentication, invalid input, exhausted quota,
malformed responses) fail fast.

The policy is a plain combinator: `with_retry(action, options)` returns a new
coroutine function, and `retryable(options)` offers the same thing as a
decorator for async methods.
"""

import asyncio
import functools
import logging
import random
import socket
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Tuple, TypeVar

from codelens.domain.errors import (
    CodelensError,
    ConfigurationError,
    MalformedResponseError,
    NonRetryableError,
    RetryableTransportError,
)
from codelens.domain.events.api_events import RetryScheduled

logger = logging.getLogger(__name__)

T = TypeVar("T")

JITTER_RATIO = 0.1
RETRYABLE_STATUS_CODES = frozenset({429, 500, 503})
DEFAULT_RETRYABLE_SIGNATURES: Tuple[str, ...] = (
    "rate_limit_error",
    "timeout",
    "server_error",
    "network_error",
    "ECONNRESET",
    "ETIMEDOUT",
    "ENOTFOUND",
)
NON_RETRYABLE_EXCEPTIONS = (NonRetryableError, MalformedResponseError, ConfigurationError)
RETRYABLE_BUILTIN_EXCEPTIONS = (TimeoutError, asyncio.TimeoutError, ConnectionError, socket.gaierror)


@dataclass
class RetryOptions:
    """Configuration for retry behavior with exponential backoff.

    Attributes:
        max_retries: Retries after the first attempt (total attempts = max_retries + 1).
        base_delay: Delay before the first retry, in seconds.
        max_delay: Cap applied to the exponential delay before jitter.
        backoff_multiplier: Growth factor per attempt.
        retryable_signatures: Substrings that mark an error message, `code` or
            `type` as transient.
        is_retryable: Optional classifier replacing `is_retryable_error`.
        on_retry: Optional observer called with a `RetryScheduled` event
            before each backoff sleep.
        endpoint: Name used in logs and events.
    """

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0
    retryable_signatures: Tuple[str, ...] = DEFAULT_RETRYABLE_SIGNATURES
    is_retryable: Optional[Callable[[BaseException], bool]] = None
    on_retry: Optional[Callable[[RetryScheduled], None]] = field(default=None, repr=False)
    endpoint: str = "call"

    def classify(self, error: BaseException) -> bool:
        if self.is_retryable is not None:
            return self.is_retryable(error)
        return is_retryable_error(error, self.retryable_signatures)


def is_retryable_error(
    error: BaseException,
    signatures: Tuple[str, ...] = DEFAULT_RETRYABLE_SIGNATURES,
) -> bool:
    """Decides whether `error` is a transient failure worth retrying."""
    if isinstance(error, NON_RETRYABLE_EXCEPTIONS):
        return False
    if isinstance(error, RetryableTransportError):
        return True

    status_code = getattr(error, "status_code", None) or getattr(error, "status", None)
    if status_code in RETRYABLE_STATUS_CODES:
        return True

    if isinstance(error, RETRYABLE_BUILTIN_EXCEPTIONS):
        return True

    message = str(error)
    error_type = str(getattr(error, "type", None) or getattr(error, "code", None) or "")
    return any(sig in message or sig in error_type for sig in signatures)


def calculate_delay(
    attempt: int,
    options: RetryOptions,
    rng: Callable[[], float] = random.random,
) -> float:
    """Exponential delay for a 0-indexed attempt, capped, plus up to 10% jitter."""
    exponential = options.base_delay * (options.backoff_multiplier ** attempt)
    delay = min(exponential, options.max_delay)
    return delay + delay * JITTER_RATIO * rng()


def _publish_retry(options: RetryOptions, event: RetryScheduled) -> None:
    if options.on_retry is None:
        return
    try:
        options.on_retry(event)
    except Exception as e:
        logger.error(f"Retry observer failed: {e}", exc_info=True)


async def run_with_retry(
    action: Callable[[], Awaitable[T]],
    options: Optional[RetryOptions] = None,
) -> T:
    """Runs `action` until it succeeds, fails non-retryably, or attempts run out.

    Raises:
        The last error raised by `action`, unchanged. `CodelensError`
        instances carry the number of attempts made in `attempts`.
    """
    opts = options or RetryOptions()
    attempt = 0
    while True:
        try:
            return await action()
        except Exception as e:
            total_attempts = attempt + 1
            if isinstance(e, CodelensError):
                e.attempts = total_attempts

            if attempt >= opts.max_retries:
                logger.error(
                    f"Max retries ({opts.max_retries}) exceeded for {opts.endpoint}: "
                    f"{type(e).__name__}: {e}"
                )
                raise

            if not opts.classify(e):
                logger.debug(f"Non-retryable error in {opts.endpoint}: {type(e).__name__}: {e}")
                raise

            delay = calculate_delay(attempt, opts)
            logger.warning(
                f"Retry {attempt + 1}/{opts.max_retries} for {opts.endpoint} "
                f"after {type(e).__name__}: {e}. Waiting {delay:.2f}s..."
            )
            _publish_retry(opts, RetryScheduled(
                endpoint=opts.endpoint,
                attempt_number=attempt + 1,
                delay_seconds=delay,
                error_type=type(e).__name__,
                error_message=str(e),
            ))
            await asyncio.sleep(delay)
            attempt += 1


def with_retry(
    action: Callable[[], Awaitable[T]],
    options: Optional[RetryOptions] = None,
) -> Callable[[], Awaitable[T]]:
    """Wraps a zero-argument coroutine function with retry semantics."""

    async def retrying() -> T:
        return await run_with_retry(action, options)

    return retrying


def retryable(options: Optional[RetryOptions] = None):
    """Decorator form of `with_retry` for async functions and methods.

    Example:
        >>> @retryable(RetryOptions(max_retries=2, base_delay=0.1))
        ... async def fetch(self, payload):
        ...     return await self._client.send(payload)
    """

    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            return await run_with_retry(lambda: func(*args, **kwargs), options)

        return wrapper

    return decorator
