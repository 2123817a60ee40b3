"""
Availarr Errors and Retry Policy

Every failure a job can recover from or must stop on has a type here, so
callers decide by ``except`` clause rather than by inspecting messages.

    AvailarrError
    ├── ConfigurationError      bad or missing settings, exit 1
    ├── CatalogAPIError         TMDB said no (401, 404, broken JSON); not retried
    ├── StoreWriteError         a content store commit failed
    ├── StoreUnavailableError   database unreachable after the startup retries
    ├── RateLimitExceeded       the local request budget ran dry
    └── NetworkRetryableError   timeouts, resets, 429 and 5xx; retried

``retry_on_network_error`` wraps sync or async callables. The n-th retry
waits ``base_delay * exponential_base ** n`` seconds (capped at
``max_delay``); ``exponential_base=1`` gives the fixed delay used for store
deletes. A server-supplied Retry-After replaces the computed delay.
"""

import asyncio
import functools
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, ParamSpec, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

P = ParamSpec('P')
T = TypeVar('T')


class AvailarrError(Exception):
    """Base of every Availarr error; not retried unless a subclass says so."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        prefix = type(self).__name__
        if self.status_code:
            prefix += f" (HTTP {self.status_code})"
        return f"{prefix}: {self.message}"


class ConfigurationError(AvailarrError):
    """Empty domain or proxy list, missing TMDB key, worker count out of range."""


class CatalogAPIError(AvailarrError):
    """TMDB answered, but with something a retry will not change."""


class StoreWriteError(AvailarrError):
    """An upsert, touch or delete could not be committed."""

    def __init__(self, message: str, original_exception: Optional[Exception] = None):
        super().__init__(message)
        self.original_exception = original_exception


class StoreUnavailableError(AvailarrError):
    """The database never answered during startup."""


class NetworkRetryableError(AvailarrError):
    """
    Transient transport failure.

    Attributes:
        original_exception: The requests/httpx error behind it, if any
        retry_after: Server-requested wait in seconds (Retry-After)
    """

    def __init__(
        self,
        message: str,
        original_exception: Optional[Exception] = None,
        retry_after: Optional[int] = None
    ):
        super().__init__(message)
        self.original_exception = original_exception
        self.retry_after = retry_after


class RateLimitExceeded(AvailarrError):
    """A paced call would have waited longer than allowed for its budget."""

    def __init__(self, service: str, retry_after: float):
        super().__init__(f"Request budget '{service}' exhausted, next slot in {retry_after:.1f}s")
        self.service = service
        self.retry_after = retry_after


# ============================================================================
# Retry
# ============================================================================

@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int
    base_delay: float
    max_delay: float
    exponential_base: float
    retryable: Tuple[Type[BaseException], ...]

    def delay_for(self, error: BaseException, retry_number: int) -> float:
        hinted = getattr(error, 'retry_after', None)
        if isinstance(error, NetworkRetryableError) and hinted:
            return min(hinted, self.max_delay)
        return min(self.base_delay * (self.exponential_base ** retry_number), self.max_delay)

    def next_delay(self, name: str, error: BaseException, retry_number: int) -> Optional[float]:
        """Delay before the next attempt, or None when the budget is spent."""
        if retry_number >= self.max_retries:
            logger.error(f"✗ {name} failed after {self.max_retries + 1} attempts: {error}")
            return None
        delay = self.delay_for(error, retry_number)
        logger.warning(
            f"⚠ {name} attempt {retry_number + 1}/{self.max_retries + 1} failed: {error}. "
            f"Retrying in {delay}s"
        )
        return delay


def retry_on_network_error(
    max_retries: int = 5,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2,
    retryable_exceptions: Tuple[Type[BaseException], ...] = (NetworkRetryableError,)
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """
    Retry a sync or async callable on ``retryable_exceptions``.

    Args:
        max_retries: Retries after the first attempt
        base_delay: Delay before the first retry, in seconds
        max_delay: Upper bound for any single delay
        exponential_base: Growth factor per retry; 1 keeps the delay fixed
        retryable_exceptions: Exception types worth another attempt

    Other AvailarrErrors propagate immediately.

    Example:
        @retry_on_network_error(max_retries=3)
        async def _get(self, endpoint, params=None):
            ...
    """
    policy = RetryPolicy(max_retries, base_delay, max_delay, exponential_base, tuple(retryable_exceptions))

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        name = func.__qualname__

        if asyncio.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
                retry_number = 0
                while True:
                    try:
                        return await func(*args, **kwargs)
                    except policy.retryable as e:
                        delay = policy.next_delay(name, e, retry_number)
                        if delay is None:
                            raise
                    retry_number += 1
                    await asyncio.sleep(delay)

            return async_wrapper

        @functools.wraps(func)
        def sync_wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            retry_number = 0
            while True:
                try:
                    return func(*args, **kwargs)
                except policy.retryable as e:
                    delay = policy.next_delay(name, e, retry_number)
                    if delay is None:
                        raise
                retry_number += 1
                time.sleep(delay)

        return sync_wrapper

    return decorator


def classify_http_error(status_code: int, message: str, retry_after: Optional[str] = None) -> AvailarrError:
    """
    Turn a non-200 catalog response into an exception.

    Args:
        status_code: HTTP status
        message: Description for the log
        retry_after: Raw Retry-After header, honoured when it is a number of seconds

    Returns:
        NetworkRetryableError for 429 and 5xx, CatalogAPIError for everything else
    """
    if status_code == 429:
        hint = int(retry_after) if retry_after and retry_after.isdigit() else None
        return NetworkRetryableError(f"Throttled by TMDB: {message}", retry_after=hint)
    if status_code >= 500:
        return NetworkRetryableError(f"TMDB server error {status_code}: {message}")
    return CatalogAPIError(message, status_code=status_code)
