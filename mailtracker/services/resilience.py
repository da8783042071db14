"""
Resilience utilities for mail tracker services.

Provides:
- Retry policy (attempt cap, backoff, jitter) for transient failures
- HTTP status classification
- Short operator-facing error messages for scripts
"""
import functools
import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, TypeVar, Optional

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_attempts: int = 3  # total calls, including the first
    base_delay: float = 1.0  # seconds
    max_delay: float = 30.0  # seconds
    exponential_base: float = 2.0
    jitter: float = 0.0  # extra random delay, up to this many seconds
    retryable_exceptions: tuple = (Exception,)

    def delay_for(self, attempt: int, rng: Optional[random.Random] = None) -> float:
        """
        Delay before the retry that follows a failed attempt.

        Args:
            attempt: 0-based index of the attempt that just failed
            rng: Random source for jitter
        """
        delay = min(self.base_delay * (self.exponential_base ** attempt), self.max_delay)
        if self.jitter:
            delay += (rng or random).uniform(0, self.jitter)
        return delay


DEFAULT_RETRY_CONFIG = RetryConfig()


def retry_sync(
    config: Optional[RetryConfig] = None,
    on_retry: Optional[Callable[[int, Exception], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
):
    """
    Decorator for sync functions with retry logic.

    Retries only exceptions listed in config.retryable_exceptions; the last
    one is re-raised once attempts are exhausted.

    Args:
        config: Retry configuration
        on_retry: Optional callback on each retry (retry_num, exception)
        sleep: Sleep function (replaced in tests)
    """
    cfg = config or DEFAULT_RETRY_CONFIG
    attempts = max(1, cfg.max_attempts)

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> T:
            last_exception = None

            for attempt in range(attempts):
                try:
                    return func(*args, **kwargs)
                except cfg.retryable_exceptions as e:
                    last_exception = e

                    if attempt < attempts - 1:
                        delay = cfg.delay_for(attempt)
                        logger.warning(
                            f"Retry {attempt + 1}/{attempts - 1} for {func.__name__}: {e}. "
                            f"Waiting {delay:.1f}s..."
                        )

                        if on_retry:
                            on_retry(attempt + 1, e)

                        sleep(delay)
                    else:
                        logger.error(
                            f"All {attempts} attempts exhausted for {func.__name__}: {e}"
                        )

            raise last_exception

        return wrapper
    return decorator


def is_retryable_status(status_code: int) -> bool:
    """
    Check if HTTP status code is retryable.

    Args:
        status_code: HTTP status code

    Returns:
        True if the error is transient and retryable
    """
    # 5xx server errors (except 501 Not Implemented)
    if status_code >= 500 and status_code != 501:
        return True

    # 429 Too Many Requests
    if status_code == 429:
        return True

    # 408 Request Timeout
    if status_code == 408:
        return True

    return False


def user_friendly_error(error: Exception) -> str:
    """
    Convert exception to a one-line message for script output.

    Args:
        error: The exception to convert

    Returns:
        User-friendly error message
    """
    error_type = type(error).__name__
    error_str = str(error).lower()

    if isinstance(error, FileNotFoundError):
        return f"Missing file: {error}"

    if "timeout" in error_str or "timed out" in error_str:
        return "The request timed out. Please try again."

    if "unauthorized" in error_str or "401" in error_str or "invalid_grant" in error_str:
        return "Authentication failed. Run scripts/authenticate_google.py again."

    if "forbidden" in error_str or "403" in error_str:
        return "Access denied. Check that the account can edit the spreadsheet."

    if "rate limit" in error_str or "429" in error_str or "quota" in error_str:
        return "Too many requests. Please wait a moment and try again."

    if "not found" in error_str or "404" in error_str:
        return "The spreadsheet, sheet tab or label was not found."

    return f"An error occurred: {error_type}: {error}"


# Gemini rate limiting: 5s plus up to 5s of jitter, two calls in total
EXTRACTOR_RETRY = RetryConfig(
    max_attempts=2,
    base_delay=5.0,
    max_delay=20.0,
    exponential_base=1.0,
    jitter=5.0,
)
