"""
Retry logic with exponential backoff.

Used for idempotent REST reads and for the WebSocket reconnect loop.
"""

import random
import time
from typing import Callable, TypeVar, Optional
from functools import wraps
import logging

from ..exceptions import (
    PacificaError,
    APIError,
    TimeoutError,
    RateLimitError,
)

logger = logging.getLogger(__name__)

T = TypeVar('T')


class RetryStrategy:
    """
    Configurable retry strategy with exponential backoff.

    Features:
    - Exponential backoff with optional jitter
    - Delay capped at max_delay
    - Retries only transient errors (API, timeout, rate limit, connection)
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        exponential_base: float = 2.0,
        jitter: bool = True
    ):
        """
        Initialize retry strategy.

        Args:
            max_retries: Maximum retry attempts
            base_delay: Initial delay in seconds
            max_delay: Maximum delay in seconds
            exponential_base: Backoff multiplier
            jitter: Add random jitter to delays
        """
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter

    def delay_for(self, attempt: int) -> float:
        """
        Delay before retry number `attempt` (0-based).

        Without jitter the sequence is base, base*2, base*4 ... up to max_delay.
        """
        try:
            delay = self.base_delay * (self.exponential_base ** attempt)
        except OverflowError:
            delay = self.max_delay
        delay = min(delay, self.max_delay)

        if self.jitter:
            # Add random jitter (±25%)
            jitter_amount = delay * 0.25
            delay += random.uniform(-jitter_amount, jitter_amount)

        return max(0, delay)

    def _should_retry(self, exception: Exception, attempt: int) -> bool:
        """Determine if exception should trigger retry."""
        if attempt >= self.max_retries:
            return False

        # Client errors will not succeed on retry
        if isinstance(exception, APIError) and exception.status_code is not None:
            if 400 <= exception.status_code < 500:
                return False

        if isinstance(exception, (APIError, TimeoutError, RateLimitError)):
            return True

        if isinstance(exception, (ConnectionError, OSError)):
            return True

        return False

    def execute(self, func: Callable[..., T], *args, **kwargs) -> T:
        """
        Execute function with retry logic.

        Args:
            func: Function to execute
            *args: Positional arguments
            **kwargs: Keyword arguments

        Returns:
            Function result

        Raises:
            Last exception if all retries exhausted
        """
        last_exception: Optional[Exception] = None

        for attempt in range(self.max_retries + 1):
            try:
                return func(*args, **kwargs)

            except Exception as e:
                last_exception = e

                if not self._should_retry(e, attempt):
                    logger.debug(
                        f"Not retrying {func.__name__} after attempt {attempt + 1}: "
                        f"{type(e).__name__}"
                    )
                    raise

                delay = self.delay_for(attempt)
                if isinstance(e, RateLimitError) and e.retry_after:
                    delay = max(delay, e.retry_after)

                logger.warning(
                    f"Retry {attempt + 1}/{self.max_retries} for {func.__name__} "
                    f"after {type(e).__name__}: {e}. "
                    f"Waiting {delay:.2f}s"
                )

                time.sleep(delay)

        if last_exception:
            logger.error(
                f"All {self.max_retries} retries exhausted for {func.__name__}"
            )
            raise last_exception

        raise PacificaError("Retry logic error")


def with_retry(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0
) -> Callable:
    """
    Decorator to add retry logic to function.

    Args:
        max_retries: Maximum retry attempts
        base_delay: Initial delay in seconds
        max_delay: Maximum delay in seconds

    Returns:
        Decorated function
    """
    def decorator(func: Callable) -> Callable:
        strategy = RetryStrategy(
            max_retries=max_retries,
            base_delay=base_delay,
            max_delay=max_delay
        )

        @wraps(func)
        def wrapper(*args, **kwargs):
            return strategy.execute(func, *args, **kwargs)

        return wrapper

    return decorator
