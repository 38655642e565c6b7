"""Exponential backoff for single backing-store calls."""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx

from ..models import RateLimitError, RetryExhaustedError, TransientStoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Hard ceiling on any single backoff sleep (ms)
MAX_RETRY_DELAY = 30000
JITTER_FRACTION = 0.1


def is_retryable_error(error: BaseException) -> bool:
    """Rate limits, 5xx responses, connection failures and timeouts are retryable."""
    if isinstance(error, TransientStoreError):
        return True
    if isinstance(error, (httpx.TimeoutException, httpx.TransportError)):
        return True
    if isinstance(error, (TimeoutError, ConnectionError)):
        return True

    status = getattr(error, "status", None)
    if status is None:
        status = getattr(error, "status_code", None)
    if isinstance(status, int) and (status == 429 or status >= 500):
        return True

    return "timeout" in str(error).lower()


class RetryExecutor:
    """Run one remote operation with classified retries.

    Args:
        max_retries: Total attempts, including the first.
        base_delay: Backoff base in milliseconds.
        max_delay: Cap on a single sleep in milliseconds.
        sleep: Coroutine used to wait (seconds); injectable for tests.
    """

    def __init__(
        self,
        max_retries: int = 5,
        base_delay: float = 1000,
        max_delay: float = MAX_RETRY_DELAY,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ):
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._sleep = sleep

    def backoff_delay(self, attempt: int, error: BaseException | None = None) -> float:
        """Delay in milliseconds before the retry following ``attempt`` (0-based)."""
        exponential = self.base_delay * (2**attempt)
        delay = exponential + random.uniform(0, JITTER_FRACTION * exponential)
        retry_after = getattr(error, "retry_after", None) if isinstance(error, RateLimitError) else None
        if retry_after:
            delay = max(delay, retry_after * 1000)
        return min(delay, self.max_delay)

    async def run(self, operation: Callable[[], Awaitable[T]], context: str = "operation") -> T:
        """Await ``operation()`` until it succeeds, fails permanently, or runs out of attempts.

        Raises:
            RetryExhaustedError: The last of ``max_retries`` attempts failed
                with a retryable error.
            Exception: Any non-retryable error, unchanged, on first occurrence.
        """
        last_error: BaseException | None = None

        for attempt in range(self.max_retries):
            try:
                result = await operation()
            except Exception as err:
                if not is_retryable_error(err):
                    raise
                last_error = err
                if attempt + 1 >= self.max_retries:
                    break

                delay = self.backoff_delay(attempt, err)
                if isinstance(err, RateLimitError):
                    logger.warning(
                        f"Rate limited on {context}. Retry after {delay / 1000:.2f}s. "
                        f"Attempt {attempt + 1}/{self.max_retries}"
                    )
                else:
                    logger.warning(
                        f"Transient error on {context}: {err}. "
                        f"Retry {attempt + 1}/{self.max_retries} in {delay / 1000:.2f}s"
                    )
                await self._sleep(delay / 1000)
                continue

            if attempt > 0:
                logger.info(f"{context} succeeded after {attempt + 1}/{self.max_retries} attempts")
            return result

        assert last_error is not None
        logger.error(f"{context} exhausted retries ({self.max_retries}/{self.max_retries})")
        raise RetryExhaustedError(context, self.max_retries, last_error) from last_error
