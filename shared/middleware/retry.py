"""Retry policy for backend requests"""

import asyncio
import inspect
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Tuple, Type

logger = logging.getLogger(__name__)


@dataclass
class RetryStats:
    """Retry statistics."""
    calls: int = 0
    retries: int = 0
    failures: int = 0


class RetryPolicy:
    """Retry policy for failed requests.

    Only exceptions listed in ``retry_on`` are retried, everything else is
    raised on the first failure. When the raised exception carries a
    ``retry_after`` attribute (seconds), that wait is used instead of the
    exponential backoff, still bounded by ``max_delay``.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        exponential_base: float = 2.0,
        jitter: bool = False,
        retry_on: Tuple[Type[BaseException], ...] = (Exception,),
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        name: str = "request",
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.retry_on = retry_on
        self.name = name
        self.stats = RetryStats()
        self._sleep = sleep

    def compute_delay(self, attempt: int, error: Optional[BaseException] = None) -> float:
        """Delay before the attempt following ``attempt`` (0-based)."""
        retry_after = getattr(error, "retry_after", None) if error is not None else None
        if retry_after is not None:
            return min(float(retry_after), self.max_delay)

        delay = min(
            self.base_delay * (self.exponential_base ** attempt),
            self.max_delay
        )
        if self.jitter:
            delay *= (0.5 + random.random() * 0.5)
        return delay

    async def execute_with_retry(self, func: Callable, *args, **kwargs) -> Any:
        """Execute function with retry policy."""
        self.stats.calls += 1
        last_exception: Optional[BaseException] = None

        for attempt in range(self.max_attempts):
            try:
                result = func(*args, **kwargs)
                if inspect.isawaitable(result):
                    result = await result
                return result

            except self.retry_on as e:
                last_exception = e

                if attempt == self.max_attempts - 1:
                    break

                delay = self.compute_delay(attempt, e)
                self.stats.retries += 1
                logger.warning(
                    f"{self.name} attempt {attempt + 1}/{self.max_attempts} failed, "
                    f"retrying in {delay:.2f}s: {e}"
                )
                await self._sleep(delay)

        self.stats.failures += 1
        raise last_exception
