from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

from .errors import CurationError, CurationErrorKind, FetchError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_RETRYABLE_STATUS = {429, 500, 502, 503, 504}


@dataclass
class RetryPolicy:
    """
    Bounded retry with exponential backoff for a single pipeline call.

    ``max_attempts=1`` (the default) means fail fast: the first error ends
    the crawl. Backoff is ``min(max_backoff, base_delay * 2**attempt)`` plus
    up to ``jitter_factor`` of that delay.
    """

    max_attempts: int = 1
    base_delay: float = 1.0
    max_backoff_seconds: float = 30.0
    jitter_factor: float = 0.1
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False)

    def calculate_backoff(self, attempt: int) -> float:
        delay = min(self.max_backoff_seconds, self.base_delay * (2**attempt))
        return delay + delay * self.jitter_factor * random.random()

    def is_retryable(self, exc: Exception) -> bool:
        if isinstance(exc, FetchError):
            return exc.status_code is None or exc.status_code in _RETRYABLE_STATUS
        if isinstance(exc, CurationError):
            return exc.kind in (CurationErrorKind.RATE_LIMITED, CurationErrorKind.UPSTREAM_ERROR)
        return False

    async def run(self, operation: Callable[[], Awaitable[T]], description: str = "operation") -> T:
        attempts = max(self.max_attempts, 1)
        for attempt in range(attempts):
            try:
                return await operation()
            except Exception as exc:
                if attempt + 1 >= attempts or not self.is_retryable(exc):
                    raise
                delay = self.calculate_backoff(attempt)
                logger.warning(
                    "%s failed (attempt %d/%d): %s; retrying in %.2fs",
                    description,
                    attempt + 1,
                    attempts,
                    exc,
                    delay,
                )
                await self.sleep(delay)
        raise AssertionError("unreachable")
