"""Retry wrapper with adaptive exponential backoff and jitter."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, TypeVar

from .errors import ErrorKind, RateLimitedError, UploadError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BackoffExecutor:
    """Run an async operation, retrying rate-limit and server failures.

    The adaptive factor grows by ``ADAPTIVE_MULTIPLIER`` on every 429 and is
    kept on the instance, so later operations in the same run start with a
    longer base delay. Authentication and client errors are never retried.
    """

    ADAPTIVE_MULTIPLIER = 1.5

    def __init__(
        self,
        max_retries: int = 5,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        max_adaptive_delay: float = 10.0,
        server_error_delay_cap: float = 3.0,
        max_jitter: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.max_adaptive_delay = max_adaptive_delay
        self.server_error_delay_cap = server_error_delay_cap
        self.max_jitter = max_jitter
        self._sleep = sleep
        self._rng = rng
        self.adaptive_factor = 1.0

    def reset(self) -> None:
        self.adaptive_factor = 1.0

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        max_retries: Optional[int] = None,
        base_delay: Optional[float] = None,
    ) -> T:
        retries = self.max_retries if max_retries is None else max_retries
        base = self.base_delay if base_delay is None else base_delay

        attempt = 0
        while True:
            try:
                return await operation()
            except UploadError as exc:
                if not exc.retryable or attempt >= retries:
                    raise
                delay = self._delay_for(exc, base, attempt)
                logger.warning(
                    "Retry attempt %s/%s after %.2fs (%s)", attempt + 1, retries, delay, exc.message
                )
            attempt += 1
            await self._sleep(delay)

    def _delay_for(self, exc: UploadError, base: float, attempt: int) -> float:
        adaptive_base = min(base * self.adaptive_factor, self.max_adaptive_delay)
        delay = adaptive_base * (2 ** attempt)

        if exc.kind is ErrorKind.RATE_LIMITED:
            retry_after = exc.retry_after if isinstance(exc, RateLimitedError) else None
            if retry_after:
                delay = max(delay, retry_after)
            if base > 0:
                ceiling = max(self.max_adaptive_delay / base, 1.0)
                self.adaptive_factor = min(self.adaptive_factor * self.ADAPTIVE_MULTIPLIER, ceiling)
        elif exc.kind is ErrorKind.TRANSIENT_SERVER:
            delay = min(delay, self.server_error_delay_cap)

        jitter = self._rng() * self.max_jitter
        return min(delay + jitter, self.max_delay)
