"""
Bounded retry with exponential backoff for model calls.

Delay before attempt ``n`` (n >= 2) is ``base_delay * factor ** (n - 2)``,
i.e. the same ``base * factor**(attempts-1)`` schedule used for failed jobs.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from inspection_engine.core.config import settings
from inspection_engine.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay_seconds: float = 1.0
    backoff_factor: float = 2.0

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_attempts=settings.ai_retry_max_attempts,
            base_delay_seconds=settings.ai_retry_base_delay_seconds,
            backoff_factor=settings.ai_retry_backoff_factor,
        )

    def delay_for(self, failed_attempts: int) -> float:
        """Seconds to wait after ``failed_attempts`` consecutive failures."""
        return self.base_delay_seconds * (self.backoff_factor ** max(failed_attempts - 1, 0))


async def retry_async(
    operation: Callable[[int], Awaitable[T]],
    *,
    policy: RetryPolicy,
    retry_on: tuple[type[BaseException], ...],
    name: str,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run ``operation(attempt)`` until it succeeds or attempts are exhausted.

    Only exceptions in ``retry_on`` are retried; the last one is re-raised
    after the final attempt. Anything else propagates immediately.
    """
    attempt = 1
    while True:
        try:
            return await operation(attempt)
        except retry_on as exc:
            if attempt >= policy.max_attempts:
                logger.error(
                    "retry_exhausted",
                    operation=name,
                    attempts=attempt,
                    error=str(exc),
                )
                raise
            delay = policy.delay_for(attempt)
            logger.warning(
                "retry_scheduled",
                operation=name,
                attempt=attempt,
                delay_seconds=delay,
                error=str(exc),
            )
            await sleep(delay)
            attempt += 1
