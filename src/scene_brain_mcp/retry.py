"""Backoff for transient Gemini failures.

Rate limits, timeouts and 503s are retried with exponential backoff plus
jitter. Everything else, and every storage write, fails on the first error.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from .config import ServerConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRANSIENT_MARKERS: tuple[str, ...] = (
    "429",
    "quota",
    "resource_exhausted",
    "timeout",
    "timed out",
    "503",
    "unavailable",
)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0

    @classmethod
    def from_config(cls, config: ServerConfig) -> RetryPolicy:
        return cls(
            max_attempts=config.retry_max_attempts,
            base_delay=config.retry_base_delay,
            max_delay=config.retry_max_delay,
        )

    def delay(self, failures: int) -> float:
        """Seconds to wait after the *failures*-th consecutive failure (1-based)."""
        return min(self.base_delay * 2 ** (failures - 1) + random.random(), self.max_delay)


def is_transient(exc: Exception) -> bool:
    """True when the error text names a rate limit, timeout or unavailable backend."""
    text = str(exc).lower()
    return any(marker in text for marker in _TRANSIENT_MARKERS)


async def with_retry(call: Callable[[], Awaitable[T]], policy: RetryPolicy) -> T:
    """Await ``call()`` until it succeeds, a permanent error occurs, or attempts run out.

    *call* must build a fresh awaitable each time it is invoked.

    Raises:
        The last error once it is permanent or ``policy.max_attempts`` is reached.
    """
    failures = 0
    while True:
        try:
            return await call()
        except Exception as exc:
            failures += 1
            if failures >= policy.max_attempts or not is_transient(exc):
                raise
            wait = policy.delay(failures)
            logger.warning(
                "Gemini call failed (%s); attempt %d/%d, retrying in %.1fs",
                exc, failures, policy.max_attempts, wait,
            )
            await asyncio.sleep(wait)
