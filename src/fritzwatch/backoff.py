"""Timeout and log back-off helpers shared by the presence engine."""

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from fritzwatch.errors import QueryTimeoutError

T = TypeVar("T")

# Timeouts are only reported on every 6th consecutive occurrence.
TIMEOUT_LOG_THRESHOLD = 6


async def with_timeout(awaitable: Awaitable[T], seconds: float | None) -> T:
    """Await with a deadline, turning an expired deadline into QueryTimeoutError."""
    if seconds is None or seconds <= 0:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except TimeoutError as e:
        raise QueryTimeoutError(f"no answer within {seconds:g}s") from e


class ErrorThrottle:
    """Counts consecutive failures and decides which ones get logged.

    ``record()`` returns True once the count reaches ``threshold``, then
    starts counting again from zero. A threshold of 1 logs every failure.
    """

    def __init__(self, threshold: int = 1) -> None:
        self.threshold = max(1, threshold)
        self.count = 0

    def record(self) -> bool:
        self.count += 1
        if self.count >= self.threshold:
            self.count = 0
            return True
        return False

    def reset(self) -> None:
        self.count = 0
