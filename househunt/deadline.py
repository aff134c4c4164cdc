"""Deadline values threaded through every suspension point.

A flow attempt gets one ``Deadline``; each network call, page wait and UI
step derives its own timeout from what is left of it, so cancelling the
attempt never depends on a single layer remembering to time out.
"""

import asyncio
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

from househunt.exceptions import FetchTimeoutError


class Deadline:
    """An absolute point on the monotonic clock.

    Attributes:
        when: Monotonic timestamp (``time.monotonic`` seconds) of expiry.
    """

    def __init__(self, when: float) -> None:
        self.when = when

    @classmethod
    def after(cls, seconds: float) -> "Deadline":
        """Create a deadline ``seconds`` from now."""
        return cls(time.monotonic() + seconds)

    def remaining(self) -> float:
        """Seconds left, never negative."""
        return max(0.0, self.when - time.monotonic())

    def remaining_ms(self, cap_ms: int | None = None) -> int:
        """Milliseconds left, optionally capped by a per-step timeout.

        Playwright treats a timeout of 0 as "no timeout", so an expired
        deadline yields 1ms instead.
        """
        remaining = int(self.remaining() * 1000)
        if cap_ms is not None:
            remaining = min(remaining, cap_ms)
        return max(1, remaining)

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0.0

    def check(self, operation: str) -> None:
        """Raise if the deadline has already passed.

        Raises:
            FetchTimeoutError: If no time is left for ``operation``.
        """
        if self.expired:
            raise FetchTimeoutError(operation=operation, timeout=0.0)

    @asynccontextmanager
    async def scope(self, operation: str, cap: float | None = None) -> AsyncIterator[None]:
        """Bound the enclosed awaits by this deadline.

        Args:
            operation: Label used in the timeout error.
            cap: Optional per-layer timeout in seconds, applied if shorter.

        Raises:
            FetchTimeoutError: If the enclosed block does not finish in time.
        """
        budget = self.remaining() if cap is None else min(self.remaining(), cap)
        self.check(operation)
        try:
            async with asyncio.timeout(budget):
                yield
        except TimeoutError as exc:
            raise FetchTimeoutError(operation=operation, timeout=budget) from exc

    def __repr__(self) -> str:
        return f"Deadline(remaining={self.remaining():.2f}s)"
