"""Token bucket used to cap how fast one connection may inject input."""

from __future__ import annotations

import time
from typing import Callable

from .constants import INPUT_BUCKET_CAPACITY, INPUT_REFILL_RATE

Clock = Callable[[], float]


class TokenBucket:
    """Token bucket rate limiter with lazy refill.

    Tokens are replenished from the elapsed time whenever the bucket is
    consulted; there is no background timer.
    """

    def __init__(
        self,
        capacity: int = INPUT_BUCKET_CAPACITY,
        refill_rate: float = INPUT_REFILL_RATE,
        clock: Clock = time.monotonic,
    ) -> None:
        if capacity <= 0:
            raise ValueError("Capacity must be positive")
        if refill_rate <= 0:
            raise ValueError("Refill rate must be positive")
        self.capacity = capacity
        self.refill_rate = float(refill_rate)
        self._clock = clock
        self._tokens = float(capacity)
        self._last_refill = clock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._last_refill
        if elapsed > 0:
            self._tokens = min(
                float(self.capacity), self._tokens + elapsed * self.refill_rate
            )
            self._last_refill = now

    def try_take(self, amount: int = 1) -> bool:
        """Take ``amount`` tokens if available.

        Args:
            amount: Number of tokens (bytes) requested.

        Returns:
            True if admitted, False if the request must be dropped. A rejected
            request leaves the bucket unchanged.
        """
        if amount <= 0:
            return True

        self._refill()
        if self._tokens >= amount:
            self._tokens -= amount
            return True
        return False

    @property
    def available_tokens(self) -> float:
        self._refill()
        return self._tokens

    def reset(self) -> None:
        """Refill the bucket to capacity."""
        self._tokens = float(self.capacity)
        self._last_refill = self._clock()


__all__ = ["TokenBucket", "Clock"]
