"""Backoff bookkeeping for sessions that are respawned after they exit."""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_INITIAL_DELAY = 0.5
DEFAULT_MAX_DELAY = 30.0


@dataclass
class RestartPolicy:
    """Exponential backoff state for one auto-restarting session.

    The policy only records when the next respawn becomes eligible; the
    registry's supervisor decides when to act on it.
    """

    initial_delay: float = DEFAULT_INITIAL_DELAY
    max_delay: float = DEFAULT_MAX_DELAY
    attempts: int = 0
    next_eligible_at: float | None = None

    def next_delay(self) -> float:
        return min(self.max_delay, self.initial_delay * (2 ** min(self.attempts, 32)))

    def record_exit(self, now: float) -> float:
        """Schedule a respawn after the current backoff delay."""
        delay = self.next_delay()
        self.attempts += 1
        self.next_eligible_at = now + delay
        return delay

    def record_success(self) -> None:
        self.attempts = 0
        self.next_eligible_at = None

    def is_due(self, now: float) -> bool:
        return self.next_eligible_at is not None and now >= self.next_eligible_at


__all__ = ["RestartPolicy", "DEFAULT_INITIAL_DELAY", "DEFAULT_MAX_DELAY"]
