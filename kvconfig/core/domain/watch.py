"""
Per-key watch state and retry backoff policy.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .namespace import DEFAULT_MAX_RETRY_DELAY_MS, DEFAULT_START_RETRY_DELAY_MS


class WatchState(Enum):
    """Lifecycle of a single key's watch cycle."""
    IDLE = "idle"
    WATCHING = "watching"
    DELIVERING = "delivering"
    BACKING_OFF = "backing_off"
    TERMINATED = "terminated"


class RetryBackoff:
    """
    Bounded exponential backoff.

    The delay starts at ``start_ms``, doubles on every consecutive failure
    and never exceeds ``max_ms``. A success resets it to ``start_ms``.
    """

    def __init__(
        self,
        start_ms: int = DEFAULT_START_RETRY_DELAY_MS,
        max_ms: int = DEFAULT_MAX_RETRY_DELAY_MS
    ) -> None:
        if start_ms < 0:
            raise ValueError("start_ms must not be negative")
        if max_ms < start_ms:
            max_ms = start_ms
        self.start_ms = start_ms
        self.max_ms = max_ms
        self.current_ms = start_ms
        self.failures = 0

    def next_delay(self) -> int:
        """Return the delay to wait now and advance to the next one."""
        delay = self.current_ms
        self.failures += 1
        self.current_ms = min(max(self.current_ms * 2, 1), self.max_ms)
        return delay

    def reset(self) -> None:
        """Back to the initial delay after a successful call."""
        self.current_ms = self.start_ms
        self.failures = 0


@dataclass
class Watch:
    """Process-local state of one watched key; owned by a single watch cycle."""

    key: str
    path: str
    backoff: RetryBackoff
    resume_token: int = 0
    previously_deleted: bool = False
    state: WatchState = WatchState.IDLE
    notifications: int = 0
    last_error: Optional[str] = field(default=None, repr=False)
