"""Reconnect delay schedule."""

from typing import Optional, Sequence

from .config import DEFAULT_BACKOFF_MS


class BackoffSchedule:
    """Fixed-table backoff indexed by consecutive failures.

    The n-th consecutive failure waits ``delays_ms[n]``; once the table is
    exhausted the last entry is repeated. ``reset()`` starts over from the
    first entry.
    """

    def __init__(self, delays_ms: Optional[Sequence[int]] = None):
        self._delays_ms = tuple(delays_ms or DEFAULT_BACKOFF_MS)
        self._failures = 0

    @property
    def failures(self) -> int:
        """Consecutive failures recorded since the last reset."""
        return self._failures

    def next_delay_ms(self) -> int:
        """Delay for the next attempt; records one more failure."""
        index = min(self._failures, len(self._delays_ms) - 1)
        self._failures += 1
        return self._delays_ms[index]

    def next_delay(self) -> float:
        """Same as ``next_delay_ms`` but in seconds."""
        return self.next_delay_ms() / 1000.0

    def reset(self) -> None:
        self._failures = 0
