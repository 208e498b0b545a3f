# ==============================================================================
# Traffic Counter Abstract Base Class
# ==============================================================================
"""
Abstract interface for windowed traffic counters used by attack mode.

Counters are fixed windows aligned to the epoch: a counter for a 60 second
window covers [n*60, (n+1)*60). Increments must be atomic so many concurrent
requests for the same site can count safely without application locks.

Implementations: Valkey (production), fakeredis-backed Valkey (tests).
"""

from abc import ABC, abstractmethod


class TrafficCounter(ABC):
    """Atomic increment + windowed read for per-key hit counts."""

    @abstractmethod
    def hit(self, key: str, window_seconds: int, now: float | None = None) -> int:
        """
        Count one hit in the current window.

        Args:
            key: Counter key (e.g. "site:<id>")
            window_seconds: Window length in seconds
            now: Unix timestamp, defaults to the current time

        Returns:
            Count for the current window after the increment
        """
        ...

    @abstractmethod
    def window_counts(
        self, key: str, window_seconds: int, now: float | None = None
    ) -> tuple[int, int]:
        """
        Read the current and previous window counts without incrementing.

        Returns:
            Tuple of (current window count, previous window count)
        """
        ...
