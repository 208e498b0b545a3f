# ==============================================================================
# Valkey Traffic Counters
# ==============================================================================
"""
Fixed-window hit counters stored in Valkey.

Each window is its own key:

    postmetric:traffic:<key>:<window_seconds>:<window_index>

INCR and EXPIRE run in one MULTI/EXEC pipeline, so concurrent requests
count atomically and every counter expires after the window following it
has closed (the previous window stays readable for baseline comparisons).
"""

import logging
import time

from postmetric.base import TrafficCounter
from postmetric.infrastructure.cache import ValkeyCache

logger = logging.getLogger(__name__)


# ==============================================================================
# Key Prefixes
# ==============================================================================

TRAFFIC_KEY_PREFIX = "postmetric:traffic:"


class ValkeyTrafficCounter(TrafficCounter):
    """TrafficCounter backed by Valkey INCR."""

    def __init__(self, cache: ValkeyCache | None = None):
        """
        Initialize the counter.

        Args:
            cache: ValkeyCache instance. If None, creates a new one.
        """
        self._cache = cache or ValkeyCache()

    @property
    def client(self):
        """Get the underlying Redis client for direct operations."""
        return self._cache.client

    @staticmethod
    def window_key(key: str, window_seconds: int, index: int) -> str:
        return f"{TRAFFIC_KEY_PREFIX}{key}:{window_seconds}:{index}"

    def hit(self, key: str, window_seconds: int, now: float | None = None) -> int:
        """
        Count one hit in the current window.

        Args:
            key: Counter key
            window_seconds: Window length in seconds
            now: Unix timestamp, defaults to the current time

        Returns:
            Count for the current window after the increment
        """
        now = time.time() if now is None else now
        index = int(now // window_seconds)
        counter_key = self.window_key(key, window_seconds, index)

        pipe = self.client.pipeline(transaction=True)
        pipe.incr(counter_key)
        pipe.expire(counter_key, window_seconds * 2)
        count, _ = pipe.execute()
        return int(count)

    def window_counts(
        self, key: str, window_seconds: int, now: float | None = None
    ) -> tuple[int, int]:
        """
        Read the current and previous window counts.

        Returns:
            Tuple of (current, previous); missing windows count as 0
        """
        now = time.time() if now is None else now
        index = int(now // window_seconds)
        current, previous = self.client.mget(
            [
                self.window_key(key, window_seconds, index),
                self.window_key(key, window_seconds, index - 1),
            ]
        )
        return int(current or 0), int(previous or 0)
