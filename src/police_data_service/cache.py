"""
In-memory response cache for the police data proxy.

Cache Configuration:
- 5-minute TTL so repeated dashboard loads don't hammer data.police.uk
- Cache key is "{force}-{date}", e.g. "metropolitan-2024-01"
- Uses monotonic() for TTL comparison (immune to system clock changes)
- Stale entries are only swept once the cache grows past the sweep threshold
"""

import logging
from time import monotonic

logger = logging.getLogger(__name__)

CACHE_TTL_SECONDS = 300
CACHE_SWEEP_THRESHOLD = 100


def make_key(force: str, date: str) -> str:
    """Cache key for one force and month."""
    return f"{force}-{date}"


class TTLCache:
    """
    Process-wide key -> (timestamp, value) map with a fixed expiry window.

    One instance is created per Flask app and handed to the blueprints that
    need it. Tests build their own instance (optionally with a fake clock).
    """

    def __init__(self, ttl_seconds: float = CACHE_TTL_SECONDS,
                 sweep_threshold: int = CACHE_SWEEP_THRESHOLD, clock=monotonic):
        self.ttl_seconds = ttl_seconds
        self.sweep_threshold = sweep_threshold
        self._clock = clock
        # Structure: { key: (timestamp, value) }
        self._entries: dict[str, tuple[float, object]] = {}

    def get(self, key: str):
        """
        Return the cached value if it exists and is within TTL.

        Expired entries are left in place; they are removed by the sweep in set().
        """
        cached = self._entries.get(key)
        if cached is None:
            return None

        if self._clock() - cached[0] >= self.ttl_seconds:
            return None
        return cached[1]

    def set(self, key: str, value) -> None:
        """Store value with the current timestamp, then sweep if oversized."""
        self._entries[key] = (self._clock(), value)

        if len(self._entries) > self.sweep_threshold:
            self._sweep()

    def _sweep(self) -> None:
        now = self._clock()
        stale = [
            key for key, (stamp, _) in list(self._entries.items())
            if now - stamp > self.ttl_seconds
        ]
        for key in stale:
            self._entries.pop(key, None)

        if stale:
            logger.info(f"Evicted {len(stale)} stale cache entries")

    def clear(self) -> None:
        """Drop every entry."""
        self._entries.clear()

    # Called when the app is torn down (and between tests)
    teardown = clear

    def size(self) -> int:
        return len(self._entries)

    def __len__(self):
        return self.size()

    def __contains__(self, key):
        return self.get(key) is not None
