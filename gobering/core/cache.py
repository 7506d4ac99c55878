"""In-process query cache with prefix invalidation.

Holds computed slot lists keyed by request parameters. One instance lives on
``app.state`` and is handed to services through a dependency; writes that can
change availability drop every key under ``slots:{professional_id}:``.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """Cached value with its insertion time."""

    value: Any
    stored_at: float


class SlotCache:
    """TTL cache keyed by strings, invalidated by key prefix.

    Expired entries are swept on write at most once per TTL, and the oldest
    entries are evicted once ``max_entries`` is reached, so keys that are
    never read again do not accumulate.
    """

    def __init__(self, ttl_seconds: int = 60, max_entries: int = 2048) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._storage: dict[str, CacheEntry] = {}
        self._last_sweep = time.monotonic()

    @property
    def enabled(self) -> bool:
        return self.ttl_seconds > 0

    def _is_stale(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.stored_at > self.ttl_seconds

    def get(self, key: str) -> Any | None:
        """Return the cached value, or None when absent or stale."""
        if not self.enabled:
            return None

        entry = self._storage.get(key)
        if entry is None:
            return None

        if self._is_stale(entry, time.monotonic()):
            del self._storage[key]
            return None

        return entry.value

    def set(self, key: str, value: Any) -> None:
        if not self.enabled:
            return

        now = time.monotonic()
        if now - self._last_sweep > self.ttl_seconds:
            self.purge_expired(now)

        # Re-insert so dict order stays oldest-first
        self._storage.pop(key, None)
        while self._storage and len(self._storage) >= self.max_entries:
            del self._storage[next(iter(self._storage))]

        self._storage[key] = CacheEntry(value=value, stored_at=now)

    def purge_expired(self, now: float | None = None) -> int:
        """Drop every stale entry. Returns how many were dropped."""
        now = time.monotonic() if now is None else now
        stale = [key for key, entry in self._storage.items() if self._is_stale(entry, now)]
        for key in stale:
            del self._storage[key]
        self._last_sweep = now
        return len(stale)

    def invalidate_prefix(self, prefix: str) -> int:
        """Drop every key starting with ``prefix``. Returns how many were dropped."""
        stale = [key for key in self._storage if key.startswith(prefix)]
        for key in stale:
            del self._storage[key]

        if stale:
            logger.debug(f"Invalidated {len(stale)} cache entries under {prefix!r}")
        return len(stale)

    def clear(self) -> None:
        self._storage.clear()

    def __len__(self) -> int:
        return len(self._storage)


def slots_prefix(professional_id: str) -> str:
    """Key prefix covering every cached slot query for a professional."""
    return f"slots:{professional_id}:"
