"""
TTL Cache - small in-memory read cache for tenant configuration.

Entries expire after a fixed time-to-live and can be invalidated
explicitly when the underlying record is written.
"""
from dataclasses import dataclass
from typing import Any, Dict, Generic, Optional, TypeVar

from .clock import MonotonicClock, monotonic

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    """Cached value and the monotonic time it was stored."""
    value: T
    stored_at: float


class TTLCache(Generic[T]):
    """
    Key/value cache with a fixed time-to-live.

    The clock is injected so expiry can be tested without sleeping.
    Refresh is single assignment: a reader either sees the previous
    entry or the new one, never a partially built value.
    """

    def __init__(self, ttl_seconds: float, clock: Optional[MonotonicClock] = None):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self._clock = clock if clock is not None else monotonic
        self._entries: Dict[str, CacheEntry[T]] = {}

    def get(self, key: str) -> Optional[T]:
        """Return the cached value, or None when missing or expired"""
        entry = self._entries.get(key)
        if entry is None:
            return None

        if self._clock() - entry.stored_at >= self.ttl_seconds:
            self._entries.pop(key, None)
            return None

        return entry.value

    def set(self, key: str, value: T) -> None:
        self._entries[key] = CacheEntry(value=value, stored_at=self._clock())

    def invalidate(self, key: str) -> bool:
        """Drop a single key. Returns True if it was cached."""
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: Any) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        return len(self._entries)
