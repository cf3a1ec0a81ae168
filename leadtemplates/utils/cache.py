"""
In-memory TTL cache.

Kept separate from scoring and statistics so callers can swap it out or
disable it (``enabled=False`` or a zero TTL) in tests.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from threading import Lock
from typing import Any, Dict, Hashable, Optional, Tuple

from .clock import Clock, utc_now
from .logging import get_logger

logger = get_logger(__name__)


@dataclass
class CacheEntry:
    """Cached value with its time to live."""

    data: Any
    created_at: datetime
    ttl_seconds: float
    access_count: int = 0

    def is_expired(self, now: datetime) -> bool:
        return now - self.created_at >= timedelta(seconds=self.ttl_seconds)


class TTLCache:
    """
    Key/value cache where every entry expires after its own TTL.

    ``get`` hands back expired values together with an expiry flag and leaves
    the refresh decision to the caller.
    """

    def __init__(
        self,
        default_ttl: float = 300,
        max_entries: int = 1000,
        enabled: bool = True,
        clock: Clock = utc_now,
    ):
        self.default_ttl = default_ttl
        self.max_entries = max_entries
        self.enabled = enabled and default_ttl > 0
        self.clock = clock
        self._entries: Dict[Hashable, CacheEntry] = {}
        self._lock = Lock()
        self.stats = {"hits": 0, "misses": 0, "expired": 0, "evictions": 0}

    def get(self, key: Hashable) -> Tuple[Optional[Any], bool]:
        """Return ``(value, is_expired)``; a missing key reads as ``(None, True)``."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.stats["misses"] += 1
                return None, True

            if entry.is_expired(self.clock()):
                self.stats["expired"] += 1
                return entry.data, True

            self.stats["hits"] += 1
            entry.access_count += 1
            return entry.data, False

    def set(self, key: Hashable, value: Any, ttl: Optional[float] = None) -> None:
        """Store a value; a no-op while the cache is disabled."""
        if not self.enabled:
            return

        ttl = self.default_ttl if ttl is None else ttl
        with self._lock:
            self._entries[key] = CacheEntry(
                data=value, created_at=self.clock(), ttl_seconds=ttl
            )
            self._evict_oldest()

    def delete(self, key: Hashable) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.debug("Cache cleared")

    def __len__(self) -> int:
        return len(self._entries)

    def _evict_oldest(self) -> None:
        overflow = len(self._entries) - self.max_entries
        if overflow <= 0:
            return

        oldest = sorted(self._entries.items(), key=lambda item: item[1].created_at)
        for key, _ in oldest[:overflow]:
            del self._entries[key]
            self.stats["evictions"] += 1
