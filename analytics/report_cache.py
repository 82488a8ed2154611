"""
Time-bounded report cache.

A plain in-process key/value store. Freshness is checked when an entry is
read; stale entries are ignored and get replaced by the next ``set`` for the
same key. There is no locking: concurrent writers race and the last write
wins, which is fine because every entry is a recomputation of the same query.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from analytics.config import REPORT_CACHE_TTL_SECONDS

TODAY_SENTINEL = "today"


@dataclass(frozen=True)
class CacheEntry:
    key: str
    data: Any
    timestamp: float


class ReportCache:
    def __init__(self, ttl_seconds: float = REPORT_CACHE_TTL_SECONDS,
                 clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}

    @staticmethod
    def make_key(tenant_id: str, pipeline_id: str, date: Optional[str] = None) -> str:
        # "today" is not resolved to a calendar date, so an entry written just
        # before midnight is still served after it until the TTL runs out.
        return f"{tenant_id}:{pipeline_id}:{date or TODAY_SENTINEL}"

    def get(self, key: str) -> Optional[Any]:
        """Cached data for ``key``, or None when absent or older than the TTL."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.timestamp >= self.ttl_seconds:
            return None
        return entry.data

    def set(self, key: str, data: Any) -> None:
        self._entries[key] = CacheEntry(key=key, data=data, timestamp=self._clock())

    def __len__(self) -> int:
        return len(self._entries)
