"""Replay caching for RallyScout.

Results are memoized whole, keyed by ``(match_id, log_version)``. A new log
version is a new key; cached results are never patched in place.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

CacheKey = tuple[str, str]


class AnalysisCache(Generic[T]):
    """Bounded in-memory LRU cache for match analyses."""

    def __init__(self, max_entries: int = 32):
        self.max_entries = max_entries
        self._entries: OrderedDict[CacheKey, T] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def get(self, match_id: str, log_version: str | None) -> T | None:
        """Load a cached result if available."""
        if log_version is None:
            return None
        key = (match_id, log_version)
        value = self._entries.get(key)
        if value is not None:
            self._entries.move_to_end(key)
            logger.debug("Cache hit for match %s version %s", match_id, log_version)
        return value

    def set(self, match_id: str, log_version: str | None, value: T) -> None:
        """Store a result. Unversioned snapshots are never cached."""
        if log_version is None or self.max_entries <= 0:
            return
        key = (match_id, log_version)
        self._entries[key] = value
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Evicted cached analysis %s", evicted)

    def invalidate(self, match_id: str) -> int:
        """Drop every cached version of a match. Returns the number removed."""
        keys = [k for k in self._entries if k[0] == match_id]
        for key in keys:
            del self._entries[key]
        return len(keys)

    def clear(self) -> None:
        self._entries.clear()
