"""Bounded TTL caches for duplicate suppression and sender rate limiting."""

import time
from collections import OrderedDict
from typing import Callable, Optional

from src.utils.config import DEDUP_TTL_SECONDS

Clock = Callable[[], float]

DEFAULT_MAX_ENTRIES = 10_000


class TTLCache:
    """
    Set of keys that expire ``ttl_seconds`` after insertion.

    Expired keys are pruned lazily on access. When ``max_entries`` is
    exceeded the least recently inserted keys are evicted first.
    """

    def __init__(
        self,
        ttl_seconds: float = DEDUP_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Clock = time.time,
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, float]" = OrderedDict()

    def prune(self) -> int:
        """Drop expired keys; returns how many were removed."""
        now = self._clock()
        removed = 0
        # Insertion order is expiry order, so stop at the first live key
        while self._entries:
            key, inserted_at = next(iter(self._entries.items()))
            if now - inserted_at <= self.ttl_seconds:
                break
            self._entries.popitem(last=False)
            removed += 1
        return removed

    def contains(self, key: str) -> bool:
        self.prune()
        return key in self._entries

    def add(self, key: str) -> None:
        self.prune()
        self._entries.pop(key, None)
        self._entries[key] = self._clock()
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def check_and_add(self, key: str) -> bool:
        """Return True if ``key`` was already present, otherwise record it."""
        if self.contains(key):
            return True
        self.add(key)
        return False

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        self.prune()
        return len(self._entries)


class SenderRateLimiter:
    """Enforces a minimum interval between accepted actions per key."""

    def __init__(self, min_interval_seconds: float, max_entries: int = DEFAULT_MAX_ENTRIES, clock: Clock = time.time):
        self.min_interval_seconds = min_interval_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._last_seen: "OrderedDict[str, float]" = OrderedDict()

    def _prune(self, now: float) -> None:
        while self._last_seen:
            key, seen_at = next(iter(self._last_seen.items()))
            if now - seen_at < self.min_interval_seconds:
                break
            self._last_seen.popitem(last=False)

    def check(self, key: str, min_interval_seconds: Optional[float] = None) -> Optional[float]:
        """
        Return the remaining wait in seconds if ``key`` acted too recently.

        Otherwise records the attempt and returns None. Passing
        ``min_interval_seconds`` replaces the interval before checking.
        """
        if min_interval_seconds is not None:
            self.min_interval_seconds = min_interval_seconds
        now = self._clock()
        self._prune(now)
        last = self._last_seen.get(key)
        if last is not None:
            remaining = self.min_interval_seconds - (now - last)
            if remaining > 0:
                return remaining

        self._last_seen.pop(key, None)
        self._last_seen[key] = now
        while len(self._last_seen) > self.max_entries:
            self._last_seen.popitem(last=False)
        return None

    def __len__(self) -> int:
        return len(self._last_seen)
