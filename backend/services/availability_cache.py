"""Memoization layer for computed day slots."""

from __future__ import annotations

import time
from collections import OrderedDict
from dataclasses import dataclass
from datetime import date
from threading import RLock
from typing import Callable, Optional

from backend.domain.models import DaySlots, OwnerRef
from backend.utils.logger import get_logger


logger = get_logger(__name__)

CACHE_KEY_PREFIX = "availability"


def build_cache_key(
    owner: OwnerRef,
    event_id: Optional[str],
    target_date: date,
    duration_id: int,
) -> str:
    """Deterministic key for one (owner, event, date, duration) query."""
    return ":".join(
        [
            CACHE_KEY_PREFIX,
            owner.kind.value,
            str(owner.owner_id),
            event_id or "*",
            target_date.isoformat(),
            str(duration_id),
        ]
    )


@dataclass(frozen=True)
class _CacheEntry:
    owner_token: str
    target_date: date
    expires_at: float
    value: DaySlots


class AvailabilityCache:
    """Thread-safe LRU with TTL, invalidated per owner or per owner/date."""

    def __init__(
        self,
        ttl_seconds: float,
        max_entries: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds < 0:
            raise ValueError("ttl_seconds must be >= 0")
        if max_entries <= 0:
            raise ValueError("max_entries must be > 0")
        self._ttl_seconds = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, _CacheEntry] = OrderedDict()
        self._lock = RLock()
        self._generations: dict[str, int] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def enabled(self) -> bool:
        return self._ttl_seconds > 0

    def generation(self, owner: OwnerRef) -> int:
        """Counter bumped by every invalidation of `owner`."""
        with self._lock:
            return self._generations.get(owner.token, 0)

    def get(self, key: str) -> Optional[DaySlots]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at <= self._clock():
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return entry.value

    def put(
        self,
        key: str,
        owner: OwnerRef,
        value: DaySlots,
        generation: Optional[int] = None,
    ) -> bool:
        """Store `value` unless the owner was invalidated after `generation` was read."""
        if not self.enabled:
            return False
        with self._lock:
            if generation is not None and generation != self._generations.get(owner.token, 0):
                return False
            self._entries[key] = _CacheEntry(
                owner_token=owner.token,
                target_date=value.date,
                expires_at=self._clock() + self._ttl_seconds,
                value=value,
            )
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)
        return True

    def invalidate(self, owner: OwnerRef, target_date: Optional[date] = None) -> int:
        """Drop entries for an owner, optionally limited to a single date."""
        with self._lock:
            self._generations[owner.token] = self._generations.get(owner.token, 0) + 1
            stale = [
                key
                for key, entry in self._entries.items()
                if entry.owner_token == owner.token
                and (target_date is None or entry.target_date == target_date)
            ]
            for key in stale:
                del self._entries[key]
        if stale:
            logger.debug("Invalidated %s cached slot sets for %s", len(stale), owner.token)
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
