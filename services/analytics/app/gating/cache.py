"""In-process TTL cache for flag / A-B test definitions.

Entries map a definition name to ``CacheEntry(definition, fetched_at)``.
An entry older than the TTL is treated as absent, so a decision is never based
on a definition read more than ``ttl_s`` seconds ago. Misses are not cached.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    definition: T
    fetched_at: float


class TTLCache(Generic[T]):
    def __init__(self, ttl_s: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_s = ttl_s
        self._clock = clock
        self._entries: dict[str, CacheEntry[T]] = {}

    def get(self, name: str) -> T | None:
        entry = self._entries.get(name)
        if entry is None:
            return None
        if self._clock() - entry.fetched_at >= self.ttl_s:
            del self._entries[name]
            return None
        return entry.definition

    def put(self, name: str, definition: T) -> None:
        self._entries[name] = CacheEntry(definition=definition, fetched_at=self._clock())

    def invalidate(self, name: str) -> None:
        self._entries.pop(name, None)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, name: str) -> bool:
        return self.get(name) is not None

    def __len__(self) -> int:
        return len(self._entries)
