"""
TimedCache: in-memory snapshot cache with a fixed wall-clock TTL.

Each entry holds the last successfully fetched payload and the clock reading
at which it was stored. An entry is fresh while ``now - stored_at < ttl``.

Lookup:
  - Fresh entry       -> returned as-is, fetch function not called
  - Missing / stale   -> fetch, store with the current timestamp, return
  - Fetch raises      -> stale entry if one exists, else ``empty()``

The cache never raises out of ``get_or_fetch``: upstream HTTP errors,
malformed JSON and missing credentials all degrade to stale-or-empty and are
logged. Concurrent refreshes of the same key are last-writer-wins; values are
idempotent snapshots of upstream state.

Keyed caches can be bounded with ``max_entries``: storing a new key past the
bound evicts the least recently used entry.

Usage:
    stations = TimedCache(fetch=client.fetch_stations, ttl_seconds=60, empty=list, name="youbike")
    data = await stations.get_or_fetch()

    arrivals = TimedCache(fetch=client.fetch_arrivals, ttl_seconds=30, empty=list, name="bus_eta")
    data = await arrivals.get_or_fetch(stop_uid)
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Hashable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Key used when the cache holds a single snapshot
_SINGLE = "__single__"


@dataclass
class CacheEntry(Generic[T]):
    value: T
    stored_at: float


class TimedCache(Generic[T]):
    """
    Args:
        fetch:        Async callable producing a fresh value. Called with the
                      key when one is given to ``get_or_fetch``, with no
                      arguments otherwise.
        ttl_seconds:  Freshness window.
        empty:        Factory for the value returned when the fetch fails and
                      nothing is cached.
        clock:        Monotonic clock; injectable for tests.
        name:         Label used in log lines.
        max_entries:  Upper bound on stored keys (LRU eviction); None for no bound.
    """

    def __init__(
        self,
        fetch: Callable[..., Awaitable[T]],
        ttl_seconds: float,
        empty: Callable[[], T],
        clock: Callable[[], float] = time.monotonic,
        name: str = "cache",
        max_entries: int | None = None,
    ) -> None:
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._fetch = fetch
        self._ttl = ttl_seconds
        self._empty = empty
        self._clock = clock
        self._name = name
        self._max_entries = max_entries
        self._entries: OrderedDict[Hashable, CacheEntry[T]] = OrderedDict()

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    async def get_or_fetch(self, key: Hashable | None = None) -> T:
        slot = _SINGLE if key is None else key
        now = self._clock()

        entry = self._entries.get(slot)
        if entry is not None and (now - entry.stored_at) < self._ttl:
            self._entries.move_to_end(slot)
            logger.debug("%s cache hit: key=%s", self._name, slot)
            return entry.value

        try:
            value = await (self._fetch() if key is None else self._fetch(key))
        except Exception:
            if entry is not None:
                logger.warning(
                    "%s fetch failed, serving stale entry: key=%s age=%.1fs",
                    self._name,
                    slot,
                    now - entry.stored_at,
                    exc_info=True,
                )
                return entry.value
            logger.warning(
                "%s fetch failed with nothing cached, returning empty: key=%s",
                self._name,
                slot,
                exc_info=True,
            )
            return self._empty()

        self._store(slot, value)
        logger.debug("%s cache refreshed: key=%s", self._name, slot)
        return value

    def _store(self, slot: Hashable, value: T) -> None:
        self._entries[slot] = CacheEntry(value=value, stored_at=self._clock())
        self._entries.move_to_end(slot)
        if self._max_entries is None:
            return
        while len(self._entries) > self._max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("%s cache evicted: key=%s", self._name, evicted)

    def invalidate(self, key: Hashable | None = None) -> None:
        self._entries.pop(_SINGLE if key is None else key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"TimedCache(name={self._name!r}, ttl={self._ttl}, entries={len(self._entries)})"
