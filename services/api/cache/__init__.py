"""
In-memory caching for upstream feeds.

Snapshots of YouBike stations, TDX bus stops and per-stop arrival estimates
are held in process memory with fixed TTLs and served stale when a refresh
fails.
"""

from services.api.cache.timed_cache import TimedCache, CacheEntry

__all__ = ["TimedCache", "CacheEntry"]
