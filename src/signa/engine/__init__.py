"""Engine layer: response caching."""

from signa.engine.cache import CacheStats, LRUResponseCache, cache_key

__all__ = ["CacheStats", "LRUResponseCache", "cache_key"]
