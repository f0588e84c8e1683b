"""Caching layer for LLM responses.

Components:
    - ResponseCache: Lazily initialized, disk-backed, content-addressed cache
    - CacheEntry / CacheStats / CacheState: Stored entry, counters, lifecycle
    - compression: Reversible key-shortening for cached JSON
    - eviction: Age- and access-weighted victim selection

Usage::

    from docai.cache import ResponseCache

    cache = ResponseCache(cache_dir="./cache")
    key = cache.generate_hash(document_text)
    result = await cache.get(key)
    if result is None:
        result = await produce_metadata(document_text)
        await cache.set(key, result)
    await cache.close()
"""

from .common import CacheEntry, CacheState, CacheStats, generate_hash
from .response_cache import ResponseCache

__all__ = [
    "CacheEntry",
    "CacheState",
    "CacheStats",
    "ResponseCache",
    "generate_hash",
]
