"""Eviction scoring for the response cache.

An entry's score is ``age / max_age - access_count * 0.1``. Higher scores
are evicted first, so old entries go before new ones and every recorded hit
buys an entry the equivalent of a tenth of ``max_age``.

A sweep removes ``max(ceil(10% of n), n - max_size + 1)`` entries, which
always leaves the cache strictly below ``max_size``.
"""
from __future__ import annotations

import math
from typing import List, Mapping

from .common import CacheEntry

ACCESS_WEIGHT = 0.1
SWEEP_FRACTION = 0.1


def eviction_score(entry: CacheEntry, now: float, max_age: float) -> float:
    """Score an entry; higher means more evictable."""
    return entry.age(now) / max_age - entry.access_count * ACCESS_WEIGHT


def eviction_count(entry_count: int, max_size: int) -> int:
    """Number of entries one sweep removes from a cache of ``entry_count``."""
    if entry_count <= 0:
        return 0
    wanted = max(math.ceil(entry_count * SWEEP_FRACTION), entry_count - max_size + 1)
    return min(wanted, entry_count)


def select_eviction_victims(
    entries: Mapping[str, CacheEntry], now: float, max_age: float, max_size: int
) -> List[str]:
    """Pick the keys to evict, highest score first.

    Ties keep insertion order, so the older insertion goes first.
    """
    scored = sorted(
        entries.items(),
        key=lambda item: eviction_score(item[1], now, max_age),
        reverse=True,
    )
    return [key for key, _ in scored[: eviction_count(len(entries), max_size)]]


def expired_keys(entries: Mapping[str, CacheEntry], now: float, max_age: float) -> List[str]:
    """Keys of all entries older than ``max_age``."""
    return [key for key, entry in entries.items() if entry.is_expired(now, max_age)]
