"""
Cache entry, statistics and lifecycle types.

Components:
    - CacheState: Lifecycle of a ResponseCache
    - CacheEntry: One stored response plus the metadata eviction needs
    - CacheStats: Hit/miss/set/eviction counters, persisted with the snapshot

Entries and stats round-trip through the on-disk JSON snapshot with the
camelCase keys ``accessCount`` and ``lastCleanup``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional


class CacheState(Enum):
    """Lifecycle states of a ResponseCache."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    CLOSING = "closing"
    CLOSED = "closed"


def generate_hash(text: str) -> str:
    """Return the hex SHA-256 of ``text`` (UTF-8), used as the cache key."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def data_size(data: Any) -> int:
    """Approximate stored size of ``data`` in bytes, as serialized JSON.

    Returns 0 for values that cannot be serialized.
    """
    try:
        return len(json.dumps(data, separators=(",", ":")).encode("utf-8"))
    except (TypeError, ValueError):
        return 0


@dataclass
class CacheEntry:
    """Cached response with metadata for expiry and eviction.

    Attributes:
        data: Stored value; a compact JSON string when ``compressed`` is True
        timestamp: Insertion time in epoch seconds
        access_count: Number of hits since insertion
        compressed: Whether ``data`` holds the compressed form
        size: Stored size in bytes
    """

    data: Any
    timestamp: float
    access_count: int = 0
    compressed: bool = False
    size: int = 0

    def age(self, now: float) -> float:
        return now - self.timestamp

    def is_expired(self, now: float, max_age: float) -> bool:
        """Check if the entry is older than ``max_age`` seconds."""
        return self.age(now) > max_age

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the snapshot representation."""
        return {
            "data": self.data,
            "timestamp": self.timestamp,
            "accessCount": self.access_count,
            "compressed": self.compressed,
            "size": self.size,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CacheEntry":
        """Create from a snapshot entry.

        Raises:
            KeyError: If ``data`` or ``timestamp`` is missing
            TypeError, ValueError: If a field has the wrong type
        """
        return cls(
            data=data["data"],
            timestamp=float(data["timestamp"]),
            access_count=int(data.get("accessCount", data.get("access_count", 0)) or 0),
            compressed=bool(data.get("compressed", False)),
            size=int(data.get("size", 0) or 0),
        )


@dataclass
class CacheStats:
    """Cache statistics."""

    hits: int = 0
    misses: int = 0
    sets: int = 0
    evictions: int = 0
    last_cleanup: Optional[float] = None

    @property
    def hit_rate(self) -> float:
        """Hit rate as a percentage rounded to two decimals."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return round((self.hits / total) * 100, 2)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the snapshot representation."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "sets": self.sets,
            "evictions": self.evictions,
            "lastCleanup": self.last_cleanup,
        }

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "CacheStats":
        """Create from a snapshot, ignoring unknown or malformed fields."""
        stats = cls()
        if not isinstance(data, Mapping):
            return stats
        for name in ("hits", "misses", "sets", "evictions"):
            try:
                setattr(stats, name, int(data.get(name, 0) or 0))
            except (TypeError, ValueError):
                pass
        last_cleanup = data.get("lastCleanup")
        if isinstance(last_cleanup, (int, float)):
            stats.last_cleanup = float(last_cleanup)
        return stats
