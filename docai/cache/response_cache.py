"""Persistent, content-addressed cache for LLM responses.

Entries live in memory and are snapshotted to ``ai_cache.json`` under the
cache directory. A single background writer task owns the periodic save and
the debounced flush that follows each mutation; ``close()`` stops it and
writes one final snapshot. Every snapshot replaces the file atomically.

Disk problems never surface to callers: a failed load starts empty, a failed
save is logged and retried on the next flush, and an unusable directory puts
the cache in memory-only mode.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Union

from ..config import CACHE_FILE_NAME, Config, default_cache_dir
from ..telemetry import safe_track
from .common import CacheEntry, CacheState, CacheStats, data_size, generate_hash
from .compression import can_compress, compress_value, decompress_value
from .eviction import expired_keys, select_eviction_victims

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = "1.0.0"


def _write_atomic(path: Path, text: str) -> None:
    """Write ``text`` to a temp file beside ``path``, then rename over it."""
    fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise


def _read_text(path: Path) -> Optional[str]:
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None


class ResponseCache:
    """Disk-backed response cache keyed by SHA-256 of the input text.

    ``get``/``set``/``has`` initialize the cache on first use, and again
    after ``close()``. Concurrent first callers share one initialization.

    Args:
        cache_dir: Directory holding ``ai_cache.json``; platform default if None
        max_cache_size: Entry count above which ``set`` runs an eviction sweep
        max_age: Seconds after which an entry is expired
        compression_enabled: Store values key-shortened as compact JSON
        save_interval: Seconds between periodic snapshots
        flush_delay: Debounce in seconds between a mutation and its flush
        telemetry: Optional collaborator receiving ``track_cache_performance``
        clock: Returns the current time in epoch seconds
    """

    def __init__(
        self,
        cache_dir: Optional[Union[str, Path]] = None,
        max_cache_size: int = 1000,
        max_age: float = 7 * 24 * 60 * 60,
        compression_enabled: bool = True,
        save_interval: float = 30.0,
        flush_delay: float = 1.0,
        telemetry: Optional[Any] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_cache_size < 1:
            raise ValueError("max_cache_size must be at least 1")
        if max_age <= 0:
            raise ValueError("max_age must be positive")

        self.cache_dir = Path(cache_dir) if cache_dir else default_cache_dir()
        self.cache_file = self.cache_dir / CACHE_FILE_NAME
        self.max_cache_size = max_cache_size
        self.max_age = max_age
        self.compression_enabled = compression_enabled
        self.save_interval = save_interval
        self.flush_delay = flush_delay
        self.telemetry = telemetry
        self._clock = clock

        self.state = CacheState.UNINITIALIZED
        self.stats = CacheStats()
        self._entries: Dict[str, CacheEntry] = {}
        self._persistent = True
        self._dirty = False
        self._last_saved: Optional[float] = None

        self._init_task: Optional[asyncio.Task] = None
        self._close_task: Optional[asyncio.Task] = None
        self._writer_task: Optional[asyncio.Task] = None
        self._flush_requested: Optional[asyncio.Event] = None
        self._io_lock: Optional[asyncio.Lock] = None

    @classmethod
    def from_config(cls, config: Config, telemetry: Optional[Any] = None) -> "ResponseCache":
        """Build a cache from the cache section of a :class:`Config`."""
        return cls(
            cache_dir=config.cache_dir,
            max_cache_size=config.max_cache_size,
            max_age=config.max_age,
            compression_enabled=config.compression_enabled,
            save_interval=config.save_interval,
            flush_delay=config.flush_delay,
            telemetry=telemetry,
        )

    # ------------------------------------------------------------------ lifecycle

    @property
    def is_loaded(self) -> bool:
        return self.state is CacheState.READY

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    async def initialize(self) -> None:
        """Load the snapshot and start the writer task. Safe to call repeatedly."""
        if self._close_task is not None:
            await asyncio.shield(self._close_task)
        if self.state is CacheState.READY:
            return
        if self._init_task is None:
            self._init_task = asyncio.get_running_loop().create_task(self._initialize())
        await asyncio.shield(self._init_task)

    async def _initialize(self) -> None:
        self.state = CacheState.INITIALIZING
        self._flush_requested = asyncio.Event()
        self._io_lock = asyncio.Lock()

        try:
            await asyncio.to_thread(self.cache_dir.mkdir, parents=True, exist_ok=True)
            self._persistent = True
        except OSError as e:
            logger.warning(f"Cache directory {self.cache_dir} is unusable, running in memory only: {e}")
            self._persistent = False

        if self._persistent:
            await self._load()

        purged = self._purge_expired()
        self.state = CacheState.READY
        self._writer_task = asyncio.get_running_loop().create_task(self._writer_loop())
        logger.info(
            f"Response cache ready: {len(self._entries)} entries from {self.cache_file}"
            + (f", {purged} expired purged" if purged else "")
        )

    async def _load(self) -> None:
        try:
            text = await asyncio.to_thread(_read_text, self.cache_file)
        except OSError as e:
            logger.warning(f"Failed to read AI cache {self.cache_file}: {e}")
            text = None

        self._entries = {}
        if text is None:
            return

        try:
            snapshot = json.loads(text)
        except ValueError as e:
            logger.warning(f"AI cache {self.cache_file} is corrupt, starting empty: {e}")
            return
        if not isinstance(snapshot, dict):
            logger.warning(f"AI cache {self.cache_file} has unexpected layout, starting empty")
            return

        self._entries = self._parse_entries(snapshot.get("entries"))
        self.stats = CacheStats.from_dict(snapshot.get("stats"))
        last_saved = snapshot.get("lastSaved")
        self._last_saved = float(last_saved) if isinstance(last_saved, (int, float)) else None

    @staticmethod
    def _parse_entries(raw_entries: Any) -> Dict[str, CacheEntry]:
        entries: Dict[str, CacheEntry] = {}
        if not isinstance(raw_entries, Mapping):
            return entries
        for key, raw in raw_entries.items():
            try:
                entries[str(key)] = CacheEntry.from_dict(raw)
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                logger.debug(f"Skipping malformed cache entry {key}: {e}")
        return entries

    async def close(self) -> None:
        """Stop the writer task, save a final snapshot and release memory."""
        if self._close_task is None:
            if self.state not in (CacheState.INITIALIZING, CacheState.READY):
                return
            self._close_task = asyncio.get_running_loop().create_task(self._close())
        await asyncio.shield(self._close_task)

    async def _close(self) -> None:
        try:
            if self._init_task is not None:
                await self._init_task
            self.state = CacheState.CLOSING

            if self._writer_task is not None:
                self._writer_task.cancel()
                await asyncio.gather(self._writer_task, return_exceptions=True)
                self._writer_task = None

            await self._save()

            self._entries.clear()
            self.stats = CacheStats(last_cleanup=self._clock())
            self.state = CacheState.CLOSED
            logger.info("Response cache closed")
        finally:
            self._init_task = None
            self._close_task = None

    shutdown = close

    async def _ensure_ready(self) -> None:
        if self.state is not CacheState.READY or self._close_task is not None:
            await self.initialize()

    # ------------------------------------------------------------------ operations

    def generate_hash(self, text: str) -> str:
        """Return the cache key for ``text``."""
        return generate_hash(text)

    async def get(self, key: str, force_refresh: bool = False) -> Optional[Any]:
        """Return the cached value for ``key``, or None on a miss.

        Expired entries are deleted and counted as evictions. ``force_refresh``
        reports a miss without looking.
        """
        await self._ensure_ready()

        if force_refresh:
            self.stats.misses += 1
            return None

        entry = self._entries.get(key)
        if entry is None:
            self.stats.misses += 1
            logger.debug(f"Cache miss for {key[:12]}")
            safe_track(self.telemetry, "track_cache_performance", False, len(self._entries))
            return None

        if entry.is_expired(self._clock(), self.max_age):
            del self._entries[key]
            self.stats.misses += 1
            self.stats.evictions += 1
            self._request_flush()
            logger.debug(f"Cache entry {key[:12]} expired")
            safe_track(
                self.telemetry, "track_cache_performance", False, len(self._entries), eviction=True
            )
            return None

        entry.access_count += 1
        self.stats.hits += 1
        self._dirty = True
        logger.debug(f"Cache hit for {key[:12]} (access #{entry.access_count})")
        safe_track(self.telemetry, "track_cache_performance", True, len(self._entries))
        return self._decode(entry)

    async def set(self, key: str, data: Any) -> None:
        """Store ``data`` under ``key``, evicting if the cache grows too large.

        Values that cannot be serialized to JSON are not cached.
        """
        await self._ensure_ready()

        compressed = self.compression_enabled and can_compress(data)
        try:
            stored = compress_value(data) if compressed else json.loads(json.dumps(data))
        except (TypeError, ValueError) as e:
            logger.warning(f"Not caching {key[:12]}: value is not JSON serializable ({e})")
            return

        self._entries[key] = CacheEntry(
            data=stored,
            timestamp=self._clock(),
            access_count=0,
            compressed=compressed,
            size=len(stored.encode("utf-8")) if compressed else data_size(stored),
        )
        self.stats.sets += 1

        if len(self._entries) > self.max_cache_size:
            self._evict()

        safe_track(self.telemetry, "track_cache_performance", False, len(self._entries))
        self._request_flush()

    async def has(self, key: str) -> bool:
        """True if ``key`` is present and not expired. Does not count as a hit."""
        await self._ensure_ready()
        entry = self._entries.get(key)
        if entry is None:
            return False
        if entry.is_expired(self._clock(), self.max_age):
            del self._entries[key]
            self.stats.evictions += 1
            self._request_flush()
            return False
        return True

    async def evict(self) -> int:
        """Run one eviction sweep now. Returns the number of entries removed."""
        await self._ensure_ready()
        removed = self._evict()
        if removed:
            self._request_flush()
        return removed

    def _evict(self) -> int:
        victims = select_eviction_victims(
            self._entries, self._clock(), self.max_age, self.max_cache_size
        )
        for key in victims:
            del self._entries[key]
        self.stats.evictions += len(victims)
        if victims:
            logger.debug(f"Evicted {len(victims)} cache entries, {len(self._entries)} remain")
            safe_track(
                self.telemetry, "track_cache_performance", False, len(self._entries), eviction=True
            )
        return len(victims)

    async def cleanup(self) -> int:
        """Delete every expired entry. Returns how many were removed."""
        await self._ensure_ready()
        removed = self._purge_expired()
        if removed:
            self._request_flush()
        return removed

    def _purge_expired(self) -> int:
        now = self._clock()
        keys = expired_keys(self._entries, now, self.max_age)
        for key in keys:
            del self._entries[key]
        self.stats.evictions += len(keys)
        self.stats.last_cleanup = now
        return len(keys)

    async def clear(self) -> None:
        """Drop every entry, reset statistics and persist the empty cache."""
        await self._ensure_ready()
        self._entries.clear()
        self.stats = CacheStats(last_cleanup=self._clock())
        self._dirty = True
        await self._save()

    def get_stats(self) -> Dict[str, Any]:
        """Counters plus current size and load state."""
        return {
            "hits": self.stats.hits,
            "misses": self.stats.misses,
            "sets": self.stats.sets,
            "evictions": self.stats.evictions,
            "last_cleanup": self.stats.last_cleanup,
            "hit_rate": self.stats.hit_rate,
            "size": len(self._entries),
            "max_size": self.max_cache_size,
            "is_loaded": self.is_loaded,
            "last_save": self._last_saved,
            "persistent": self._persistent,
        }

    async def export(self) -> Dict[str, Any]:
        """Return a backup of all entries and statistics."""
        await self._ensure_ready()
        return {
            "entries": {key: entry.to_dict() for key, entry in self._entries.items()},
            "stats": self.stats.to_dict(),
            "metadata": {
                "version": SNAPSHOT_VERSION,
                "exported_at": datetime.now(timezone.utc).isoformat(),
                "cache_dir": str(self.cache_dir),
                "max_size": self.max_cache_size,
                "max_age": self.max_age,
            },
        }

    async def import_data(self, data: Mapping[str, Any]) -> int:
        """Replace entries (and merge stats) from an :meth:`export` backup.

        Returns:
            Number of entries imported
        """
        await self._ensure_ready()
        if "entries" in data:
            self._entries = self._parse_entries(data.get("entries"))
        if isinstance(data.get("stats"), Mapping):
            imported = CacheStats.from_dict(data["stats"])
            for name in ("hits", "misses", "sets", "evictions"):
                if name in data["stats"]:
                    setattr(self.stats, name, getattr(imported, name))
            if imported.last_cleanup is not None:
                self.stats.last_cleanup = imported.last_cleanup
        if len(self._entries) > self.max_cache_size:
            self._evict()
        self._dirty = True
        await self._save()
        return len(self._entries)

    async def get_cache_size(self) -> int:
        """Size of the snapshot file on disk in bytes, 0 if absent."""
        try:
            stat = await asyncio.to_thread(os.stat, self.cache_file)
        except OSError:
            return 0
        return stat.st_size

    def get_total_cache_size(self) -> int:
        """Approximate in-memory footprint in bytes."""
        return sum(len(key) * 2 + entry.size + 50 for key, entry in self._entries.items())

    def _decode(self, entry: CacheEntry) -> Any:
        if entry.compressed and isinstance(entry.data, str):
            return decompress_value(entry.data)
        return entry.data

    # ------------------------------------------------------------------ persistence

    def _request_flush(self) -> None:
        self._dirty = True
        if self._flush_requested is not None:
            self._flush_requested.set()

    async def flush(self) -> bool:
        """Write a snapshot now if anything changed since the last one."""
        if self.state is not CacheState.READY or not self._dirty:
            return False
        return await self._save()

    async def _writer_loop(self) -> None:
        while True:
            try:
                await asyncio.wait_for(self._flush_requested.wait(), timeout=self.save_interval)
                if self.flush_delay > 0:
                    await asyncio.sleep(self.flush_delay)
            except asyncio.TimeoutError:
                pass
            self._flush_requested.clear()
            if self._dirty:
                await self._save()

    def _snapshot(self) -> str:
        now = self._clock()
        return json.dumps(
            {
                "entries": {key: entry.to_dict() for key, entry in self._entries.items()},
                "stats": self.stats.to_dict(),
                "lastSaved": now,
                "version": SNAPSHOT_VERSION,
            },
            indent=2,
        )

    async def _save(self) -> bool:
        if not self._persistent or self._io_lock is None:
            return False

        async with self._io_lock:
            try:
                text = self._snapshot()
            except (TypeError, ValueError) as e:
                logger.warning(f"Failed to serialize AI cache: {e}")
                return False
            self._dirty = False
            write = asyncio.ensure_future(asyncio.to_thread(_write_atomic, self.cache_file, text))
            try:
                await asyncio.shield(write)
            except asyncio.CancelledError:
                # let the thread finish so it cannot land after a later snapshot
                await asyncio.gather(write, return_exceptions=True)
                self._dirty = True
                raise
            except OSError as e:
                self._dirty = True
                logger.warning(f"Failed to save AI cache to {self.cache_file}: {e}")
                return False

        self._last_saved = self._clock()
        logger.debug(f"Saved {len(self._entries)} cache entries to {self.cache_file}")
        return True
