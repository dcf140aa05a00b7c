"""Thread-safe cache front end over a pluggable storage back end."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Union

from kamacache.byteview import ByteView
from kamacache.lru import LRUCache
from kamacache.lru2 import LRU2Store
from kamacache.options import CacheType, EvictionCallback, Options, Store

logger = logging.getLogger(__name__)

Timestamp = Union[float, datetime]


@dataclass
class CacheOptions:
    """Cache settings.

    ``max_bytes`` bounds the LRU store; the bucket settings apply to the
    two-level LRU store. ``cleanup_time`` is in seconds.
    """

    cache_type: CacheType = CacheType.LRU2
    max_bytes: int = 8 * 1024 * 1024
    bucket_count: int = 16
    cap_per_bucket: int = 512
    level2_cap: int = 256
    cleanup_time: float = 60.0
    on_evicted: Optional[EvictionCallback] = None


def default_cache_options() -> CacheOptions:
    """Return the default cache settings."""
    return CacheOptions()


def new_store(cache_type: Union[CacheType, str], opts: Options) -> Store:
    """Create a store of ``cache_type``; unknown types fall back to LRU."""
    if cache_type == CacheType.LRU2:
        return LRU2Store(opts)
    return LRUCache(opts)


class Cache:
    """Lazily initialised cache that counts hits and misses.

    The underlying store is created on the first write. A closed cache
    ignores writes and reports every lookup as absent.
    """

    def __init__(self, opts: Optional[CacheOptions] = None) -> None:
        self._opts = opts if opts is not None else default_cache_options()
        self._lock = threading.RLock()
        self._stats_lock = threading.Lock()
        self._store: Optional[Store] = None
        self._hits = 0
        self._misses = 0
        self._closed = False

    @property
    def initialized(self) -> bool:
        return self._store is not None

    @property
    def closed(self) -> bool:
        return self._closed

    def _ensure_store(self) -> Store:
        store = self._store
        if store is not None:
            return store
        with self._lock:
            if self._store is None:
                opts = self._opts
                store_opts = Options(
                    max_bytes=opts.max_bytes,
                    bucket_count=opts.bucket_count,
                    cap_per_bucket=opts.cap_per_bucket,
                    level2_cap=opts.level2_cap,
                    cleanup_interval=opts.cleanup_time,
                    on_evicted=opts.on_evicted,
                )
                self._store = new_store(opts.cache_type, store_opts)
                logger.info(
                    "Cache initialized with type %s, max bytes: %d",
                    opts.cache_type,
                    opts.max_bytes,
                )
            return self._store

    def _count_miss(self) -> None:
        with self._stats_lock:
            self._misses += 1

    def _count_hit(self) -> None:
        with self._stats_lock:
            self._hits += 1

    def add(self, key: str, value: ByteView) -> None:
        """Store ``value`` under ``key`` without expiration."""
        if self._closed:
            logger.warning("Attempted to add to a closed cache: %s", key)
            return
        self._ensure_store().set(key, value)

    def get(self, key: str) -> Optional[ByteView]:
        """Return the cached view for ``key``, or None on a miss."""
        if self._closed:
            return None
        if self._store is None:
            self._count_miss()
            return None

        with self._lock:
            store = self._store
            value = store.get(key) if store is not None else None

        if value is None:
            self._count_miss()
            return None

        self._count_hit()
        if isinstance(value, ByteView):
            return value

        logger.warning("Type assertion failed for key %s, expected ByteView", key)
        self._count_miss()
        return None

    def add_with_expiration(
        self, key: str, value: ByteView, expiration_time: Timestamp
    ) -> None:
        """Store ``value`` until ``expiration_time`` (epoch seconds or datetime).

        Values whose expiration time has already passed are not stored.
        """
        if self._closed:
            logger.warning("Attempted to add to a closed cache: %s", key)
            return

        store = self._ensure_store()

        if isinstance(expiration_time, datetime):
            deadline = expiration_time.timestamp()
        else:
            deadline = float(expiration_time)
        remaining = deadline - time.time()
        if remaining <= 0:
            logger.debug("Key %s already expired, not adding to cache", key)
            return

        store.set_with_expiration(key, value, remaining)

    def delete(self, key: str) -> bool:
        """Remove ``key``; return whether it was present."""
        if self._closed or self._store is None:
            return False
        with self._lock:
            store = self._store
            return store.delete(key) if store is not None else False

    def clear(self) -> None:
        """Remove every entry and reset the hit and miss counters."""
        if self._closed or self._store is None:
            return
        with self._lock:
            if self._store is not None:
                self._store.clear()
            with self._stats_lock:
                self._hits = 0
                self._misses = 0

    def __len__(self) -> int:
        if self._closed or self._store is None:
            return 0
        with self._lock:
            store = self._store
            return len(store) if store is not None else 0

    def close(self) -> None:
        """Close the cache and release the store; later calls do nothing."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            if self._store is not None:
                self._store.close()
                self._store = None
        logger.debug("Cache closed, hits: %d, misses: %d", self._hits, self._misses)

    def stats(self) -> Dict[str, Any]:
        """Return counters, and size and hit rate once initialised."""
        with self._stats_lock:
            hits, misses = self._hits, self._misses
        result: Dict[str, Any] = {
            "initialized": self.initialized,
            "closed": self._closed,
            "hits": hits,
            "misses": misses,
        }
        if self.initialized:
            result["size"] = len(self)
            total = hits + misses
            result["hit_rate"] = hits / total if total > 0 else 0.0
        return result

    def __enter__(self) -> "Cache":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()