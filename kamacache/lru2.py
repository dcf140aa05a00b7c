"""Two-level LRU store split into hash buckets.

Each bucket holds a first-level cache for entries seen once and a
second-level cache for entries that were read again. Expiry times are
nanosecond timestamps; an ``expire_at`` of 0 marks a slot as deleted.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Iterator, Optional

from kamacache.options import EvictionCallback, Options, Store, Value

PREV = 0
NEXT = 1

_UINT16_MAX = 0xFFFF
_DEFAULT_BUCKET_COUNT = 16
_DEFAULT_CAPACITY = 1024
_DEFAULT_CLEANUP_INTERVAL = 60.0
_SET_LIFETIME_NS = 9_999_999_999_999_999
_NS_PER_SECOND = 1_000_000_000


def now() -> int:
    """Return the current time as a nanosecond timestamp."""
    return time.time_ns()


def hash_bkdr(s: str) -> int:
    """Return the BKDR hash of ``s`` as a signed 32-bit integer."""
    h = 0
    for byte in s.encode("utf-8"):
        h = (h * 131 + byte) & 0xFFFFFFFF
    return h - 0x100000000 if h & 0x80000000 else h


def mask_of_next_pow_of2(cap: int) -> int:
    """Return the next power of two at or above ``cap``, minus one."""
    if not 0 <= cap <= _UINT16_MAX:
        raise ValueError(f"cap must be between 0 and {_UINT16_MAX}, got {cap}")
    if cap > 0 and cap & (cap - 1) == 0:
        return cap - 1
    cap |= cap >> 1
    cap |= cap >> 2
    cap |= cap >> 4
    return cap | (cap >> 8)


@dataclass
class Node:
    """One slot of a bucket cache."""

    key: str = ""
    value: Any = None
    expire_at: int = 0


class BucketCache:
    """Fixed-capacity LRU list over preallocated slots.

    Slot indexes start at 1; ``links[0]`` is the sentinel whose ``NEXT``
    points at the most recently used slot and whose ``PREV`` points at the
    least recently used one.
    """

    def __init__(self, capacity: int) -> None:
        if not 1 <= capacity <= _UINT16_MAX:
            raise ValueError(
                f"capacity must be between 1 and {_UINT16_MAX}, got {capacity}"
            )
        self.links: list[list[int]] = [[0, 0] for _ in range(capacity + 1)]
        self.nodes: list[Node] = [Node() for _ in range(capacity)]
        self.index: dict[str, int] = {}
        self.last = 0

    def put(
        self,
        key: str,
        val: Any,
        expire_at: int,
        on_evicted: Optional[EvictionCallback] = None,
    ) -> int:
        """Insert or update ``key``; return 1 for a new entry, 0 for an update."""
        idx = self.index.get(key)
        if idx is not None:
            node = self.nodes[idx - 1]
            node.value = val
            node.expire_at = expire_at
            self.adjust(idx, PREV, NEXT)
            return 0

        if self.last == len(self.nodes):
            tail_idx = self.links[0][PREV]
            tail = self.nodes[tail_idx - 1]
            if on_evicted is not None and tail.expire_at > 0:
                on_evicted(tail.key, tail.value)
            del self.index[tail.key]
            self.index[key] = tail_idx
            tail.key, tail.value, tail.expire_at = key, val, expire_at
            self.adjust(tail_idx, PREV, NEXT)
            return 1

        self.last += 1
        if not self.index:
            self.links[0][PREV] = self.last
        else:
            self.links[self.links[0][NEXT]][PREV] = self.last

        node = self.nodes[self.last - 1]
        node.key, node.value, node.expire_at = key, val, expire_at
        self.links[self.last] = [0, self.links[0][NEXT]]
        self.index[key] = self.last
        self.links[0][NEXT] = self.last
        return 1

    def get(self, key: str) -> Optional[Node]:
        """Return the slot holding ``key`` and mark it most recently used."""
        idx = self.index.get(key)
        if idx is None:
            return None
        self.adjust(idx, PREV, NEXT)
        return self.nodes[idx - 1]

    def delete(self, key: str) -> Optional[tuple[Node, int]]:
        """Mark ``key`` deleted and move it to the tail.

        Returns the slot and its former expiry, or None if ``key`` holds no
        live entry.
        """
        idx = self.index.get(key)
        if idx is None:
            return None
        node = self.nodes[idx - 1]
        if node.expire_at <= 0:
            return None
        expire_at = node.expire_at
        node.expire_at = 0
        self.adjust(idx, NEXT, PREV)
        return node, expire_at

    def walk(self) -> Iterator[tuple[str, Any, int]]:
        """Yield ``(key, value, expire_at)`` of live entries, newest first."""
        idx = self.links[0][NEXT]
        while idx != 0:
            node = self.nodes[idx - 1]
            if node.expire_at > 0:
                yield node.key, node.value, node.expire_at
            idx = self.links[idx][NEXT]

    def adjust(self, idx: int, f: int, t: int) -> None:
        """Move slot ``idx``: to the head when ``f`` is PREV, else to the tail."""
        links = self.links
        if links[idx][f] != 0:
            links[links[idx][t]][f] = links[idx][f]
            links[links[idx][f]][t] = links[idx][t]
            links[idx][f] = 0
            links[idx][t] = links[0][t]
            links[links[0][t]][f] = idx
            links[0][t] = idx


class LRU2Store(Store):
    """Bucketed two-level LRU store.

    New entries go to the first level; an entry read from the first level is
    promoted to the second. Expirations are given in seconds.
    """

    def __init__(self, opts: Optional[Options] = None) -> None:
        opts = opts if opts is not None else Options()
        bucket_count = opts.bucket_count or _DEFAULT_BUCKET_COUNT
        cap_per_bucket = opts.cap_per_bucket or _DEFAULT_CAPACITY
        level2_cap = opts.level2_cap or _DEFAULT_CAPACITY
        interval = opts.cleanup_interval
        if interval <= 0:
            interval = _DEFAULT_CLEANUP_INTERVAL

        self._mask = mask_of_next_pow_of2(bucket_count)
        buckets = self._mask + 1
        self._locks = [threading.Lock() for _ in range(buckets)]
        self._caches = [
            (BucketCache(cap_per_bucket), BucketCache(level2_cap))
            for _ in range(buckets)
        ]
        self._on_evicted: Optional[EvictionCallback] = opts.on_evicted
        self._cleanup_interval = interval
        self._stop = threading.Event()
        self._cleaner = threading.Thread(
            target=self._cleanup_loop, name="lru2-cleanup", daemon=True
        )
        self._cleaner.start()

    def get(self, key: str) -> Optional[Value]:
        """Return the live value for ``key``, promoting it to the second level."""
        idx = self._bucket(key)
        level1, level2 = self._caches[idx]
        with self._locks[idx]:
            current = now()
            removed = level1.delete(key)
            if removed is not None:
                node, expire_at = removed
                if expire_at > 0 and current >= expire_at:
                    self._delete(key, idx)
                    return None
                level2.put(key, node.value, expire_at, self._on_evicted)
                return node.value

            node = self._get(key, idx, 1)
            if node is not None:
                if node.expire_at > 0 and current >= node.expire_at:
                    self._delete(key, idx)
                    return None
                return node.value
            return None

    def set(self, key: str, value: Optional[Value]) -> None:
        """Store ``value`` with a very long lifetime."""
        self._put(key, value, now() + _SET_LIFETIME_NS)

    def set_with_expiration(
        self, key: str, value: Optional[Value], expiration: float
    ) -> None:
        """Store ``value`` for ``expiration`` seconds.

        A non-positive expiration stores the entry as already deleted.
        """
        expire_at = 0
        if expiration > 0:
            expire_at = now() + int(expiration * _NS_PER_SECOND)
        self._put(key, value, expire_at)

    def delete(self, key: str) -> bool:
        idx = self._bucket(key)
        with self._locks[idx]:
            return self._delete(key, idx)

    def clear(self) -> None:
        keys: dict[str, None] = {}
        for lock, (level1, level2) in zip(self._locks, self._caches):
            with lock:
                for key, _, _ in level1.walk():
                    keys[key] = None
                for key, _, _ in level2.walk():
                    keys[key] = None
        for key in keys:
            self.delete(key)

    def __len__(self) -> int:
        count = 0
        for lock, (level1, level2) in zip(self._locks, self._caches):
            with lock:
                count += sum(1 for _ in level1.walk())
                count += sum(1 for _ in level2.walk())
        return count

    def close(self) -> None:
        """Stop the background cleanup."""
        self._stop.set()

    def _bucket(self, key: str) -> int:
        return hash_bkdr(key) & self._mask

    def _put(self, key: str, value: Optional[Value], expire_at: int) -> None:
        idx = self._bucket(key)
        with self._locks[idx]:
            self._caches[idx][0].put(key, value, expire_at, self._on_evicted)

    def _get(self, key: str, idx: int, level: int) -> Optional[Node]:
        node = self._caches[idx][level].get(key)
        if node is None:
            return None
        if node.expire_at <= 0 or now() >= node.expire_at:
            return None
        return node

    def _delete(self, key: str, idx: int) -> bool:
        level1, level2 = self._caches[idx]
        removed1 = level1.delete(key)
        removed2 = level2.delete(key)
        deleted = removed1 is not None or removed2 is not None
        if deleted and self._on_evicted is not None:
            if removed1 is not None and removed1[0].value is not None:
                self._on_evicted(key, removed1[0].value)
            elif removed2 is not None and removed2[0].value is not None:
                self._on_evicted(key, removed2[0].value)
        return deleted

    def _cleanup_loop(self) -> None:
        while not self._stop.wait(self._cleanup_interval):
            current = now()
            for idx, (lock, (level1, level2)) in enumerate(
                zip(self._locks, self._caches)
            ):
                with lock:
                    expired: dict[str, None] = {}
                    for level in (level1, level2):
                        for key, _, expire_at in level.walk():
                            if expire_at > 0 and current >= expire_at:
                                expired[key] = None
                    for key in expired:
                        self._delete(key, idx)