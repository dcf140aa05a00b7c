"""Byte-bounded LRU store with per-key expiration."""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from typing import Optional

from kamacache.options import EvictionCallback, Options, Store, Value

_DEFAULT_CLEANUP_INTERVAL = 60.0


def _entry_size(key: str, value: Value) -> int:
    return len(key.encode("utf-8")) + len(value)


class LRUCache(Store):
    """LRU store limited by total key and value size.

    Entries are kept from least to most recently used. Expired entries are
    dropped on access, when new entries are added, and by a periodic
    background sweep. Times are in seconds.
    """

    def __init__(self, opts: Optional[Options] = None) -> None:
        opts = opts if opts is not None else Options()
        interval = opts.cleanup_interval
        if interval <= 0:
            interval = _DEFAULT_CLEANUP_INTERVAL

        self._lock = threading.RLock()
        self._items: "OrderedDict[str, Value]" = OrderedDict()
        self._expires: dict[str, float] = {}
        self._max_bytes = opts.max_bytes
        self._used_bytes = 0
        self._on_evicted: Optional[EvictionCallback] = opts.on_evicted
        self._cleanup_interval = interval
        self._stop = threading.Event()
        self._cleaner = threading.Thread(
            target=self._cleanup_loop, name="lru-cleanup", daemon=True
        )
        self._cleaner.start()

    def get(self, key: str) -> Optional[Value]:
        """Return the live value for ``key`` and mark it recently used."""
        with self._lock:
            if key not in self._items:
                return None
            if self._is_expired(key, time.time()):
                self._remove(key)
                return None
            self._items.move_to_end(key)
            return self._items[key]

    def set(self, key: str, value: Optional[Value]) -> None:
        """Store ``value`` with no expiration."""
        self.set_with_expiration(key, value, 0)

    def set_with_expiration(
        self, key: str, value: Optional[Value], expiration: float
    ) -> None:
        """Store ``value``; a positive ``expiration`` sets its lifetime.

        Storing None removes the key.
        """
        if value is None:
            self.delete(key)
            return

        with self._lock:
            if expiration > 0:
                self._expires[key] = time.time() + expiration
            else:
                self._expires.pop(key, None)

            if key in self._items:
                old = self._items[key]
                self._used_bytes += len(value) - len(old)
                self._items[key] = value
                self._items.move_to_end(key)
                return

            self._items[key] = value
            self._used_bytes += _entry_size(key, value)
            self._evict()

    def delete(self, key: str) -> bool:
        with self._lock:
            if key not in self._items:
                return False
            self._remove(key)
            return True

    def clear(self) -> None:
        with self._lock:
            if self._on_evicted is not None:
                for key, value in list(self._items.items()):
                    self._on_evicted(key, value)
            self._items.clear()
            self._expires.clear()
            self._used_bytes = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def close(self) -> None:
        """Stop the background cleanup."""
        self._stop.set()

    def get_with_expiration(self, key: str) -> Optional[tuple[Value, float]]:
        """Return ``(value, remaining_seconds)`` or None if absent or expired.

        The remaining time is 0.0 for entries that never expire.
        """
        with self._lock:
            if key not in self._items:
                return None
            now = time.time()
            expires_at = self._expires.get(key)
            if expires_at is not None:
                if now > expires_at:
                    return None
                self._items.move_to_end(key)
                return self._items[key], expires_at - now
            self._items.move_to_end(key)
            return self._items[key], 0.0

    def get_expiration(self, key: str) -> Optional[float]:
        """Return the expiry timestamp of ``key``, or None if it has none."""
        with self._lock:
            return self._expires.get(key)

    def update_expiration(self, key: str, expiration: float) -> bool:
        """Reset the lifetime of ``key``; a non-positive value removes it."""
        with self._lock:
            if key not in self._items:
                return False
            if expiration > 0:
                self._expires[key] = time.time() + expiration
            else:
                self._expires.pop(key, None)
            return True

    def used_bytes(self) -> int:
        with self._lock:
            return self._used_bytes

    def max_bytes(self) -> int:
        with self._lock:
            return self._max_bytes

    def set_max_bytes(self, max_bytes: int) -> None:
        """Change the size limit and evict entries that no longer fit."""
        with self._lock:
            self._max_bytes = max_bytes
            if max_bytes > 0:
                self._evict()

    def _is_expired(self, key: str, now: float) -> bool:
        expires_at = self._expires.get(key)
        return expires_at is not None and now > expires_at

    def _remove(self, key: str) -> None:
        value = self._items.pop(key)
        self._expires.pop(key, None)
        self._used_bytes -= _entry_size(key, value)
        if self._on_evicted is not None:
            self._on_evicted(key, value)

    def _evict(self) -> None:
        now = time.time()
        expired = [key for key, at in self._expires.items() if now > at]
        for key in expired:
            if key in self._items:
                self._remove(key)
            else:
                self._expires.pop(key, None)

        while self._max_bytes > 0 and self._used_bytes > self._max_bytes and self._items:
            oldest = next(iter(self._items))
            self._remove(oldest)

    def _cleanup_loop(self) -> None:
        while not self._stop.wait(self._cleanup_interval):
            with self._lock:
                self._evict()