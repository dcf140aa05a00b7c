"""Named cache groups that load missing keys from peers or a data source."""

from __future__ import annotations

import abc
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from kamacache.byteview import ByteView
from kamacache.cache import Cache, CacheOptions, default_cache_options
from kamacache.singleflight import SingleFlight

logger = logging.getLogger(__name__)

Getter = Callable[[str], bytes]


class KeyRequiredError(ValueError):
    """Raised when an empty key is given."""

    def __init__(self) -> None:
        super().__init__("key is required")


class ValueRequiredError(ValueError):
    """Raised when an empty value is given."""

    def __init__(self) -> None:
        super().__init__("value is required")


class GroupClosedError(RuntimeError):
    """Raised when a closed group is used."""

    def __init__(self) -> None:
        super().__init__("cache group is closed")


class Peer(abc.ABC):
    """A remote cache node."""

    @abc.abstractmethod
    def get(self, group: str, key: str) -> bytes:
        """Return the value of ``key`` in ``group`` on the remote node."""

    @abc.abstractmethod
    def set(self, group: str, key: str, value: bytes) -> None:
        """Store ``value`` under ``key`` in ``group`` on the remote node."""

    @abc.abstractmethod
    def delete(self, group: str, key: str) -> bool:
        """Remove ``key`` from ``group`` on the remote node."""

    @abc.abstractmethod
    def close(self) -> None:
        """Release the connection to the node."""


class PeerPicker(abc.ABC):
    """Chooses the node that owns a key."""

    @abc.abstractmethod
    def pick_peer(self, key: str) -> Optional[Tuple[Peer, bool]]:
        """Return ``(peer, is_self)`` for ``key``, or None if no node owns it."""

    @abc.abstractmethod
    def close(self) -> None:
        """Release all resources held by the picker."""


@dataclass
class _GroupStats:
    loads: int = 0
    local_hits: int = 0
    local_misses: int = 0
    peer_hits: int = 0
    peer_misses: int = 0
    loader_hits: int = 0
    loader_errors: int = 0
    load_duration_ns: int = 0
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def bump(self, name: str, amount: int = 1) -> None:
        with self.lock:
            setattr(self, name, getattr(self, name) + amount)


_registry_lock = threading.RLock()
_groups: Dict[str, "Group"] = {}


class Group:
    """A cache namespace backed by a loader function.

    Lookups go to the local cache first, then to the peer owning the key,
    then to the getter. ``expiration`` is in seconds; 0 means entries never
    expire.
    """

    def __init__(
        self,
        name: str,
        getter: Getter,
        cache_bytes: int = 0,
        expiration: float = 0.0,
        peers: Optional[PeerPicker] = None,
        cache_options: Optional[CacheOptions] = None,
    ) -> None:
        if getter is None or not callable(getter):
            raise TypeError("nil Getter")
        if cache_options is None:
            cache_options = default_cache_options()
            cache_options.max_bytes = cache_bytes
        self.name = name
        self._getter = getter
        self._cache = Cache(cache_options)
        self._peers = peers
        self._loader: SingleFlight[ByteView] = SingleFlight()
        self.expiration = expiration
        self._closed = False
        self._close_lock = threading.Lock()
        self._stats = _GroupStats()

    @property
    def closed(self) -> bool:
        return self._closed

    def get(self, key: str) -> ByteView:
        """Return the value of ``key``, loading it on a local miss."""
        if self._closed:
            raise GroupClosedError()
        if not key:
            raise KeyRequiredError()

        view = self._cache.get(key)
        if view is not None:
            self._stats.bump("local_hits")
            return view

        self._stats.bump("local_misses")
        return self._load(key)

    def set(self, key: str, value: bytes, from_peer: bool = False) -> None:
        """Store ``value`` locally and, unless it came from a peer, on its owner."""
        if self._closed:
            raise GroupClosedError()
        if not key:
            raise KeyRequiredError()
        if not value:
            raise ValueRequiredError()

        self._store_local(key, ByteView(value))

        if not from_peer and self._peers is not None:
            self._spawn_sync("set", key, bytes(value))

    def delete(self, key: str, from_peer: bool = False) -> None:
        """Remove ``key`` locally and, unless asked by a peer, on its owner."""
        if self._closed:
            raise GroupClosedError()
        if not key:
            raise KeyRequiredError()

        self._cache.delete(key)

        if not from_peer and self._peers is not None:
            self._spawn_sync("delete", key, None)

    def clear(self) -> None:
        """Empty the local cache."""
        if self._closed:
            return
        self._cache.clear()
        logger.info("[KamaCache] cleared cache for group [%s]", self.name)

    def close(self) -> None:
        """Close the group and remove it from the registry; repeat calls do nothing."""
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        self._cache.close()
        with _registry_lock:
            if _groups.get(self.name) is self:
                del _groups[self.name]
        logger.info("[KamaCache] closed cache group [%s]", self.name)

    def register_peers(self, peers: PeerPicker) -> None:
        """Attach a peer picker; it can be attached only once."""
        if self._peers is not None:
            raise RuntimeError("RegisterPeers called more than once")
        self._peers = peers
        logger.info("[KamaCache] registered peers for group [%s]", self.name)

    def stats(self) -> Dict[str, Any]:
        """Return load and hit counters, rates and the local cache's statistics."""
        s = self._stats
        with s.lock:
            result: Dict[str, Any] = {
                "name": self.name,
                "closed": self._closed,
                "expiration": self.expiration,
                "loads": s.loads,
                "local_hits": s.local_hits,
                "local_misses": s.local_misses,
                "peer_hits": s.peer_hits,
                "peer_misses": s.peer_misses,
                "loader_hits": s.loader_hits,
                "loader_errors": s.loader_errors,
            }
            load_duration_ns = s.load_duration_ns

        total_gets = result["local_hits"] + result["local_misses"]
        if total_gets > 0:
            result["hit_rate"] = result["local_hits"] / total_gets

        if result["loads"] > 0:
            result["avg_load_time_ms"] = load_duration_ns / result["loads"] / 1_000_000

        for name, value in self._cache.stats().items():
            result["cache_" + name] = value
        return result

    def __enter__(self) -> "Group":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _store_local(self, key: str, view: ByteView) -> None:
        if self.expiration > 0:
            self._cache.add_with_expiration(key, view, time.time() + self.expiration)
        else:
            self._cache.add(key, view)

    def _load(self, key: str) -> ByteView:
        start = time.perf_counter_ns()
        try:
            view = self._loader.do(key, lambda: self._load_data(key))
        except Exception:
            self._record_load(start)
            self._stats.bump("loader_errors")
            raise
        self._record_load(start)
        self._store_local(key, view)
        return view

    def _record_load(self, start: int) -> None:
        elapsed = time.perf_counter_ns() - start
        with self._stats.lock:
            self._stats.load_duration_ns += elapsed
            self._stats.loads += 1

    def _load_data(self, key: str) -> ByteView:
        if self._peers is not None:
            choice = self._peers.pick_peer(key)
            if choice is not None:
                peer, is_self = choice
                if not is_self:
                    try:
                        data = peer.get(self.name, key)
                    except Exception as exc:
                        self._stats.bump("peer_misses")
                        logger.warning("[KamaCache] failed to get from peer: %s", exc)
                    else:
                        self._stats.bump("peer_hits")
                        return ByteView(bytes(data or b""))

        data = self._getter(key)
        self._stats.bump("loader_hits")
        return ByteView(bytes(data or b""))

    def _spawn_sync(self, op: str, key: str, value: Optional[bytes]) -> None:
        threading.Thread(
            target=self._sync_to_peers,
            args=(op, key, value),
            name=f"kamacache-sync-{op}",
            daemon=True,
        ).start()

    def _sync_to_peers(self, op: str, key: str, value: Optional[bytes]) -> None:
        peers = self._peers
        if peers is None:
            return
        choice = peers.pick_peer(key)
        if choice is None:
            return
        peer, is_self = choice
        if is_self:
            return
        try:
            if op == "set":
                peer.set(self.name, key, value if value is not None else b"")
            elif op == "delete":
                peer.delete(self.name, key)
        except Exception as exc:
            logger.error("[KamaCache] failed to sync %s to peer: %s", op, exc)


def new_group(
    name: str,
    cache_bytes: int,
    getter: Getter,
    expiration: float = 0.0,
    peers: Optional[PeerPicker] = None,
    cache_options: Optional[CacheOptions] = None,
) -> Group:
    """Create a group and register it under ``name``, replacing any previous one."""
    group = Group(
        name,
        getter,
        cache_bytes=cache_bytes,
        expiration=expiration,
        peers=peers,
        cache_options=cache_options,
    )
    with _registry_lock:
        if name in _groups:
            logger.warning("Group with name %s already exists, will be replaced", name)
        _groups[name] = group
    logger.info(
        "Created cache group [%s] with cacheBytes=%d, expiration=%s",
        name,
        cache_bytes,
        expiration,
    )
    return group


def get_group(name: str) -> Optional[Group]:
    """Return the registered group called ``name``, if any."""
    with _registry_lock:
        return _groups.get(name)


def list_groups() -> List[str]:
    """Return the names of all registered groups."""
    with _registry_lock:
        return list(_groups)


def destroy_group(name: str) -> bool:
    """Close and unregister the group called ``name``; return whether it existed."""
    with _registry_lock:
        group = _groups.pop(name, None)
        if group is None:
            return False
        group.close()
    logger.info("[KamaCache] destroyed cache group [%s]", name)
    return True


def destroy_all_groups() -> None:
    """Close and unregister every group."""
    with _registry_lock:
        groups = list(_groups.items())
        _groups.clear()
        for name, group in groups:
            group.close()
            logger.info("[KamaCache] destroyed cache group [%s]", name)