"""Storage interfaces, cache types and store options."""

from __future__ import annotations

import abc
import enum
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, runtime_checkable

_UINT16_MAX = 0xFFFF


@runtime_checkable
class Value(Protocol):
    """Anything that can be cached: it only has to report its size."""

    def __len__(self) -> int:
        """Return the size of the value in bytes."""
        ...


EvictionCallback = Callable[[str, Value], None]


class Store(abc.ABC):
    """Common interface of the cache storage back ends."""

    @abc.abstractmethod
    def get(self, key: str) -> Optional[Value]:
        """Return the value stored under ``key``, or None if absent or expired."""

    @abc.abstractmethod
    def set(self, key: str, value: Optional[Value]) -> None:
        """Store ``value`` under ``key``."""

    @abc.abstractmethod
    def set_with_expiration(
        self, key: str, value: Optional[Value], expiration: float
    ) -> None:
        """Store ``value`` under ``key`` for ``expiration`` seconds."""

    @abc.abstractmethod
    def delete(self, key: str) -> bool:
        """Remove ``key``; return whether it was present."""

    @abc.abstractmethod
    def clear(self) -> None:
        """Remove every entry."""

    @abc.abstractmethod
    def __len__(self) -> int:
        """Return the number of stored entries."""

    @abc.abstractmethod
    def close(self) -> None:
        """Release background resources."""

    def __enter__(self) -> "Store":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class CacheType(str, enum.Enum):
    """Available storage algorithms."""

    LRU = "lru"
    LRU2 = "lru2"

    def __str__(self) -> str:
        return self.value


@dataclass
class Options:
    """Settings shared by the storage back ends.

    ``max_bytes`` applies to the LRU store; the bucket settings apply to the
    two-level LRU store. ``cleanup_interval`` is in seconds.
    """

    max_bytes: int = 0
    bucket_count: int = 0
    cap_per_bucket: int = 0
    level2_cap: int = 0
    cleanup_interval: float = 0.0
    on_evicted: Optional[EvictionCallback] = None

    def __post_init__(self) -> None:
        for name in ("bucket_count", "cap_per_bucket", "level2_cap"):
            number = getattr(self, name)
            if not 0 <= number <= _UINT16_MAX:
                raise ValueError(
                    f"{name} must be between 0 and {_UINT16_MAX}, got {number}"
                )


def new_options() -> Options:
    """Return the default store options."""
    return Options(
        max_bytes=8192,
        bucket_count=16,
        cap_per_bucket=512,
        level2_cap=256,
        cleanup_interval=60.0,
        on_evicted=None,
    )