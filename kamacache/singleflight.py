"""Collapse concurrent calls for the same key into one."""

from __future__ import annotations

import threading
from typing import Callable, Dict, Generic, Optional, TypeVar

T = TypeVar("T")


class _Call(Generic[T]):
    __slots__ = ("done", "value", "error")

    def __init__(self) -> None:
        self.done = threading.Event()
        self.value: Optional[T] = None
        self.error: Optional[BaseException] = None


class SingleFlight(Generic[T]):
    """Runs a function at most once at a time per key.

    Callers arriving while a call for the same key is in flight wait for it
    and share its result or its exception.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._calls: Dict[str, _Call[T]] = {}

    def do(self, key: str, fn: Callable[[], T]) -> T:
        """Return ``fn()``, sharing the result with concurrent callers of ``key``."""
        with self._lock:
            call = self._calls.get(key)
            leader = call is None
            if leader:
                call = _Call()
                self._calls[key] = call

        if not leader:
            call.done.wait()
            if call.error is not None:
                raise call.error
            return call.value  # type: ignore[return-value]

        try:
            call.value = fn()
            return call.value
        except BaseException as exc:
            call.error = exc
            raise
        finally:
            with self._lock:
                self._calls.pop(key, None)
            call.done.set()