"""Read-only view over cached bytes."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ByteView:
    """Immutable snapshot of a byte sequence held in the cache."""

    data: bytes = b""

    def __post_init__(self) -> None:
        if not isinstance(self.data, (bytes, bytearray, memoryview)):
            raise TypeError(
                f"ByteView needs a bytes-like object, got {type(self.data).__name__}"
            )
        object.__setattr__(self, "data", bytes(self.data))

    def __len__(self) -> int:
        return len(self.data)

    def to_bytes(self) -> bytes:
        """Return the viewed bytes."""
        return self.data

    def __str__(self) -> str:
        return self.data.decode("utf-8", errors="replace")