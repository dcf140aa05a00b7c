"""Small helpers."""

from __future__ import annotations


def valid_peer_addr(addr: str) -> bool:
    """Return whether ``addr`` looks like ``host:port`` with a usable host.

    The host must be ``localhost`` or a dotted address of four parts.
    """
    parts = addr.split(":")
    if len(parts) != 2:
        return False
    host = parts[0]
    return host == "localhost" or len(host.split(".")) == 4