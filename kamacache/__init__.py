"""In-process cache groups over LRU and two-level LRU stores, with consistent hashing and single-flight loading."""

__version__ = "0.1.0"

__all__ = [
    "byteview",
    "cache",
    "consistenthash",
    "group",
    "lru",
    "lru2",
    "options",
    "singleflight",
    "utils",
]