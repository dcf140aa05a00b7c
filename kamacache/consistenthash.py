"""Consistent hash ring with load-driven virtual node rebalancing."""

from __future__ import annotations

import bisect
import threading
import zlib
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

HashFunc = Callable[[bytes], int]

_MIN_SAMPLES = 1000


@dataclass
class HashConfig:
    """Ring settings: replica counts, hash function and imbalance threshold."""

    default_replicas: int = 50
    min_replicas: int = 10
    max_replicas: int = 200
    hash_func: HashFunc = field(default=zlib.crc32)
    load_balance_threshold: float = 0.25


class ConsistentHash:
    """Maps keys to nodes on a hash ring of virtual nodes.

    A background thread periodically compares per-node request counts and
    resizes the virtual node sets of unbalanced nodes.
    """

    def __init__(
        self, config: Optional[HashConfig] = None, balance_interval: float = 1.0
    ) -> None:
        self._config = config if config is not None else HashConfig()
        self._lock = threading.RLock()
        self._keys: List[int] = []
        self._hash_map: Dict[int, str] = {}
        self._node_replicas: Dict[str, int] = {}
        self._node_counts: Dict[str, int] = {}
        self._total_requests = 0
        self._balance_interval = balance_interval
        self._stop = threading.Event()
        self._balancer = threading.Thread(
            target=self._balance_loop, name="consistenthash-balancer", daemon=True
        )
        self._balancer.start()

    def add(self, *nodes: str) -> None:
        """Add nodes to the ring; empty names are ignored."""
        if not nodes:
            raise ValueError("no nodes provided")
        with self._lock:
            for node in nodes:
                if node:
                    self._add_node(node, self._config.default_replicas)
            self._keys.sort()

    def remove(self, node: str) -> None:
        """Remove ``node`` and all its virtual nodes."""
        if not node:
            raise ValueError("invalid node")
        with self._lock:
            self._remove_node(node)

    def get(self, key: str) -> Optional[str]:
        """Return the node owning ``key``, or None for an empty key or ring."""
        if not key:
            return None
        with self._lock:
            if not self._keys:
                return None
            h = self._hash(key)
            idx = bisect.bisect_left(self._keys, h)
            if idx == len(self._keys):
                idx = 0
            node = self._hash_map[self._keys[idx]]
            self._node_counts[node] = self._node_counts.get(node, 0) + 1
            self._total_requests += 1
            return node

    def get_stats(self) -> Dict[str, float]:
        """Return each node's share of requests since the last rebalance."""
        with self._lock:
            total = self._total_requests
            if total == 0:
                return {}
            return {node: count / total for node, count in self._node_counts.items()}

    def check_and_rebalance(self) -> None:
        """Rebalance virtual nodes if the load is too uneven."""
        with self._lock:
            if self._total_requests < _MIN_SAMPLES or not self._node_replicas:
                return
            avg_load = self._total_requests / len(self._node_replicas)
            max_diff = max(
                (abs(count - avg_load) / avg_load for count in self._node_counts.values()),
                default=0.0,
            )
            if max_diff > self._config.load_balance_threshold:
                self._rebalance(avg_load)

    def close(self) -> None:
        """Stop the background balancer."""
        self._stop.set()

    def __enter__(self) -> "ConsistentHash":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _hash(self, text: str) -> int:
        return int(self._config.hash_func(text.encode("utf-8")))

    def _add_node(self, node: str, replicas: int) -> None:
        for i in range(replicas):
            h = self._hash(f"{node}-{i}")
            self._keys.append(h)
            self._hash_map[h] = node
        self._node_replicas[node] = replicas

    def _remove_node(self, node: str) -> None:
        replicas = self._node_replicas.get(node, 0)
        if replicas == 0:
            raise KeyError(f"node {node} not found")
        for i in range(replicas):
            h = self._hash(f"{node}-{i}")
            self._hash_map.pop(h, None)
            idx = bisect.bisect_left(self._keys, h)
            if idx < len(self._keys) and self._keys[idx] == h:
                del self._keys[idx]
        del self._node_replicas[node]
        self._node_counts.pop(node, None)

    def _rebalance(self, avg_load: float) -> None:
        cfg = self._config
        for node, count in list(self._node_counts.items()):
            current = self._node_replicas.get(node, 0)
            ratio = count / avg_load
            if ratio > 1:
                replicas = int(current / ratio)
            else:
                replicas = int(current * (2 - ratio))
            replicas = max(cfg.min_replicas, min(cfg.max_replicas, replicas))
            if replicas != current:
                try:
                    self._remove_node(node)
                except KeyError:
                    continue
                self._add_node(node, replicas)
                self._keys.sort()

        for node in self._node_counts:
            self._node_counts[node] = 0
        self._total_requests = 0
        self._keys.sort()

    def _balance_loop(self) -> None:
        while not self._stop.wait(self._balance_interval):
            self.check_and_rebalance()