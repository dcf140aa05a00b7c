import pytest

from kamacache.consistenthash import ConsistentHash, HashConfig


@pytest.fixture
def ring():
    with ConsistentHash(balance_interval=3600) as r:
        yield r


def test_add_without_nodes_raises(ring):
    with pytest.raises(ValueError):
        ring.add()


def test_get_on_empty_ring_returns_none(ring):
    assert ring.get("key") is None


def test_get_empty_key_returns_none(ring):
    ring.add("node-a")
    assert ring.get("") is None


def test_get_returns_added_node(ring):
    ring.add("node-a", "node-b", "node-c")
    for i in range(50):
        assert ring.get(f"key{i}") in {"node-a", "node-b", "node-c"}


def test_same_key_maps_to_same_node(ring):
    ring.add("node-a", "node-b", "node-c")
    owner = ring.get("stable")
    assert owner in {"node-a", "node-b", "node-c"}
    assert [ring.get("stable") for _ in range(10)] == [owner] * 10


def test_empty_node_names_are_skipped(ring):
    ring.add("", "node-a")
    assert {ring.get(f"key{i}") for i in range(20)} == {"node-a"}


def test_remove_moves_keys_to_remaining_node(ring):
    ring.add("node-a", "node-b")
    ring.remove("node-a")
    assert {ring.get(f"key{i}") for i in range(30)} == {"node-b"}


def test_remove_last_node_empties_ring(ring):
    ring.add("node-a")
    ring.remove("node-a")
    assert ring.get("key") is None


def test_remove_unknown_node_raises(ring):
    ring.add("node-a")
    with pytest.raises(KeyError):
        ring.remove("missing")


def test_remove_empty_name_raises(ring):
    with pytest.raises(ValueError):
        ring.remove("")


def test_stats_empty_before_requests(ring):
    ring.add("node-a")
    assert ring.get_stats() == {}


def test_stats_shares_sum_to_one(ring):
    ring.add("node-a", "node-b", "node-c")
    for i in range(100):
        ring.get(f"key{i}")
    stats = ring.get_stats()
    assert sum(stats.values()) == pytest.approx(1.0)
    assert set(stats) <= {"node-a", "node-b", "node-c"}


def test_no_rebalance_below_sample_threshold(ring):
    ring.add("node-a", "node-b")
    owner = None
    for _ in range(999):
        owner = ring.get("hot")
    ring.check_and_rebalance()
    assert ring.get_stats() == {owner: 1.0}


def test_rebalance_resets_counters_and_keeps_routing(ring):
    ring.add("node-a", "node-b")
    for _ in range(1000):
        ring.get("hot")
    ring.check_and_rebalance()
    assert ring.get_stats() == {}
    assert {ring.get(f"key{i}") for i in range(200)} <= {"node-a", "node-b"}


def test_custom_hash_func_is_used():
    calls = []

    def fixed_hash(data):
        calls.append(data)
        return 7

    with ConsistentHash(HashConfig(default_replicas=2, hash_func=fixed_hash), 3600) as r:
        r.add("n")
        assert r.get("anything") == "n"
    assert calls[:2] == [b"n-0", b"n-1"]
    assert calls[-1] == b"anything"