import time

import pytest

from kamacache.lru import LRUCache
from kamacache.options import Options, Store


@pytest.fixture
def make_cache():
    caches = []

    def factory(**kwargs):
        cache = LRUCache(Options(**kwargs))
        caches.append(cache)
        return cache

    yield factory
    for cache in caches:
        cache.close()


def test_is_a_store(make_cache):
    cache = make_cache()
    assert isinstance(cache, Store)
    assert cache.delete("absent") is False
    assert len(cache) == 0


def test_set_and_get(make_cache):
    cache = make_cache()
    cache.set("key1", b"value1")
    assert cache.get("key1") == b"value1"
    assert cache.get("missing") is None
    assert len(cache) == 1


def test_used_bytes_counts_key_and_value(make_cache):
    cache = make_cache()
    cache.set("key1", b"value1")
    assert cache.used_bytes() == len("key1") + len(b"value1")


def test_update_replaces_value_and_adjusts_size(make_cache):
    cache = make_cache()
    cache.set("k", b"ab")
    cache.set("k", b"abcdef")
    assert cache.get("k") == b"abcdef"
    assert len(cache) == 1
    assert cache.used_bytes() == len("k") + len(b"abcdef")


def test_evicts_least_recently_used(make_cache):
    evicted = []
    # each entry "a"+b"xx" takes three bytes; room for three entries
    cache = make_cache(max_bytes=9, on_evicted=lambda k, v: evicted.append(k))
    cache.set("a", b"xx")
    cache.set("b", b"xx")
    cache.set("c", b"xx")
    assert evicted == []
    assert cache.get("a") == b"xx"
    cache.set("d", b"xx")
    assert evicted == ["b"]
    assert cache.get("b") is None
    assert all(cache.get(k) == b"xx" for k in ("a", "c", "d"))
    assert cache.used_bytes() <= cache.max_bytes()


def test_zero_max_bytes_is_unbounded(make_cache):
    cache = make_cache(max_bytes=0)
    for i in range(200):
        cache.set(f"key{i}", b"x" * 100)
    assert len(cache) == 200


def test_delete(make_cache):
    evicted = []
    cache = make_cache(on_evicted=lambda k, v: evicted.append((k, v)))
    cache.set("key1", b"value1")
    assert cache.delete("key1") is True
    assert cache.delete("key1") is False
    assert evicted == [("key1", b"value1")]
    assert cache.get("key1") is None
    assert cache.used_bytes() == 0


def test_set_none_deletes(make_cache):
    cache = make_cache()
    cache.set("key1", b"value1")
    cache.set("key1", None)
    assert cache.get("key1") is None
    assert len(cache) == 0


def test_clear_reports_every_entry(make_cache):
    evicted = []
    cache = make_cache(on_evicted=lambda k, v: evicted.append(k))
    for key in ("k1", "k2", "k3"):
        cache.set(key, b"v")
    cache.set_with_expiration("k4", b"v", 100)
    cache.clear()
    assert sorted(evicted) == ["k1", "k2", "k3", "k4"]
    assert len(cache) == 0
    assert cache.used_bytes() == 0
    assert cache.get_expiration("k4") is None


def test_expired_entry_is_not_returned(make_cache):
    evicted = []
    cache = make_cache(on_evicted=lambda k, v: evicted.append(k))
    cache.set_with_expiration("soon", b"value", 0.05)
    cache.set_with_expiration("later", b"value", 100)
    assert cache.get("soon") == b"value"
    time.sleep(0.1)
    assert cache.get("soon") is None
    assert cache.get("later") == b"value"
    assert evicted == ["soon"]


def test_cleanup_loop_removes_expired(make_cache):
    cache = make_cache(cleanup_interval=0.02)
    cache.set_with_expiration("e1", b"v1", 0.05)
    cache.set_with_expiration("e2", b"v2", 0.05)
    cache.set("keeps", b"v")
    time.sleep(0.4)
    assert len(cache) == 1
    assert cache.get("keeps") == b"v"


def test_set_without_expiration_clears_previous(make_cache):
    cache = make_cache()
    cache.set_with_expiration("k", b"v", 100)
    assert cache.get_expiration("k") is not None
    cache.set("k", b"v")
    assert cache.get_expiration("k") is None


def test_get_expiration_timestamp(make_cache):
    cache = make_cache()
    before = time.time()
    cache.set_with_expiration("k", b"v", 30)
    after = time.time()
    expires_at = cache.get_expiration("k")
    assert before + 30 <= expires_at <= after + 30
    assert cache.get_expiration("missing") is None


def test_get_with_expiration(make_cache):
    cache = make_cache()
    cache.set("plain", b"v")
    cache.set_with_expiration("timed", b"w", 30)
    assert cache.get_with_expiration("plain") == (b"v", 0.0)
    value, ttl = cache.get_with_expiration("timed")
    assert value == b"w"
    assert 0 < ttl <= 30
    assert cache.get_with_expiration("missing") is None


def test_get_with_expiration_expired(make_cache):
    cache = make_cache()
    cache.set_with_expiration("k", b"v", 0.02)
    time.sleep(0.06)
    assert cache.get_with_expiration("k") is None


def test_update_expiration(make_cache):
    cache = make_cache()
    assert cache.update_expiration("missing", 10) is False
    cache.set("k", b"v")
    assert cache.update_expiration("k", 10) is True
    assert cache.get_expiration("k") > time.time()
    assert cache.update_expiration("k", 0) is True
    assert cache.get_expiration("k") is None


def test_set_max_bytes_triggers_eviction(make_cache):
    evicted = []
    cache = make_cache(on_evicted=lambda k, v: evicted.append(k))
    for key in ("a", "b", "c", "d"):
        cache.set(key, b"xx")
    assert cache.max_bytes() == 0
    cache.set_max_bytes(6)
    assert cache.max_bytes() == 6
    assert evicted == ["a", "b"]
    assert cache.get("c") == b"xx"
    assert cache.get("d") == b"xx"
    assert cache.used_bytes() <= 6


def test_context_manager(make_cache):
    with LRUCache(Options(max_bytes=100)) as cache:
        cache.set("k", b"v")
        assert cache.get("k") == b"v"
    assert len(cache) == 1