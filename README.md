# kamacache

An in-process cache library with named cache groups. A group loads each
missing key once, even under concurrent requests. If you give it a peer
picker, it can also ask a peer node for a key and pass writes on to that node.
The package has no runtime dependencies beyond the standard library.

## Modules

- `kamacache.options`: the `Store` interface, the `Value` protocol (anything
  with `__len__`), `CacheType` (`LRU`, `LRU2`), `Options` and `new_options()`.
- `kamacache.lru`: `LRUCache`. It bounds the total size of keys and values by
  `max_bytes` and supports per-key expiration. It also has
  `get_with_expiration`, `get_expiration`, `update_expiration`, `used_bytes`,
  `max_bytes` and `set_max_bytes`.
- `kamacache.lru2`: `LRU2Store`. Keys are split over hash buckets. New entries
  go to a first-level cache, and an entry that is read again moves to a
  second-level cache. This module also holds the building blocks
  `BucketCache`, `Node`, `hash_bkdr`, `mask_of_next_pow_of2` and `now()`
  (nanoseconds).
- `kamacache.byteview`: `ByteView`, an immutable wrapper around cached bytes.
- `kamacache.singleflight`: `SingleFlight.do(key, fn)`. Concurrent callers with
  the same key share one call of `fn` and receive its result or its exception.
- `kamacache.consistenthash`: `ConsistentHash` and `HashConfig`. It is a hash
  ring with virtual nodes, and a background thread resizes the replica counts
  of nodes whose load is uneven.
- `kamacache.cache`: `Cache`, `CacheOptions`, `default_cache_options()` and
  `new_store(cache_type, opts)`.
- `kamacache.group`: `Group`, `new_group`, `get_group`, `list_groups`,
  `destroy_group`, `destroy_all_groups`, the `Peer` and `PeerPicker`
  interfaces, and the errors.

All times and expirations are given in seconds unless noted otherwise.

## Installation

```
pip install kamacache
```

To install the test dependencies as well:

```
pip install "kamacache[test]"
```

## Usage

```python
from kamacache.group import new_group, get_group

def load(key):
    # Fetch from a slow source: a database, a file, a remote service...
    return f"value for {key}".encode()

group = new_group("scores", 2 << 20, load, expiration=300)

view = group.get("alice")        # loads through `load`, then caches it
print(str(view))                 # "value for alice"
print(view.to_bytes())           # b"value for alice"

group.set("bob", b"42")
group.delete("bob")

print(group.stats())             # loads, local hits/misses, hit rate, cache_* stats
assert get_group("scores") is group
group.close()                    # also removes it from the registry
```

`new_group` registers the group under its name and replaces any group already
registered under that name. `cache_options=CacheOptions(...)` chooses the
store type and its sizes. If you leave it out, the defaults are used with
`max_bytes` set to `cache_bytes`. `Group` is also a context manager that
closes on exit.

### Errors

- `KeyRequiredError` (a `ValueError`) is raised for an empty key.
- `ValueRequiredError` (a `ValueError`) is raised for an empty value in `set`.
- `GroupClosedError` (a `RuntimeError`) is raised by `get`, `set` and `delete`
  on a closed group. `clear` and `close` on a closed group do nothing.
- An exception raised by the loader is passed on to the caller of `get`.
- `register_peers` raises `RuntimeError` if a picker is already attached.

### Using a cache or a store directly

```python
import time
from kamacache.byteview import ByteView
from kamacache.cache import Cache, CacheOptions, new_store
from kamacache.options import CacheType, Options

cache = Cache(CacheOptions(cache_type=CacheType.LRU, max_bytes=1024))
cache.add("k", ByteView(b"v"))
cache.add_with_expiration("t", ByteView(b"w"), time.time() + 60)  # or a datetime
print(cache.get("k"))            # ByteView, or None on a miss
print(cache.stats())
cache.close()

with new_store(CacheType.LRU2, Options(bucket_count=4, cap_per_bucket=64, level2_cap=64)) as store:
    store.set("k", b"v")
    print(store.get("k"))        # b"v", or None if absent or expired
```

`Cache` creates its store on the first write. Once closed, it ignores writes
and treats every lookup as a miss. Unknown cache types fall back to the LRU
store. Both stores call `on_evicted(key, value)` when they drop an entry.

### Distributing across peers

Subclass `Peer` (`get`, `set`, `delete`, `close`) for your transport. Then
subclass `PeerPicker` so that `pick_peer(key)` returns `(peer, is_self)`, or
`None` when no node owns the key. Pass the picker with
`new_group(..., peers=picker)` or call `group.register_peers(picker)`. On a
local miss the group asks the owning peer first and falls back to the loader.
Writes and deletes are forwarded to the owner in a background thread unless
`from_peer=True` is passed.

Inside a picker, `ConsistentHash` can map keys to node names:

```python
from kamacache.consistenthash import ConsistentHash
from kamacache.utils import valid_peer_addr

with ConsistentHash() as ring:
    ring.add("10.0.0.1:8001", "10.0.0.2:8001")
    owner = ring.get("alice")    # one of the two addresses
    print(ring.get_stats())

assert valid_peer_addr("localhost:8001")
```

### What the package does not do

It contains no network transport, no cache server and no service discovery or
registration. Peers exist only as the `Peer` and `PeerPicker` interfaces that
you implement. Nothing is persisted: every store lives in memory.

Log messages go through the standard `logging` module, under the
`kamacache.cache` and `kamacache.group` loggers.

## Running the tests

```
pytest
```