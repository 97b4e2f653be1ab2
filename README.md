# slatekv

This package provides building blocks for a key-value store that keeps its data in an object store.

- **Object stores** (`slatekv.store`):
  - `ObjectStore` is the abstract interface. It has `get_opts`, `get`, `head`, `put`, `delete`, `list`, `copy` and `rename`.
  - `InMemoryObjectStore` is a thread-safe implementation that keeps every object in memory.
  - A read can take an optional `GetRange`. Build one with `GetRange.bounded(start, end)`, `GetRange.offset(offset)` or `GetRange.suffix(length)`.
  - Reads return a `GetResult`. It holds the `ObjectMeta`, the range that was served, the attributes, and the payload. Read the payload with `bytes()` or `chunks()`.
- **Range arithmetic** (`slatekv.cache_ranges`): these functions work out which cache parts a range covers.
  - `align_range`
  - `align_get_range`
  - `canonicalize_range`
  - `split_range_into_parts`
- **Part-based disk cache**:
  - `CachedObjectStore` (`slatekv.cached_store`) wraps any `ObjectStore`. It splits objects into fixed-size parts and caches them through a `LocalCacheStorage`.
  - `FsCacheStorage` (`slatekv.fs_cache`) is the storage that keeps the parts as files on disk.
  - `FsCacheEvictor` (`slatekv.fs_evictor`) can bound the size of the cache.
- **Write batches** (`slatekv.batch`):
  - `WriteBatch` collects puts and deletes in order.
  - `PutOptions` and `Ttl` decide when a written value expires.

The package has no third-party dependencies.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Reading through a disk cache

```python
import tempfile

from slatekv.store import InMemoryObjectStore, GetRange
from slatekv.fs_cache import FsCacheStorage
from slatekv.cached_store import CachedObjectStore

remote = InMemoryObjectStore()
remote.put("data/file1", b"x" * 5000)

with tempfile.TemporaryDirectory() as cache_dir:
    with FsCacheStorage(cache_dir, max_cache_size_bytes=64 * 1024 * 1024) as storage:
        store = CachedObjectStore(remote, storage, part_size_bytes=1024)
        store.start_evictor()

        result = store.get_opts("data/file1", GetRange.bounded(1000, 2048))
        print(result.range, len(result.bytes()))  # range(1000, 2048) 1048
        print(store.stats.part_access, store.stats.part_hits)
```

### Part size

The part size must be a positive multiple of 1024. Any other value raises `InvalidCachePartSizeError`, which is a `ValueError`.

### What a read does

1. It looks for a cached head for the object.
2. If there is none, it fetches the requested range from the wrapped store, widened to whole parts, and saves the parts and the head.
3. It serves each part from the cache. A missing part is fetched from the wrapped store and then cached.

If the cache fails to read or write its files, the read goes to the wrapped store instead.

### Files on disk

The files for an object sit in a folder under the cache root that matches the object's location:

- Each part is a file named `_part{size}-{number:09}`. The size is written like `1kb` or `1mb`.
- A `_head` file holds the object's metadata and attributes as JSON.

`FsCacheEntry.make_part_path` and `FsCacheEntry.make_head_path` return these paths.

### Writes and deletes

`put`, `delete`, `list`, `copy` and `rename` are passed straight to the wrapped store. They do not update or invalidate cached parts or heads.

### Range errors

Ranges are resolved as follows:

- A start at or past the end of the object raises `StartTooLargeError`.
- A bounded range whose end is not after its start raises `InconsistentRangeError`.
- A suffix longer than the object returns the whole object.

Both range errors are subclasses of `InvalidRangeError`, which is an `ObjectStoreError`.

## Eviction

When `FsCacheStorage` gets `max_cache_size_bytes`, it creates an `FsCacheEvictor`.

`start_evictor()` starts two background threads:

- One walks the cache folder. It does this once, or every `scan_interval` seconds if you set one.
- The other handles the file accesses that the cache entries report.

Accesses reported before the start are ignored.

Writing a new file can push the tracked total over the limit. When that happens, the evictor removes up to ten files. Each victim is chosen by drawing two tracked files at random and removing the one accessed longer ago. Nothing is evicted while fewer than two files are tracked.

`FsCacheStorage.close()` stops the threads. So does leaving its `with` block.

The `CacheStats` object shared by the storage counts the following:

- keys
- bytes
- evicted keys
- evicted bytes

`FsCacheEvictorInner` does the same tracking without threads. You can call it directly.

## Write batches

```python
from slatekv.batch import WriteBatch, PutOptions, Ttl

batch = WriteBatch()
batch.put(b"key1", b"value1")
batch.put(b"key2", b"value2", PutOptions(ttl=Ttl.expire_after(10)))
batch.delete(b"key3")
print(len(batch))
for op in batch:
    print(op)  # PutOp(...) or DeleteOp(...)
```

An empty key raises `ValueError`.

`PutOptions.expire_ts_from(default_ttl, now)` gives the expiry timestamp of a put:

| `Ttl` | Expiry timestamp |
| --- | --- |
| `Ttl.no_expiry()` | `None` |
| `Ttl.expire_after(n)` | `now + n` |
| `Ttl.default()` | `now + default_ttl`, or `None` if there is no default |

## What this package does not do

There is no database here: no memtable, no write-ahead log, no SSTables, no compaction, and nothing that applies a `WriteBatch`. A batch is only an ordered list of operations for such an engine to consume.

The package has no command-line tool and no workload benchmarker.

The only object store provided is the in-memory one. Connecting to a cloud or remote object store means writing your own `ObjectStore` subclass.