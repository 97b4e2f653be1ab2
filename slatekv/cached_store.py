"""An object store that keeps fixed-size parts of fetched objects in a local cache."""

from __future__ import annotations

from collections.abc import Iterator, Mapping

from slatekv.cache_ranges import (
    align_get_range,
    canonicalize_range,
    split_range_into_parts,
)
from slatekv.cache_types import CacheStats, LocalCacheStorage
from slatekv.store import (
    GetRange,
    GetResult,
    ObjectMeta,
    ObjectStore,
    ObjectStoreError,
)

_SAVE_ERRORS = (ObjectStoreError, OSError, ValueError)


class InvalidCachePartSizeError(ValueError):
    """The cache part size is zero or not a multiple of 1024 bytes."""

    def __init__(self, part_size_bytes: int) -> None:
        super().__init__(
            f"invalid cache part size {part_size_bytes}: "
            "must be a positive multiple of 1024"
        )
        self.part_size_bytes = part_size_bytes


class CachedObjectStore(ObjectStore):
    """Wraps an object store and serves reads through a local part cache.

    Objects are split into parts of ``part_size_bytes``. A read first makes
    sure the object's head is cached, prefetching the requested range aligned
    to whole parts, then serves each part from the cache, falling back to the
    wrapped store for parts that are missing.
    """

    def __init__(
        self,
        object_store: ObjectStore,
        cache_storage: LocalCacheStorage,
        part_size_bytes: int,
        stats: CacheStats | None = None,
    ) -> None:
        if part_size_bytes <= 0 or part_size_bytes % 1024 != 0:
            raise InvalidCachePartSizeError(part_size_bytes)
        self.object_store = object_store
        self.cache_storage = cache_storage
        self.part_size_bytes = part_size_bytes
        self.stats = stats if stats is not None else CacheStats()

    def __str__(self) -> str:
        return f"CachedObjectStore({self.object_store}, {self.cache_storage})"

    def start_evictor(self) -> None:
        """Start the cache storage's background eviction."""
        self.cache_storage.start_evictor()

    def cached_head(self, location: str) -> ObjectMeta:
        """Return an object's metadata, from the cache when it is there."""
        entry = self.cache_storage.entry(location, self.part_size_bytes)
        try:
            cached = entry.read_head()
        except _SAVE_ERRORS:
            cached = None
        if cached is not None:
            return cached[0]
        result = self.object_store.get_opts(location, head=True)
        meta = result.meta
        try:
            self.save_result(result)
        except _SAVE_ERRORS:
            pass
        return meta

    def cached_get_opts(
        self, location: str, get_range: GetRange | None = None, head: bool = False
    ) -> GetResult:
        """Fetch an object or a range of it, reading cached parts where possible."""
        meta, attributes = self._maybe_prefetch_range(location, get_range, head)
        served = canonicalize_range(get_range, meta.size)
        parts = split_range_into_parts(served, self.part_size_bytes)
        return GetResult(
            meta=meta,
            range=served,
            attributes=attributes,
            payload=self._read_parts(location, parts),
        )

    def _read_parts(
        self, location: str, parts: list[tuple[int, range]]
    ) -> Iterator[bytes]:
        for part_id, range_in_part in parts:
            yield self._read_part(location, part_id, range_in_part)

    def _maybe_prefetch_range(
        self, location: str, get_range: GetRange | None, head: bool
    ) -> tuple[ObjectMeta, dict[str, str]]:
        entry = self.cache_storage.entry(location, self.part_size_bytes)
        try:
            cached = entry.read_head()
        except _SAVE_ERRORS:
            cached = None
        if cached is not None:
            return cached

        aligned = (
            align_get_range(get_range, self.part_size_bytes)
            if get_range is not None
            else None
        )
        result = self.object_store.get_opts(location, aligned, head)
        meta = result.meta
        attributes = dict(result.attributes)
        # A failure to write the cache (a full disk, say) only costs the cache.
        try:
            self.save_result(result)
        except _SAVE_ERRORS:
            pass
        return meta, attributes

    def save_result(self, result: GetResult) -> int:
        """Save a part-aligned get result as cached parts plus a head.

        Returns the size of the whole object.
        """
        part_size = self.part_size_bytes
        object_size = result.meta.size
        if result.range.start % part_size != 0:
            raise ValueError(
                f"result range start {result.range.start} is not aligned "
                f"to the part size {part_size}"
            )
        if result.range.stop % part_size != 0 and result.range.stop != object_size:
            raise ValueError(
                f"result range end {result.range.stop} is neither aligned "
                f"to the part size {part_size} nor the object end"
            )

        entry = self.cache_storage.entry(result.meta.location, part_size)
        entry.save_head(result.meta, result.attributes)

        buffer = bytearray()
        part_number = result.range.start // part_size
        for chunk in result.chunks():
            buffer.extend(chunk)
            while len(buffer) >= part_size:
                entry.save_part(part_number, bytes(buffer[:part_size]))
                del buffer[:part_size]
                part_number += 1
        if buffer:
            entry.save_part(part_number, bytes(buffer))
        return object_size

    def _read_part(self, location: str, part_id: int, range_in_part: range) -> bytes:
        entry = self.cache_storage.entry(location, self.part_size_bytes)
        self.stats.part_access += 1
        try:
            cached = entry.read_part(part_id, range_in_part)
        except _SAVE_ERRORS:
            cached = None
        if cached is not None:
            self.stats.part_hits += 1
            return cached

        part_size = self.part_size_bytes
        result = self.object_store.get_opts(
            location, GetRange.bounded(part_id * part_size, (part_id + 1) * part_size)
        )
        data = result.bytes()
        try:
            entry.save_head(result.meta, result.attributes)
        except _SAVE_ERRORS:
            pass
        try:
            entry.save_part(part_id, data)
        except _SAVE_ERRORS:
            pass
        return data[range_in_part.start : range_in_part.stop]

    def get_opts(
        self, location: str, get_range: GetRange | None = None, head: bool = False
    ) -> GetResult:
        return self.cached_get_opts(location, get_range, head)

    def head(self, location: str) -> ObjectMeta:
        return self.cached_head(location)

    def put(
        self,
        location: str,
        payload: bytes,
        attributes: Mapping[str, str] | None = None,
    ) -> ObjectMeta:
        return self.object_store.put(location, payload, attributes)

    def delete(self, location: str) -> None:
        self.object_store.delete(location)

    def list(self, prefix: str | None = None) -> Iterator[ObjectMeta]:
        return self.object_store.list(prefix)

    def copy(self, source: str, dest: str) -> None:
        self.object_store.copy(source, dest)

    def rename(self, source: str, dest: str) -> None:
        self.object_store.rename(source, dest)