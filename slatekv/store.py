"""Object store interface, range requests and an in-memory implementation."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class RangeKind(Enum):
    """The shape of a range request."""

    BOUNDED = "bounded"
    OFFSET = "offset"
    SUFFIX = "suffix"


@dataclass(frozen=True)
class GetRange:
    """A byte range to request from an object.

    ``BOUNDED`` uses ``start`` and ``end`` (exclusive), ``OFFSET`` uses
    ``start`` and ``SUFFIX`` uses ``length``.
    """

    kind: RangeKind
    start: int = 0
    end: int = 0
    length: int = 0

    @classmethod
    def bounded(cls, start: int, end: int) -> GetRange:
        """Request the bytes from ``start`` up to, not including, ``end``."""
        _check_non_negative(start=start, end=end)
        return cls(RangeKind.BOUNDED, start=start, end=end)

    @classmethod
    def offset(cls, offset: int) -> GetRange:
        """Request every byte from ``offset`` to the end of the object."""
        _check_non_negative(offset=offset)
        return cls(RangeKind.OFFSET, start=offset)

    @classmethod
    def suffix(cls, length: int) -> GetRange:
        """Request the last ``length`` bytes of the object."""
        _check_non_negative(length=length)
        return cls(RangeKind.SUFFIX, length=length)


def _check_non_negative(**values: int) -> None:
    for name, value in values.items():
        if value < 0:
            raise ValueError(f"{name} must not be negative, got {value}")


@dataclass(frozen=True)
class ObjectMeta:
    """Metadata describing a stored object."""

    location: str
    last_modified: datetime
    size: int
    e_tag: str | None = None
    version: str | None = None


@dataclass
class GetResult:
    """The answer to a get request: metadata, the served range and the payload."""

    meta: ObjectMeta
    range: range
    attributes: dict[str, str] = field(default_factory=dict)
    payload: Iterable[bytes] = ()

    def chunks(self) -> Iterator[bytes]:
        """Iterate over the payload chunk by chunk."""
        return iter(self.payload)

    def bytes(self) -> bytes:
        """Collect the whole payload into one bytes object."""
        return b"".join(self.payload)


class ObjectStoreError(Exception):
    """Base error raised by object stores."""


class NotFoundError(ObjectStoreError):
    """The requested object does not exist."""

    def __init__(self, location: str) -> None:
        super().__init__(f"Object at location {location} not found")
        self.location = location


class InvalidRangeError(ObjectStoreError):
    """A range request cannot be served."""


class StartTooLargeError(InvalidRangeError):
    """The range starts at or past the end of the object."""

    def __init__(self, requested: int, length: int) -> None:
        super().__init__(
            f"Range start too large, requested: {requested}, length: {length}"
        )
        self.requested = requested
        self.length = length


class InconsistentRangeError(InvalidRangeError):
    """The range ends at or before its start."""

    def __init__(self, start: int, end: int) -> None:
        super().__init__(f"Range started at {start} and ended at {end}")
        self.start = start
        self.end = end


def _normalize_location(location: str) -> str:
    return "/".join(part for part in str(location).split("/") if part)


class ObjectStore(ABC):
    """A store of immutable byte objects addressed by path-like locations."""

    @abstractmethod
    def get_opts(
        self, location: str, get_range: GetRange | None = None, head: bool = False
    ) -> GetResult:
        """Fetch an object, or part of it; with ``head`` only its metadata."""

    def get(self, location: str) -> GetResult:
        """Fetch a whole object."""
        return self.get_opts(location)

    def head(self, location: str) -> ObjectMeta:
        """Fetch the metadata of an object."""
        return self.get_opts(location, head=True).meta

    @abstractmethod
    def put(
        self,
        location: str,
        payload: bytes,
        attributes: Mapping[str, str] | None = None,
    ) -> ObjectMeta:
        """Store ``payload`` at ``location``, replacing any previous object."""

    @abstractmethod
    def delete(self, location: str) -> None:
        """Remove the object at ``location``."""

    @abstractmethod
    def list(self, prefix: str | None = None) -> Iterator[ObjectMeta]:
        """Iterate over objects whose location lies under ``prefix``."""

    @abstractmethod
    def copy(self, source: str, dest: str) -> None:
        """Copy an object to a new location."""

    def rename(self, source: str, dest: str) -> None:
        """Move an object to a new location."""
        self.copy(source, dest)
        self.delete(source)


@dataclass
class _StoredObject:
    data: bytes
    meta: ObjectMeta
    attributes: dict[str, str]


def _resolve_range(get_range: GetRange | None, size: int) -> range:
    if get_range is None:
        return range(0, size)
    if get_range.kind is RangeKind.BOUNDED:
        if get_range.start >= get_range.end:
            raise InconsistentRangeError(get_range.start, get_range.end)
        if get_range.start >= size:
            raise StartTooLargeError(get_range.start, size)
        return range(get_range.start, min(get_range.end, size))
    if get_range.kind is RangeKind.OFFSET:
        if get_range.start >= size:
            raise StartTooLargeError(get_range.start, size)
        return range(get_range.start, size)
    return range(max(size - get_range.length, 0), size)


class InMemoryObjectStore(ObjectStore):
    """A thread-safe object store that keeps every object in memory."""

    def __init__(self) -> None:
        self._objects: dict[str, _StoredObject] = {}
        self._lock = threading.Lock()
        self._next_etag = 0

    def __str__(self) -> str:
        return "InMemory"

    def _lookup(self, location: str) -> _StoredObject:
        key = _normalize_location(location)
        with self._lock:
            stored = self._objects.get(key)
        if stored is None:
            raise NotFoundError(key)
        return stored

    def _store(self, key: str, data: bytes, attributes: dict[str, str]) -> ObjectMeta:
        with self._lock:
            etag = str(self._next_etag)
            self._next_etag += 1
            meta = ObjectMeta(
                location=key,
                last_modified=datetime.now(timezone.utc),
                size=len(data),
                e_tag=etag,
            )
            self._objects[key] = _StoredObject(data, meta, attributes)
        return meta

    def get_opts(
        self, location: str, get_range: GetRange | None = None, head: bool = False
    ) -> GetResult:
        stored = self._lookup(location)
        if head:
            return GetResult(stored.meta, range(0, 0), dict(stored.attributes), ())
        served = _resolve_range(get_range, stored.meta.size)
        data = stored.data[served.start : served.stop]
        return GetResult(
            stored.meta, served, dict(stored.attributes), (data,) if data else ()
        )

    def head(self, location: str) -> ObjectMeta:
        return self._lookup(location).meta

    def put(
        self,
        location: str,
        payload: bytes,
        attributes: Mapping[str, str] | None = None,
    ) -> ObjectMeta:
        return self._store(
            _normalize_location(location), bytes(payload), dict(attributes or {})
        )

    def delete(self, location: str) -> None:
        with self._lock:
            self._objects.pop(_normalize_location(location), None)

    def list(self, prefix: str | None = None) -> Iterator[ObjectMeta]:
        wanted = _normalize_location(prefix) if prefix is not None else ""
        with self._lock:
            metas = sorted(
                (stored.meta for stored in self._objects.values()),
                key=lambda meta: meta.location,
            )
        for meta in metas:
            if not wanted or meta.location == wanted or meta.location.startswith(
                wanted + "/"
            ):
                yield meta

    def copy(self, source: str, dest: str) -> None:
        stored = self._lookup(source)
        self._store(_normalize_location(dest), stored.data, dict(stored.attributes))

    def rename(self, source: str, dest: str) -> None:
        self.copy(source, dest)
        self.delete(source)