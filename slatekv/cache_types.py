"""Shared types for the local object cache: statistics, cached heads and storage interfaces."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone

from slatekv.store import ObjectMeta

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass
class CacheStats:
    """Counters and gauges describing the local object cache."""

    part_access: int = 0
    part_hits: int = 0
    keys: int = 0
    bytes: int = 0
    evicted_bytes: int = 0
    evicted_keys: int = 0


def _format_time(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.isoformat()


def _parse_time(text: str) -> datetime:
    candidate = text.strip()
    if candidate.endswith(("Z", "z")):
        candidate = candidate[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError:
        return _EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _optional_str(payload: Mapping[str, object], name: str) -> str | None:
    value = payload.get(name)
    if value is not None and not isinstance(value, str):
        raise ValueError(f"field {name!r} must be a string or null")
    return value


@dataclass
class LocalCacheHead:
    """The metadata and attributes of a cached object, as kept on local disk."""

    location: str
    last_modified: str
    size: int
    e_tag: str | None = None
    version: str | None = None
    attributes: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_meta(
        cls, meta: ObjectMeta, attributes: Mapping[str, str] | None = None
    ) -> LocalCacheHead:
        """Build a head from object metadata and its attributes."""
        return cls(
            location=str(meta.location),
            last_modified=_format_time(meta.last_modified),
            size=meta.size,
            e_tag=meta.e_tag,
            version=meta.version,
            attributes={str(k): str(v) for k, v in (attributes or {}).items()},
        )

    def meta(self) -> ObjectMeta:
        """Return the object metadata; an unreadable timestamp becomes the epoch."""
        return ObjectMeta(
            location=self.location,
            last_modified=_parse_time(self.last_modified),
            size=self.size,
            e_tag=self.e_tag,
            version=self.version,
        )

    def to_json(self) -> str:
        """Serialize the head to JSON text."""
        return json.dumps(
            {
                "location": self.location,
                "last_modified": self.last_modified,
                "size": self.size,
                "e_tag": self.e_tag,
                "version": self.version,
                "attributes": self.attributes,
            }
        )

    @classmethod
    def from_json(cls, text: str | bytes) -> LocalCacheHead:
        """Parse a head from JSON text, raising ValueError when it is malformed."""
        payload = json.loads(text)
        if not isinstance(payload, dict):
            raise ValueError("cache head must be a JSON object")
        for name in ("location", "last_modified", "size", "attributes"):
            if name not in payload:
                raise ValueError(f"cache head is missing field {name!r}")
        location = payload["location"]
        last_modified = payload["last_modified"]
        size = payload["size"]
        attributes = payload["attributes"]
        if not isinstance(location, str) or not isinstance(last_modified, str):
            raise ValueError("location and last_modified must be strings")
        if isinstance(size, bool) or not isinstance(size, int) or size < 0:
            raise ValueError("size must be a non-negative integer")
        if not isinstance(attributes, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in attributes.items()
        ):
            raise ValueError("attributes must map strings to strings")
        return cls(
            location=location,
            last_modified=last_modified,
            size=size,
            e_tag=_optional_str(payload, "e_tag"),
            version=_optional_str(payload, "version"),
            attributes=dict(attributes),
        )


class LocalCacheEntry(ABC):
    """The cached parts and head of one object."""

    @abstractmethod
    def save_part(self, part_number: int, data: bytes) -> None:
        """Store one part of the object."""

    @abstractmethod
    def read_part(self, part_number: int, range_in_part: range) -> bytes | None:
        """Read a range of a cached part, or None when the part is not cached."""

    @abstractmethod
    def cached_parts(self) -> list[int]:
        """Return the numbers of the parts currently cached, in order."""

    @abstractmethod
    def save_head(self, meta: ObjectMeta, attributes: Mapping[str, str]) -> None:
        """Store the metadata and attributes of the object."""

    @abstractmethod
    def read_head(self) -> tuple[ObjectMeta, dict[str, str]] | None:
        """Return the cached metadata and attributes, or None when absent."""


class LocalCacheStorage(ABC):
    """A local store of cache entries."""

    @abstractmethod
    def entry(self, location: str, part_size: int) -> LocalCacheEntry:
        """Return the cache entry for ``location`` split into ``part_size`` parts."""

    @abstractmethod
    def start_evictor(self) -> None:
        """Start background eviction, if the storage has an evictor."""