"""A local cache of object parts and heads kept as files on disk."""

from __future__ import annotations

import os
import secrets
import string
from collections.abc import Mapping
from pathlib import Path

from slatekv.cache_types import (
    CacheStats,
    LocalCacheEntry,
    LocalCacheHead,
    LocalCacheStorage,
)
from slatekv.fs_evictor import FsCacheEvictor
from slatekv.store import ObjectMeta, ObjectStoreError

_PART_PREFIX = "_part"
_HEAD_NAME = "_head"
_ALPHANUMERIC = string.ascii_letters + string.digits
_MB = 1024 * 1024


def _location_parts(location: str) -> list[str]:
    return [part for part in str(location).split("/") if part]


def _wrap(err: Exception) -> ObjectStoreError:
    wrapped = ObjectStoreError(f"cached_object_store: {err}")
    wrapped.__cause__ = err
    return wrapped


class FsCacheEntry(LocalCacheEntry):
    """The cached parts and head of one object, stored in one folder.

    Parts are files named ``_part{size}-{number:09}`` beside a ``_head`` file
    that holds the object's metadata as JSON.
    """

    def __init__(
        self,
        root_folder: str | os.PathLike[str],
        location: str,
        part_size: int,
        evictor: FsCacheEvictor | None = None,
    ) -> None:
        self.root_folder = Path(root_folder)
        self.location = location
        self.part_size = part_size
        self.evictor = evictor

    @staticmethod
    def make_part_path(
        root_folder: str | os.PathLike[str],
        location: str,
        part_number: int,
        part_size: int,
    ) -> Path:
        """Return the file path of one part of ``location``."""
        # The part size is part of the name so it can change without invalidating the cache.
        if part_size % _MB == 0:
            size_name = f"{part_size // _MB}mb"
        else:
            size_name = f"{part_size // 1024}kb"
        suffix = f"{_PART_PREFIX}{size_name}-{part_number:09d}"
        return Path(root_folder).joinpath(*_location_parts(location), suffix)

    @staticmethod
    def make_head_path(root_folder: str | os.PathLike[str], location: str) -> Path:
        """Return the file path of the head of ``location``."""
        return Path(root_folder).joinpath(*_location_parts(location), _HEAD_NAME)

    def _part_path(self, part_number: int) -> Path:
        return self.make_part_path(
            self.root_folder, self.location, part_number, self.part_size
        )

    def _head_path(self) -> Path:
        return self.make_head_path(self.root_folder, self.location)

    def _atomic_write(self, path: Path, data: bytes) -> None:
        rand_suffix = "".join(secrets.choice(_ALPHANUMERIC) for _ in range(24))
        tmp_path = path.with_suffix(f"._tmp{rand_suffix}")
        try:
            tmp_path.parent.mkdir(parents=True, exist_ok=True)
            if self.evictor is not None:
                self.evictor.track_entry_accessed(path, len(data), True)
            with open(tmp_path, "wb") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, path)
        except OSError as err:
            raise _wrap(err) from err

    def save_part(self, part_number: int, data: bytes) -> None:
        """Store a part, unless a file for it already exists."""
        part_path = self._part_path(part_number)
        if part_path.exists():
            return
        self._atomic_write(part_path, bytes(data))

    def read_part(self, part_number: int, range_in_part: range) -> bytes | None:
        """Read a range of a cached part, or None when the part is not cached."""
        part_path = self._part_path(part_number)
        if not part_path.exists():
            return None
        if self.evictor is not None:
            self.evictor.track_entry_accessed(part_path, self.part_size, False)
        wanted = max(range_in_part.stop - range_in_part.start, 0)
        try:
            with open(part_path, "rb") as handle:
                handle.seek(range_in_part.start)
                data = handle.read(wanted)
        except OSError as err:
            raise _wrap(err) from err
        if len(data) != wanted:
            raise ObjectStoreError(
                f"cached_object_store: part {part_number} holds {len(data)} bytes "
                f"of the {wanted} requested"
            )
        return data

    def cached_parts(self) -> list[int]:
        """Return the numbers of the cached parts, ordered by file name."""
        directory = self._head_path().parent
        try:
            children = list(directory.iterdir())
        except FileNotFoundError:
            return []
        except OSError as err:
            raise _wrap(err) from err

        names = sorted(
            child.name
            for child in children
            if child.name.startswith(_PART_PREFIX) and not child.is_dir()
        )
        numbers = []
        for name in names:
            tail = name.rsplit("-", 1)[-1]
            if tail.isascii() and tail.isdigit():
                numbers.append(int(tail))
        return numbers

    def save_head(self, meta: ObjectMeta, attributes: Mapping[str, str]) -> None:
        """Store the object's head, unless a readable one is already cached."""
        try:
            if self.read_head() is not None:
                return
        except ObjectStoreError:
            pass
        head = LocalCacheHead.from_meta(meta, attributes)
        self._atomic_write(self._head_path(), head.to_json().encode("utf-8"))

    def read_head(self) -> tuple[ObjectMeta, dict[str, str]] | None:
        """Return the cached metadata and attributes, or None when absent."""
        head_path = self._head_path()
        try:
            head_size = head_path.stat().st_size
        except FileNotFoundError:
            return None
        except OSError as err:
            raise _wrap(err) from err

        if self.evictor is not None:
            self.evictor.track_entry_accessed(head_path, head_size, False)

        try:
            content = head_path.read_text(encoding="utf-8")
            head = LocalCacheHead.from_json(content)
        except (OSError, ValueError) as err:
            raise _wrap(err) from err
        return head.meta(), dict(head.attributes)

    def __repr__(self) -> str:
        return (
            f"FsCacheEntry(root_folder={str(self.root_folder)!r}, "
            f"location={self.location!r}, part_size={self.part_size})"
        )


class FsCacheStorage(LocalCacheStorage):
    """Cache storage rooted in a local folder, optionally bounded in size."""

    def __init__(
        self,
        root_folder: str | os.PathLike[str],
        max_cache_size_bytes: int | None = None,
        scan_interval: float | None = None,
        stats: CacheStats | None = None,
    ) -> None:
        self.root_folder = Path(root_folder)
        self.stats = stats if stats is not None else CacheStats()
        self.evictor: FsCacheEvictor | None = None
        if max_cache_size_bytes is not None:
            self.evictor = FsCacheEvictor(
                self.root_folder, max_cache_size_bytes, scan_interval, self.stats
            )

    def entry(self, location: str, part_size: int) -> FsCacheEntry:
        """Return the cache entry for ``location`` split into ``part_size`` parts."""
        return FsCacheEntry(self.root_folder, location, part_size, self.evictor)

    def start_evictor(self) -> None:
        """Start the evictor's background threads, if the cache is bounded."""
        if self.evictor is not None:
            self.evictor.start()

    def close(self) -> None:
        """Stop the evictor's background threads."""
        if self.evictor is not None:
            self.evictor.stop()

    def __enter__(self) -> FsCacheStorage:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __str__(self) -> str:
        return f"FsCacheStorage({self.root_folder})"