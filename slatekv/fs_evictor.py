"""Size-bounded eviction of files in the local object cache folder."""

from __future__ import annotations

import logging
import os
import queue
import random
import threading
import time
from pathlib import Path

from slatekv.cache_types import CacheStats

_log = logging.getLogger(__name__)

_QUEUE_CAPACITY = 100
_STOP = object()


class FsCacheEvictorInner:
    """Tracks cached files and removes them when the cache grows too large.

    Victims are chosen by a pick-of-two strategy that approximates LRU: two
    tracked files are drawn at random and the one accessed longer ago goes.
    """

    def __init__(
        self,
        root_folder: str | os.PathLike[str],
        max_cache_size_bytes: int,
        stats: CacheStats | None = None,
        batch_factor: int = 10,
    ) -> None:
        self.root_folder = Path(root_folder)
        self.max_cache_size_bytes = max_cache_size_bytes
        self.stats = stats if stats is not None else CacheStats()
        self.batch_factor = batch_factor
        self._track_lock = threading.Lock()
        self._entries_lock = threading.Lock()
        self._entries: dict[Path, tuple[float, int]] = {}
        self._size = 0
        self._rng = random.Random()

    def cache_size_bytes(self) -> int:
        """Return the total size of the tracked files."""
        with self._entries_lock:
            return self._size

    def scan_entries(self, evict: bool) -> None:
        """Walk the cache folder and track every file found with its access time."""
        for dirpath, _dirnames, filenames in os.walk(self.root_folder):
            for name in filenames:
                path = Path(dirpath) / name
                try:
                    info = path.stat()
                except OSError as err:
                    _log.warning(
                        "evictor: failed to get the metadata of the cache file: %s", err
                    )
                    continue
                self.track_entry_accessed(path, info.st_size, info.st_atime, evict)

    def track_entry_accessed(
        self,
        path: str | os.PathLike[str],
        size: int,
        accessed_time: float,
        evict: bool,
    ) -> int:
        """Record an access to ``path``; evict files if asked and over the limit.

        Returns the number of bytes evicted.
        """
        path = Path(path)
        with self._track_lock:
            with self._entries_lock:
                if path not in self._entries:
                    self._size += size
                self._entries[path] = (accessed_time, size)
                self._sync_gauges()
                over_limit = self._size > self.max_cache_size_bytes

            if not evict or not over_limit:
                return 0

            total = 0
            for _ in range(self.batch_factor):
                evicted = self._maybe_evict_once()
                if evicted == 0:
                    break
                total += evicted
            return total

    def _sync_gauges(self) -> None:
        self.stats.keys = len(self._entries)
        self.stats.bytes = self._size

    def _maybe_evict_once(self) -> int:
        target = self.pick_evict_target()
        if target is None:
            return 0
        path, size = target
        try:
            path.unlink()
        except FileNotFoundError as err:
            _log.warning("evictor: failed to remove the cache file: %s", err)
        except OSError as err:
            _log.warning("evictor: failed to remove the cache file: %s", err)
            return 0

        _log.debug("evictor: evicted cache file: %s, bytes: %d", path, size)

        with self._entries_lock:
            if self._entries.pop(path, None) is not None:
                self._size -= size
            self.stats.evicted_bytes += size
            self.stats.evicted_keys += 1
            self._sync_gauges()
        return size

    def pick_evict_target(self) -> tuple[Path, int] | None:
        """Choose a file to evict, or None when fewer than two are tracked."""
        while True:
            with self._entries_lock:
                if len(self._entries) < 2:
                    return None
                paths = list(self._entries)
                first = self._rng.choice(paths)
                second = self._rng.choice(paths)
                if first == second:
                    continue
                atime0, size0 = self._entries[first]
                atime1, size1 = self._entries[second]
            if atime0 <= atime1:
                return first, size0
            return second, size1


class FsCacheEvictor:
    """Runs eviction in background threads, fed by accesses to cached files."""

    def __init__(
        self,
        root_folder: str | os.PathLike[str],
        max_cache_size_bytes: int,
        scan_interval: float | None = None,
        stats: CacheStats | None = None,
    ) -> None:
        self.root_folder = Path(root_folder)
        self.max_cache_size_bytes = max_cache_size_bytes
        self.scan_interval = scan_interval
        self.stats = stats if stats is not None else CacheStats()
        self.inner: FsCacheEvictorInner | None = None
        self._queue: queue.Queue[object] = queue.Queue(maxsize=_QUEUE_CAPACITY)
        self._stop_event = threading.Event()
        self._state_lock = threading.Lock()
        self._threads: list[threading.Thread] = []

    def start(self) -> None:
        """Start the scanning and evicting threads; raise if already started."""
        with self._state_lock:
            if self.inner is not None:
                raise RuntimeError("evictor already started")
            inner = FsCacheEvictorInner(
                self.root_folder, self.max_cache_size_bytes, self.stats
            )
            self.inner = inner
            self._threads = [
                threading.Thread(
                    target=self._background_scan, args=(inner,), daemon=True
                ),
                threading.Thread(
                    target=self._background_evict, args=(inner,), daemon=True
                ),
            ]
            for thread in self._threads:
                thread.start()

    def started(self) -> bool:
        """Return whether the background threads have been started."""
        with self._state_lock:
            return self.inner is not None

    def track_entry_accessed(
        self, path: str | os.PathLike[str], size: int, evict: bool
    ) -> None:
        """Queue an access for the evicting thread; ignored before start."""
        if not self.started() or self._stop_event.is_set():
            return
        self._queue.put((Path(path), size, evict))

    def stop(self) -> None:
        """Stop the background threads after the queued accesses are handled."""
        with self._state_lock:
            threads = self._threads
            self._threads = []
        if not threads:
            return
        self._stop_event.set()
        self._queue.put(_STOP)
        for thread in threads:
            thread.join()

    def _background_evict(self, inner: FsCacheEvictorInner) -> None:
        while True:
            work = self._queue.get()
            if work is _STOP:
                return
            path, size, evict = work
            inner.track_entry_accessed(path, size, time.time(), evict)

    def _background_scan(self, inner: FsCacheEvictorInner) -> None:
        inner.scan_entries(True)
        if self.scan_interval is None:
            return
        while not self._stop_event.wait(self.scan_interval):
            inner.scan_entries(True)