import os
import time
from pathlib import Path

import pytest

from slatekv.cache_types import CacheStats
from slatekv.fs_evictor import FsCacheEvictor, FsCacheEvictorInner


def gen_rand_file(folder: Path, name: str, n: int) -> Path:
    path = folder / name
    path.write_bytes(os.urandom(n))
    return path


def count_files(folder: Path) -> int:
    return sum(len(files) for _, _, files in os.walk(folder))


def test_evictor(tmp_path):
    evictor = FsCacheEvictorInner(tmp_path, 1024 * 2, CacheStats())
    evictor.batch_factor = 2

    path0 = gen_rand_file(tmp_path, "file0", 1024)
    assert evictor.track_entry_accessed(path0, 1024, time.time(), True) == 0

    path1 = gen_rand_file(tmp_path, "file1", 1024)
    assert evictor.track_entry_accessed(path1, 1024, time.time(), True) == 0

    path2 = gen_rand_file(tmp_path, "file2", 1024)
    assert evictor.track_entry_accessed(path2, 1024, time.time(), True) == 2048

    assert count_files(tmp_path) == 1
    assert evictor.cache_size_bytes() == 1024


def test_evictor_pick(tmp_path):
    evictor = FsCacheEvictorInner(tmp_path, 1024 * 2, CacheStats())
    path0 = gen_rand_file(tmp_path, "file0", 1024)
    gen_rand_file(tmp_path, "file1", 1025)
    os.utime(path0, (0, path0.stat().st_mtime))

    evictor.scan_entries(False)

    target_path, size = evictor.pick_evict_target()
    assert target_path == path0
    assert size == 1024


def test_evictor_rescan(tmp_path):
    evictor = FsCacheEvictorInner(tmp_path, 1024 * 2, CacheStats())
    gen_rand_file(tmp_path, "file0", 1024)
    gen_rand_file(tmp_path, "file1", 1025)

    evictor.scan_entries(False)
    assert evictor.cache_size_bytes() == 2049
    evictor.scan_entries(False)
    assert evictor.cache_size_bytes() == 2049


def test_track_without_evict_keeps_files(tmp_path):
    stats = CacheStats()
    evictor = FsCacheEvictorInner(tmp_path, 1024, stats)
    for i in range(3):
        path = gen_rand_file(tmp_path, f"file{i}", 1024)
        assert evictor.track_entry_accessed(path, 1024, time.time(), False) == 0
    assert count_files(tmp_path) == 3
    assert stats.keys == 3
    assert stats.bytes == 3072


def test_pick_needs_two_entries(tmp_path):
    evictor = FsCacheEvictorInner(tmp_path, 1024)
    assert evictor.pick_evict_target() is None
    path = gen_rand_file(tmp_path, "file0", 10)
    evictor.track_entry_accessed(path, 10, time.time(), False)
    assert evictor.pick_evict_target() is None


def test_eviction_updates_stats(tmp_path):
    stats = CacheStats()
    evictor = FsCacheEvictorInner(tmp_path, 1024 * 2, stats, batch_factor=2)
    for i in range(3):
        path = gen_rand_file(tmp_path, f"file{i}", 1024)
        evictor.track_entry_accessed(path, 1024, float(i), True)
    assert stats.evicted_keys == 2
    assert stats.evicted_bytes == 2048
    assert stats.keys == 1
    assert stats.bytes == 1024


def test_eviction_prefers_older_entry(tmp_path):
    evictor = FsCacheEvictorInner(tmp_path, 1500, batch_factor=1)
    old = gen_rand_file(tmp_path, "old", 1000)
    new = gen_rand_file(tmp_path, "new", 1000)
    evictor.track_entry_accessed(old, 1000, 1.0, True)
    assert evictor.track_entry_accessed(new, 1000, 2.0, True) == 1000
    assert not old.exists()
    assert new.exists()


def test_evictor_start_and_stop(tmp_path):
    stats = CacheStats()
    evictor = FsCacheEvictor(tmp_path, 1024 * 2, None, stats)
    assert evictor.started() is False
    evictor.start()
    assert evictor.started() is True
    for i in range(3):
        path = gen_rand_file(tmp_path, f"file{i}", 1024)
        evictor.track_entry_accessed(path, 1024, True)
    evictor.stop()
    assert count_files(tmp_path) == 1
    assert stats.evicted_keys >= 2


def test_evictor_start_twice_fails(tmp_path):
    evictor = FsCacheEvictor(tmp_path, 1024)
    evictor.start()
    try:
        with pytest.raises(RuntimeError, match="already started"):
            evictor.start()
    finally:
        evictor.stop()


def test_track_before_start_is_ignored(tmp_path):
    stats = CacheStats()
    evictor = FsCacheEvictor(tmp_path, 10, None, stats)
    path = gen_rand_file(tmp_path, "file0", 100)
    evictor.track_entry_accessed(path, 100, True)
    assert evictor.inner is None
    assert stats.keys == 0
    assert path.exists()