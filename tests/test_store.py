import pytest

from slatekv.store import (
    GetRange,
    InconsistentRangeError,
    InMemoryObjectStore,
    InvalidRangeError,
    NotFoundError,
    RangeKind,
    StartTooLargeError,
)

PAYLOAD = bytes(i % 251 for i in range(1024 * 3 + 2))


@pytest.fixture
def store():
    s = InMemoryObjectStore()
    s.put("/data/testdata1", PAYLOAD, {"Content-Type": "text/plain"})
    return s


def test_put_get_round_trip(store):
    result = store.get("/data/testdata1")
    assert result.bytes() == PAYLOAD
    assert result.meta.size == len(PAYLOAD)
    assert result.range == range(0, len(PAYLOAD))


def test_location_is_normalized(store):
    result = store.get("data/testdata1")
    assert result.meta.location == "data/testdata1"
    assert result.bytes() == PAYLOAD


def test_bounded_range(store):
    result = store.get_opts("/data/testdata1", GetRange.bounded(1000, 2048))
    assert result.range == range(1000, 2048)
    assert result.bytes() == PAYLOAD[1000:2048]


def test_bounded_range_is_clamped(store):
    result = store.get_opts("/data/testdata1", GetRange.bounded(1000, 260817))
    assert result.range == range(1000, len(PAYLOAD))
    assert result.bytes() == PAYLOAD[1000:]


def test_offset_range(store):
    result = store.get_opts("/data/testdata1", GetRange.offset(1028))
    assert result.bytes() == PAYLOAD[1028:]


def test_suffix_range(store):
    result = store.get_opts("/data/testdata1", GetRange.suffix(10))
    assert result.bytes() == PAYLOAD[-10:]
    longer = store.get_opts("/data/testdata1", GetRange.suffix(260817))
    assert longer.bytes() == PAYLOAD


def test_empty_suffix(store):
    result = store.get_opts("/data/testdata1", GetRange.suffix(0))
    assert result.range == range(len(PAYLOAD), len(PAYLOAD))
    assert list(result.chunks()) == []


def test_chunks_join_to_bytes(store):
    result = store.get("/data/testdata1")
    assert b"".join(result.chunks()) == PAYLOAD


def test_offset_at_end_is_too_large(store):
    with pytest.raises(StartTooLargeError) as info:
        store.get_opts("/data/testdata1", GetRange.offset(len(PAYLOAD)))
    assert info.value.requested == len(PAYLOAD)
    assert "range" in str(info.value).lower()


def test_bounded_start_too_large(store):
    with pytest.raises(StartTooLargeError):
        store.get_opts("/data/testdata1", GetRange.bounded(260817, 260818))


def test_inconsistent_range(store):
    with pytest.raises(InconsistentRangeError) as info:
        store.get_opts("/data/testdata1", GetRange.bounded(2900, 2048))
    assert isinstance(info.value, InvalidRangeError)
    assert (info.value.start, info.value.end) == (2900, 2048)


def test_missing_object(store):
    with pytest.raises(NotFoundError):
        store.get("/data/missing")


def test_head_matches_get(store):
    meta = store.head("/data/testdata1")
    assert meta == store.get("/data/testdata1").meta
    head_result = store.get_opts("/data/testdata1", head=True)
    assert head_result.bytes() == b""
    assert head_result.attributes == {"Content-Type": "text/plain"}


def test_empty_object():
    s = InMemoryObjectStore()
    s.put("empty", b"")
    result = s.get("empty")
    assert result.bytes() == b""
    assert result.range == range(0, 0)


def test_list_with_prefix():
    s = InMemoryObjectStore()
    s.put("data/b", b"2")
    s.put("data/a", b"1")
    s.put("data2/x", b"3")
    assert [m.location for m in s.list("data")] == ["data/a", "data/b"]
    assert [m.location for m in s.list()] == ["data/a", "data/b", "data2/x"]


def test_copy_and_rename(store):
    store.copy("/data/testdata1", "/data/copy")
    assert store.get("/data/copy").bytes() == PAYLOAD
    store.rename("/data/copy", "/data/moved")
    assert store.get("/data/moved").bytes() == PAYLOAD
    with pytest.raises(NotFoundError):
        store.get("/data/copy")


def test_copy_missing_raises(store):
    with pytest.raises(NotFoundError):
        store.copy("/data/missing", "/data/other")


def test_delete(store):
    store.delete("/data/testdata1")
    store.delete("/data/testdata1")
    with pytest.raises(NotFoundError):
        store.head("/data/testdata1")


def test_overwrite_replaces_payload(store):
    first = store.head("/data/testdata1")
    store.put("/data/testdata1", b"new")
    second = store.head("/data/testdata1")
    assert store.get("/data/testdata1").bytes() == b"new"
    assert second.e_tag != first.e_tag and second.size == 3


def test_get_range_constructors():
    assert GetRange.bounded(1, 5) == GetRange(RangeKind.BOUNDED, start=1, end=5)
    assert GetRange.offset(7).start == 7
    assert GetRange.suffix(9).length == 9
    with pytest.raises(ValueError):
        GetRange.bounded(-1, 5)
    with pytest.raises(ValueError):
        GetRange.suffix(-2)