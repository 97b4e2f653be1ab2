"""Range arithmetic for splitting objects into fixed-size cache parts."""

from __future__ import annotations

from slatekv.store import (
    GetRange,
    InconsistentRangeError,
    RangeKind,
    StartTooLargeError,
)


def align_range(range_: range, alignment: int) -> range:
    """Widen ``range_`` so that both ends fall on multiples of ``alignment``."""
    start = range_.start - range_.start % alignment
    end = -(-range_.stop // alignment) * alignment
    return range(start, end)


def align_get_range(get_range: GetRange, alignment: int) -> GetRange:
    """Widen a range request so that it covers whole parts."""
    if get_range.kind is RangeKind.BOUNDED:
        aligned = align_range(range(get_range.start, get_range.end), alignment)
        return GetRange.bounded(aligned.start, aligned.stop)
    if get_range.kind is RangeKind.SUFFIX:
        return GetRange.suffix(align_range(range(0, get_range.length), alignment).stop)
    return GetRange.offset(get_range.start - get_range.start % alignment)


def canonicalize_range(get_range: GetRange | None, object_size: int) -> range:
    """Resolve a range request against an object of ``object_size`` bytes."""
    if get_range is None:
        return range(0, object_size)
    if get_range.kind is RangeKind.BOUNDED:
        if get_range.start >= object_size:
            raise StartTooLargeError(get_range.start, object_size)
        if get_range.start >= get_range.end:
            raise InconsistentRangeError(get_range.start, get_range.end)
        return range(get_range.start, min(get_range.end, object_size))
    if get_range.kind is RangeKind.OFFSET:
        if get_range.start >= object_size:
            raise StartTooLargeError(get_range.start, object_size)
        return range(get_range.start, object_size)
    return range(max(object_size - get_range.length, 0), object_size)


def split_range_into_parts(range_: range, part_size: int) -> list[tuple[int, range]]:
    """Split ``range_`` into (part id, range inside that part) pairs."""
    aligned = align_range(range_, part_size)
    first_part = aligned.start // part_size
    last_part = aligned.stop // part_size
    if first_part >= last_part:
        return []
    parts = [(part_id, range(0, part_size)) for part_id in range(first_part, last_part)]
    head_id, head_range = parts[0]
    parts[0] = (head_id, range(range_.start % part_size, head_range.stop))
    if range_.stop % part_size != 0:
        tail_id, tail_range = parts[-1]
        parts[-1] = (tail_id, range(tail_range.start, range_.stop % part_size))
    return parts