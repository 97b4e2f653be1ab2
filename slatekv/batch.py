"""Batches of write operations applied atomically to the database."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Literal, Union

TtlKind = Literal["default", "no_expiry", "expire_after"]


@dataclass(frozen=True)
class Ttl:
    """How long a written value lives: the database default, forever, or a set time."""

    kind: TtlKind = "default"
    duration: int = 0

    @classmethod
    def default(cls) -> Ttl:
        """Use the database's default time to live."""
        return cls("default")

    @classmethod
    def no_expiry(cls) -> Ttl:
        """Never expire the value."""
        return cls("no_expiry")

    @classmethod
    def expire_after(cls, duration: int) -> Ttl:
        """Expire the value ``duration`` clock ticks after it is written."""
        if duration < 0:
            raise ValueError(f"ttl must not be negative, got {duration}")
        return cls("expire_after", duration)


@dataclass(frozen=True)
class PutOptions:
    """Options applied to a single put."""

    ttl: Ttl = field(default_factory=Ttl.default)

    def expire_ts_from(self, default_ttl: int | None, now: int) -> int | None:
        """Return the expiry timestamp for a value written at ``now``."""
        if self.ttl.kind == "no_expiry":
            return None
        if self.ttl.kind == "expire_after":
            return now + self.ttl.duration
        return None if default_ttl is None else now + default_ttl


@dataclass(frozen=True)
class PutOp:
    """Write ``value`` under ``key``."""

    key: bytes
    value: bytes
    options: PutOptions = field(default_factory=PutOptions)


@dataclass(frozen=True)
class DeleteOp:
    """Remove ``key``."""

    key: bytes


WriteOp = Union[PutOp, DeleteOp]


class WriteBatch:
    """An ordered collection of puts and deletes applied atomically.

    When several operations touch the same key, the last one wins. The batch
    has no size limit.
    """

    def __init__(self) -> None:
        self.ops: list[WriteOp] = []

    def put(
        self, key: bytes, value: bytes, options: PutOptions | None = None
    ) -> None:
        """Add a put of ``value`` under the non-empty ``key``."""
        if not key:
            raise ValueError("key cannot be empty")
        self.ops.append(PutOp(bytes(key), bytes(value), options or PutOptions()))

    def delete(self, key: bytes) -> None:
        """Add a delete of the non-empty ``key``."""
        if not key:
            raise ValueError("key cannot be empty")
        self.ops.append(DeleteOp(bytes(key)))

    def __iter__(self) -> Iterator[WriteOp]:
        return iter(self.ops)

    def __len__(self) -> int:
        return len(self.ops)