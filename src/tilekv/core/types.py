"""Common type definitions for tilekv.

Defines the storage-side types shared by the store, the write strategies
and the readers.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import TypedDict

Row = bytes
Timestamp = int

# Rows are fixed-width big-endian index values
ROW_BYTES = 8


@dataclass(frozen=True, order=True)
class StorageKey:
    """Store-native key: row plus column identifiers.

    Orders lexicographically by (row, column_family, column_qualifier),
    which is the order the store keeps cells in.
    """

    row: bytes
    column_family: bytes
    column_qualifier: bytes = b""


@dataclass(frozen=True)
class LayerId:
    """Name and zoom level identifying a layer."""

    name: str
    zoom: int

    def column_family(self) -> bytes:
        # Unique per zoom level; all zooms of a layer may live in one table
        return f"{self.name}:{self.zoom}".encode("utf-8")


@dataclass(frozen=True)
class ColumnUpdate:
    column_family: bytes
    column_qualifier: bytes
    timestamp: Timestamp
    value: bytes


@dataclass
class Mutation:
    """A set of column updates applied to a single row."""

    row: bytes
    updates: list[ColumnUpdate] = field(default_factory=list)

    def put(
        self,
        column_family: bytes,
        column_qualifier: bytes,
        timestamp: Timestamp,
        value: bytes,
    ) -> Mutation:
        self.updates.append(ColumnUpdate(column_family, column_qualifier, timestamp, value))
        return self

    def size_bytes(self) -> int:
        """Approximate in-memory size, used for batch writer buffering."""
        return len(self.row) + sum(
            len(u.column_family) + len(u.column_qualifier) + len(u.value) + 8
            for u in self.updates
        )


@dataclass(frozen=True)
class RowRange:
    """Half-open row interval [start, end); None means unbounded."""

    start: bytes | None = None
    end: bytes | None = None

    @classmethod
    def exact(cls, row: bytes) -> RowRange:
        # row + b"\x00" is the smallest row sorting after `row`
        return cls(row, row + b"\x00")

    @classmethod
    def closed(cls, first: bytes, last: bytes) -> RowRange:
        return cls(first, last + b"\x00")

    def is_exact(self) -> bool:
        return (
            self.start is not None
            and self.end is not None
            and self.end == self.start + b"\x00"
        )


# Sort key of a stored cell: newest revision first within a StorageKey
CellKey = tuple[bytes, bytes, bytes, int]
Cell = tuple[StorageKey, Timestamp, bytes]
KVPair = tuple[StorageKey, bytes]
Partitions = Sequence[Iterable[KVPair]]


def cell_key(key: StorageKey, ts: Timestamp) -> CellKey:
    return (key.row, key.column_family, key.column_qualifier, -ts)


def cell_from_key(ck: CellKey, value: bytes) -> Cell:
    row, cf, cq, neg_ts = ck
    return (StorageKey(row, cf, cq), -neg_ts, value)


def row_bytes(index: int) -> Row:
    """Encode an index value as a row whose byte order matches index order."""
    if index < 0 or index >= 1 << (8 * ROW_BYTES):
        raise ValueError(f"Index {index} does not fit in {ROW_BYTES} row bytes")
    return index.to_bytes(ROW_BYTES, "big")


def index_from_row(row: Row) -> int:
    return int.from_bytes(row, "big")


class SSTableMeta(TypedDict):
    """Typed metadata describing a sorted file on disk."""

    data_path: str
    meta_path: str
    min_row: str | None
    max_row: str | None
    min_ts: Timestamp | None
    max_ts: Timestamp | None
    count: int
    data_size: int
    index: list[tuple[str, int]]
