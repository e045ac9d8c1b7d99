"""In-memory sorted memtable implementation.

Uses sortedcontainers.SortedDict keyed by cell key (row, cf, cq, -ts).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sortedcontainers import SortedDict

from ..core.types import cell_key

if TYPE_CHECKING:
    from collections.abc import Iterator

    from ..core.types import CellKey, RowRange, StorageKey, Timestamp


class SimpleMemtable:
    """In-memory sorted structure holding cells not yet flushed to disk.

    Invariants:
        - Cells are kept in (row, cf, cq, -ts) order, newest revision first
        - Writing the same StorageKey and timestamp replaces the value
        - Size includes approximate overhead of data structures
    """

    def __init__(self):
        """Initialize empty memtable."""
        self._data: SortedDict = SortedDict()
        self._size_bytes: int = 0

    def put(self, key: StorageKey, ts: Timestamp, value: bytes) -> None:
        """Insert a cell revision."""
        ck = cell_key(key, ts)
        old_value = self._data.get(ck)
        if old_value is not None:
            self._size_bytes -= self._cell_size(ck, old_value)

        self._data[ck] = value
        self._size_bytes += self._cell_size(ck, value)

    @staticmethod
    def _cell_size(ck: CellKey, value: bytes) -> int:
        row, cf, cq, _ = ck
        return len(row) + len(cf) + len(cq) + len(value) + 8

    def iter_range(self, row_range: RowRange) -> Iterator[tuple[CellKey, bytes]]:
        """Iterate cells whose row falls in row_range, in sort order."""
        minimum = (row_range.start,) if row_range.start is not None else None
        for ck in self._data.irange(minimum=minimum):
            if row_range.end is not None and ck[0] >= row_range.end:
                break
            yield ck, self._data[ck]

    def snapshot(self, row_range: RowRange) -> list[tuple[CellKey, bytes]]:
        """Materialize a range so it can be read without holding the table lock."""
        return list(self.iter_range(row_range))

    def size_bytes(self) -> int:
        """Return approximate memory usage in bytes."""
        overhead = len(self._data) * 32  # approximate per-entry overhead
        return self._size_bytes + overhead

    def __len__(self) -> int:
        return len(self._data)

    def clear(self) -> None:
        """Clear all entries (used after flush)."""
        self._data.clear()
        self._size_bytes = 0

    def items(self) -> Iterator[tuple[CellKey, bytes]]:
        """Return iterator of all cells in sorted order."""
        yield from self._data.items()
