"""Sorted cell file with row bloom filter and sparse index.

Provides the immutable sorted files the store flushes memtables into and
that bulk ingest stages for directory import.
"""

from __future__ import annotations

import bisect
import json
import logging
import struct
from collections.abc import Iterator
from pathlib import Path

from ..core.errors import SSTableError
from ..core.types import CellKey, RowRange, SSTableMeta, StorageKey, Timestamp, cell_key
from .bloom import RowBloomFilter

logger = logging.getLogger(__name__)

# Cell format: [row_len(4B)][cf_len(2B)][cq_len(4B)][ts(8B)][value_len(8B)][row][cf][cq][value]
_CELL_HEADER = struct.Struct("<IHIQQ")
_META_LEN = struct.Struct("<I")

DATA_SUFFIX = ".data"
META_SUFFIX = ".meta"


class SimpleSSTableWriter:
    """Write sorted cells to an immutable file pair.

    Args:
        data_path: Path for .data file
        meta_path: Path for .meta file
        bloom_fpr: False positive rate for the row bloom filter
        index_interval: Sample every N cells for the sparse index

    Invariants:
        - Cells must be added in strictly increasing (row, cf, cq, -ts) order
        - The .meta file is written last, so a file pair without it is incomplete
    """

    def __init__(
        self,
        data_path: str | Path,
        meta_path: str | Path,
        bloom_fpr: float = 0.01,
        index_interval: int = 100,
    ):
        self.data_path = Path(data_path)
        self.meta_path = Path(meta_path)
        self.bloom_fpr = bloom_fpr
        self.index_interval = index_interval

        self.data_path.parent.mkdir(parents=True, exist_ok=True)
        self._fd = open(self.data_path, "wb")

        self._min_ts: Timestamp | None = None
        self._max_ts: Timestamp | None = None
        self._count = 0
        self._first_row: bytes | None = None
        self._last: CellKey | None = None
        self._index: list[tuple[bytes, int]] = []
        self._rows: list[bytes] = []

    @property
    def count(self) -> int:
        return self._count

    def tell(self) -> int:
        return self._fd.tell()

    def add(self, key: StorageKey, ts: Timestamp, value: bytes) -> None:
        """Append a cell (must be added in sorted order)."""
        ck = cell_key(key, ts)
        if self._last is not None and ck <= self._last:
            raise SSTableError(f"Cells must be added in sorted order: {self._last} >= {ck}")

        offset = self._fd.tell()

        if self._first_row is None:
            self._first_row = key.row
        if self._min_ts is None:
            self._min_ts = self._max_ts = ts
        else:
            self._min_ts = min(self._min_ts, ts)
            self._max_ts = max(self._max_ts, ts)

        if self._count % self.index_interval == 0:
            self._index.append((key.row, offset))
        if not self._rows or self._rows[-1] != key.row:
            self._rows.append(key.row)

        self._fd.write(
            _CELL_HEADER.pack(
                len(key.row), len(key.column_family), len(key.column_qualifier), ts, len(value)
            )
        )
        self._fd.write(key.row)
        self._fd.write(key.column_family)
        self._fd.write(key.column_qualifier)
        self._fd.write(value)

        self._count += 1
        self._last = ck

    def finalize(self) -> SSTableMeta:
        """Flush data and write the index/filter file. Return metadata for the catalog."""
        if self._fd is None:
            raise SSTableError("Writer already finalized")

        self._fd.close()
        self._fd = None
        data_size = self.data_path.stat().st_size

        bloom = RowBloomFilter(len(self._rows), self.bloom_fpr)
        for row in self._rows:
            bloom.add(row)

        meta: SSTableMeta = {
            "data_path": str(self.data_path),
            "meta_path": str(self.meta_path),
            "min_row": self._first_row.hex() if self._first_row is not None else None,
            "max_row": self._last[0].hex() if self._last is not None else None,
            "min_ts": self._min_ts,
            "max_ts": self._max_ts,
            "count": self._count,
            "data_size": data_size,
            "index": [(row.hex(), offset) for row, offset in self._index],
        }

        with open(self.meta_path, "wb") as f:
            json_bytes = json.dumps(meta).encode("utf-8")
            f.write(_META_LEN.pack(len(json_bytes)))
            f.write(json_bytes)
            f.write(bloom.serialize())

        logger.debug(f"Finalized sorted file {self.data_path}: {self._count} cells, {data_size} bytes")
        return meta

    def abort(self) -> None:
        """Close and remove a partially written file."""
        if self._fd is not None:
            self._fd.close()
            self._fd = None
        self.data_path.unlink(missing_ok=True)


def read_meta(meta_path: str | Path) -> tuple[dict, RowBloomFilter]:
    """Load and validate a .meta file.

    Raises:
        SSTableError: If the file is missing, truncated or malformed
    """
    try:
        with open(meta_path, "rb") as f:
            (json_len,) = _META_LEN.unpack(f.read(_META_LEN.size))
            meta = json.loads(f.read(json_len).decode("utf-8"))
            bloom = RowBloomFilter.deserialize(f.read())
    except (OSError, struct.error, ValueError) as e:
        raise SSTableError(f"Unreadable sorted file metadata {meta_path}: {e}") from e

    missing = {"count", "data_size", "index", "min_row", "max_row"} - meta.keys()
    if missing:
        raise SSTableError(f"Sorted file metadata {meta_path} lacks {sorted(missing)}")
    return meta, bloom


class SimpleSSTableReader:
    """Read cells from an immutable sorted file.

    Args:
        data_path: Path to .data file
        meta_path: Path to .meta file

    Invariants:
        - Files are immutable after creation
        - The data file size must match the size recorded in its metadata
    """

    def __init__(self, data_path: str | Path, meta_path: str | Path):
        self.data_path = Path(data_path)
        self.meta_path = Path(meta_path)

        self.meta, self._bloom = read_meta(self.meta_path)
        try:
            actual_size = self.data_path.stat().st_size
        except OSError as e:
            raise SSTableError(f"Missing sorted data file {self.data_path}") from e
        if actual_size != self.meta["data_size"]:
            raise SSTableError(
                f"{self.data_path} is {actual_size} bytes, metadata records {self.meta['data_size']}"
            )

        self._index_rows = [bytes.fromhex(r) for r, _ in self.meta["index"]]
        self._index_offsets = [offset for _, offset in self.meta["index"]]
        self._min_row = bytes.fromhex(self.meta["min_row"]) if self.meta["min_row"] else None
        self._max_row = bytes.fromhex(self.meta["max_row"]) if self.meta["max_row"] else None

    def may_contain(self, row_range: RowRange) -> bool:
        """Cheap test using the row bounds and, for exact rows, the bloom filter."""
        if self._min_row is None:
            return False
        if row_range.end is not None and self._min_row >= row_range.end:
            return False
        if row_range.start is not None and self._max_row < row_range.start:
            return False
        if row_range.is_exact():
            return row_range.start in self._bloom
        return True

    def _start_offset(self, start: bytes | None) -> int:
        if start is None or not self._index_offsets:
            return 0
        # Last sampled cell whose row sorts strictly before start
        pos = bisect.bisect_left(self._index_rows, start) - 1
        return self._index_offsets[pos] if pos >= 0 else 0

    def scan(self, row_range: RowRange) -> Iterator[tuple[CellKey, bytes]]:
        """Iterate cells in sort order whose row falls in row_range."""
        if not self.may_contain(row_range):
            return

        with open(self.data_path, "rb") as f:
            f.seek(self._start_offset(row_range.start))
            while True:
                header = f.read(_CELL_HEADER.size)
                if not header:
                    break
                if len(header) < _CELL_HEADER.size:
                    raise SSTableError(f"Truncated cell header in {self.data_path}")

                row_len, cf_len, cq_len, ts, value_len = _CELL_HEADER.unpack(header)
                row = f.read(row_len)
                if row_range.end is not None and row >= row_range.end:
                    break
                cf = f.read(cf_len)
                cq = f.read(cq_len)
                if row_range.start is not None and row < row_range.start:
                    f.seek(value_len, 1)
                    continue
                value = f.read(value_len)
                if len(value) < value_len:
                    raise SSTableError(f"Truncated cell value in {self.data_path}")
                yield (row, cf, cq, -ts), value
