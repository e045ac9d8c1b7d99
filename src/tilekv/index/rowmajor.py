"""Row-major key index over the layer's key bounds."""

from __future__ import annotations

from ..core.errors import KeyIndexError
from ..core.keys import SpatialKey
from .key_index import KeyIndex, register_key_index


@register_key_index
class RowMajorSpatialKeyIndex(KeyIndex[SpatialKey]):
    """Numbers tiles row by row, left to right, starting at the bounds' min key."""

    name = "rowmajor-spatial"

    def to_index(self, key: SpatialKey) -> int:
        if not self.key_bounds.includes(key):
            raise KeyIndexError(f"{key} is outside the key bounds {self.key_bounds}")
        origin = self.key_bounds.min_key
        return (key.row - origin.row) * self.key_bounds.width + (key.col - origin.col)

    def index_ranges(self, key_range: tuple[SpatialKey, SpatialKey]) -> list[tuple[int, int]]:
        lo, hi = key_range
        bounds = self.key_bounds
        col_min = max(lo.col, bounds.min_key.col)
        col_max = min(hi.col, bounds.max_key.col)
        row_min = max(lo.row, bounds.min_key.row)
        row_max = min(hi.row, bounds.max_key.row)
        if col_min > col_max or row_min > row_max:
            return []

        ranges: list[tuple[int, int]] = []
        for row in range(row_min, row_max + 1):
            start = self.to_index(SpatialKey(col_min, row))
            end = self.to_index(SpatialKey(col_max, row))
            if ranges and ranges[-1][1] + 1 == start:
                ranges[-1] = (ranges[-1][0], end)
            else:
                ranges.append((start, end))
        return ranges
