"""Z-order (Morton) curve key indexes.

Interleaves the bits of each dimension so that keys close in space tend to
be close in index order, and decomposes query boxes into index ranges.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from ..core.errors import KeyIndexError
from ..core.keys import KeyBounds, SpaceTimeKey, SpatialKey
from .key_index import KeyIndex, bounds_from_dict, register_key_index

Z2_BITS = 31
Z3_BITS = 21


def interleave(coords: Sequence[int], bits: int) -> int:
    """Morton-encode coords; dimension 0 takes the lowest bit of each group."""
    dims = len(coords)
    z = 0
    for b in range(bits):
        for d, c in enumerate(coords):
            z |= ((c >> b) & 1) << (b * dims + d)
    return z


def deinterleave(z: int, dims: int, bits: int) -> tuple[int, ...]:
    coords = [0] * dims
    for b in range(bits):
        for d in range(dims):
            coords[d] |= ((z >> (b * dims + d)) & 1) << b
    return tuple(coords)


def zranges(mins: Sequence[int], maxs: Sequence[int], bits: int) -> list[tuple[int, int]]:
    """Decompose the inclusive box [mins, maxs] into sorted, merged z-ranges.

    Walks the implicit 2^dims-ary tree of aligned cells in z order: cells
    inside the box emit their whole z interval, cells crossing the box
    boundary are split, disjoint cells are dropped.
    """
    dims = len(mins)
    ranges: list[tuple[int, int]] = []
    # Stack of (lower corner, level); a cell at level L has side 2**L
    stack: list[tuple[tuple[int, ...], int]] = [((0,) * dims, bits)]

    while stack:
        lo, level = stack.pop()
        side = 1 << level
        hi = tuple(c + side - 1 for c in lo)

        if any(h < mn or l > mx for l, h, mn, mx in zip(lo, hi, mins, maxs)):
            continue

        if all(l >= mn and h <= mx for l, h, mn, mx in zip(lo, hi, mins, maxs)):
            zmin = interleave(lo, bits)
            zmax = zmin + (1 << (level * dims)) - 1
            if ranges and ranges[-1][1] + 1 == zmin:
                ranges[-1] = (ranges[-1][0], zmax)
            else:
                ranges.append((zmin, zmax))
            continue

        half = side >> 1
        # Push children in reverse z order so they pop in z order
        for child in reversed(range(1 << dims)):
            child_lo = tuple(c + (half if (child >> d) & 1 else 0) for d, c in enumerate(lo))
            stack.append((child_lo, level - 1))

    return ranges


def _check(values: Sequence[int], bits: int, key: Any) -> None:
    limit = 1 << bits
    if any(v < 0 or v >= limit for v in values):
        raise KeyIndexError(f"{key} is outside the {bits}-bit range of the Z-order index")


@register_key_index
class ZSpatialKeyIndex(KeyIndex[SpatialKey]):
    """Z-order curve over (col, row)."""

    name = "zorder-spatial"

    def to_index(self, key: SpatialKey) -> int:
        _check((key.col, key.row), Z2_BITS, key)
        return interleave((key.col, key.row), Z2_BITS)

    def index_ranges(self, key_range: tuple[SpatialKey, SpatialKey]) -> list[tuple[int, int]]:
        lo, hi = key_range
        _check((lo.col, lo.row, hi.col, hi.row), Z2_BITS, key_range)
        return zranges((lo.col, lo.row), (hi.col, hi.row), Z2_BITS)


@register_key_index
class ZSpaceTimeKeyIndex(KeyIndex[SpaceTimeKey]):
    """Z-order curve over (col, row, time bin).

    Instants are bucketed by temporal_resolution milliseconds, so keys in the
    same bin share an index value.
    """

    name = "zorder-spacetime"

    def __init__(self, key_bounds: KeyBounds[SpaceTimeKey], temporal_resolution: int):
        super().__init__(key_bounds)
        if temporal_resolution <= 0:
            raise KeyIndexError(f"temporal_resolution must be positive, got {temporal_resolution}")
        self.temporal_resolution = temporal_resolution

    def _coords(self, key: SpaceTimeKey) -> tuple[int, int, int]:
        coords = (key.col, key.row, key.instant // self.temporal_resolution)
        _check(coords, Z3_BITS, key)
        return coords

    def to_index(self, key: SpaceTimeKey) -> int:
        return interleave(self._coords(key), Z3_BITS)

    def index_ranges(self, key_range: tuple[SpaceTimeKey, SpaceTimeKey]) -> list[tuple[int, int]]:
        lo, hi = key_range
        return zranges(self._coords(lo), self._coords(hi), Z3_BITS)

    def properties(self) -> dict[str, Any]:
        return dict(super().properties(), temporal_resolution=self.temporal_resolution)

    @classmethod
    def from_properties(cls, properties: dict[str, Any]) -> ZSpaceTimeKeyIndex:
        return cls(bounds_from_dict(properties["key_bounds"]), properties["temporal_resolution"])
