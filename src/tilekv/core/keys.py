"""Domain keys: spatial and spatio-temporal tile coordinates."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, Union


@dataclass(frozen=True)
class SpatialKey:
    """Column/row coordinate of a tile in a layout."""

    col: int
    row: int


@dataclass(frozen=True)
class SpaceTimeKey:
    """Tile coordinate plus an instant in epoch milliseconds."""

    col: int
    row: int
    instant: int

    @property
    def spatial_key(self) -> SpatialKey:
        return SpatialKey(self.col, self.row)


DomainKey = Union[SpatialKey, SpaceTimeKey]
K = TypeVar("K", SpatialKey, SpaceTimeKey)


@dataclass(frozen=True)
class KeyBounds(Generic[K]):
    """Inclusive bounding box of domain keys.

    Invariants:
        - min_key is component-wise <= max_key
    """

    min_key: K
    max_key: K

    def __post_init__(self) -> None:
        if type(self.min_key) is not type(self.max_key):
            raise TypeError("KeyBounds requires keys of the same type")
        if self.min_key.col > self.max_key.col or self.min_key.row > self.max_key.row:
            raise ValueError(f"Invalid key bounds: {self.min_key} > {self.max_key}")
        if isinstance(self.min_key, SpaceTimeKey) and self.min_key.instant > self.max_key.instant:
            raise ValueError(f"Invalid key bounds: {self.min_key} > {self.max_key}")

    def includes(self, key: K) -> bool:
        if not (self.min_key.col <= key.col <= self.max_key.col):
            return False
        if not (self.min_key.row <= key.row <= self.max_key.row):
            return False
        if isinstance(key, SpaceTimeKey):
            return self.min_key.instant <= key.instant <= self.max_key.instant
        return True

    @property
    def width(self) -> int:
        return self.max_key.col - self.min_key.col + 1

    @property
    def height(self) -> int:
        return self.max_key.row - self.min_key.row + 1
