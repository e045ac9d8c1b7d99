"""Key index base class and registry.

A key index maps a domain key to a sortable integer. The same index must be
used to write and to read a layer, so every index can describe itself as a
JSON-compatible identity and be rebuilt from it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, ClassVar, Generic

from ..core.errors import KeyIndexError
from ..core.keys import DomainKey, K, KeyBounds, SpaceTimeKey, SpatialKey

_REGISTRY: dict[str, type[KeyIndex]] = {}


class KeyIndex(ABC, Generic[K]):
    """Deterministic, order-preserving mapping from domain keys to index values.

    Invariants:
        - to_index is pure: the same key always yields the same value
        - index values are in [0, 2**64) so they encode to fixed-width rows
    """

    name: ClassVar[str]

    def __init__(self, key_bounds: KeyBounds[K]):
        self.key_bounds = key_bounds

    @abstractmethod
    def to_index(self, key: K) -> int:
        ...

    @abstractmethod
    def index_ranges(self, key_range: tuple[K, K]) -> list[tuple[int, int]]:
        """Ordered, non-overlapping inclusive intervals covering every key in the range."""
        ...

    def properties(self) -> dict[str, Any]:
        return {"key_bounds": bounds_to_dict(self.key_bounds)}

    @classmethod
    def from_properties(cls, properties: dict[str, Any]) -> KeyIndex:
        return cls(bounds_from_dict(properties["key_bounds"]))

    def identity(self) -> dict[str, Any]:
        return {"type": self.name, "properties": self.properties()}

    def __eq__(self, other: object) -> bool:
        return isinstance(other, KeyIndex) and self.identity() == other.identity()

    def __hash__(self) -> int:
        return hash((self.name, repr(self.properties())))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.properties()})"


def register_key_index(cls: type[KeyIndex]) -> type[KeyIndex]:
    """Class decorator making an index rebuildable from its identity."""
    _REGISTRY[cls.name] = cls
    return cls


def key_index_from_identity(identity: dict[str, Any]) -> KeyIndex:
    try:
        cls = _REGISTRY[identity["type"]]
    except KeyError:
        raise KeyIndexError(f"Unknown key index identity: {identity!r}") from None
    return cls.from_properties(identity.get("properties", {}))


def key_to_dict(key: DomainKey) -> dict[str, int]:
    if isinstance(key, SpaceTimeKey):
        return {"col": key.col, "row": key.row, "instant": key.instant}
    return {"col": key.col, "row": key.row}


def key_from_dict(data: dict[str, int]) -> DomainKey:
    if "instant" in data:
        return SpaceTimeKey(data["col"], data["row"], data["instant"])
    return SpatialKey(data["col"], data["row"])


def bounds_to_dict(bounds: KeyBounds) -> dict[str, Any]:
    return {"min": key_to_dict(bounds.min_key), "max": key_to_dict(bounds.max_key)}


def bounds_from_dict(data: dict[str, Any]) -> KeyBounds:
    return KeyBounds(key_from_dict(data["min"]), key_from_dict(data["max"]))
