"""Protocol definition for write strategies."""

from __future__ import annotations

from typing import Protocol

from ..core.types import Partitions
from .store import TableStore


class WriteStrategy(Protocol):
    """Persists a partitioned collection of (StorageKey, value) pairs into a table."""

    def write(self, partitions: Partitions, store: TableStore, table: str) -> None:
        """Write every pair; a no-op for empty input. Raises on failure."""
        ...
