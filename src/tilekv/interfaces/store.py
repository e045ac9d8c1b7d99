"""Protocol definitions for the sorted store."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from typing import Protocol

from ..core.config import BatchWriterConfig
from ..core.types import Cell, Mutation, RowRange


class BatchWriter(Protocol):
    """Mutation session on one table."""

    def add_mutation(self, mutation: Mutation) -> None:
        """Queue a mutation; may apply buffered mutations."""
        ...

    def flush(self) -> None:
        """Apply every buffered mutation."""
        ...

    def close(self) -> None:
        """Flush and release the session; idempotent."""
        ...


class TableStore(Protocol):
    """Store-side operations used by the write strategies and readers."""

    def create_table(self, table: str) -> None:
        ...

    def table_exists(self, table: str) -> bool:
        ...

    def scan(
        self,
        table: str,
        row_range: RowRange | None = None,
        column_family: bytes | None = None,
        max_versions: int = 1,
    ) -> Iterator[Cell]:
        """Iterate cells in (row, cf, cq, -timestamp) order."""
        ...

    def batch_writer(self, table: str, config: BatchWriterConfig | None = None) -> BatchWriter:
        """Open a mutation session."""
        ...

    def import_directory(self, table: str, directory: str | Path, failures_directory: str | Path) -> object:
        """Adopt pre-sorted files; rejected files land in failures_directory."""
        ...
