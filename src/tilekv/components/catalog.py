"""Table catalog implementation.

Provides an atomic registry of tables and their sorted files using a JSON
manifest.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path

from ..core.errors import TableExistsError, TableNotFoundError
from ..core.types import SSTableMeta

logger = logging.getLogger(__name__)


class SimpleTableCatalog:
    """Registry of tables and their sorted files with atomic updates.

    Args:
        catalog_path: Path to catalog JSON file

    Invariants:
        - Updates are atomic via write-temp-then-rename
        - Catalog is loaded from disk on init
        - File ids are never reused, even across restarts
        - Thread-safe via lock
    """

    def __init__(self, catalog_path: str | Path):
        self.catalog_path = Path(catalog_path)
        self._lock = threading.Lock()
        self._tables: dict[str, list[SSTableMeta]] = {}
        self._next_file_id = 1
        self._load()

    def _load(self) -> None:
        if not self.catalog_path.exists():
            logger.info(f"No existing catalog at {self.catalog_path}, starting fresh")
            return

        with open(self.catalog_path) as f:
            data = json.load(f)
        self._tables = {name: list(metas) for name, metas in data["tables"].items()}
        self._next_file_id = data["next_file_id"]
        logger.info(f"Loaded catalog from {self.catalog_path}: {len(self._tables)} tables")

    def _save(self) -> None:
        """Save catalog to disk atomically (must hold lock)."""
        temp_path = self.catalog_path.with_suffix(".tmp")
        with open(temp_path, "w") as f:
            json.dump({"tables": self._tables, "next_file_id": self._next_file_id}, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, self.catalog_path)
        logger.debug(f"Saved catalog to {self.catalog_path}")

    def _require(self, table: str) -> list[SSTableMeta]:
        try:
            return self._tables[table]
        except KeyError:
            raise TableNotFoundError(f"Table does not exist: {table}") from None

    def create_table(self, table: str) -> None:
        with self._lock:
            if table in self._tables:
                raise TableExistsError(f"Table already exists: {table}")
            self._tables[table] = []
            self._save()
        logger.info(f"Created table {table}")

    def drop_table(self, table: str) -> list[SSTableMeta]:
        """Remove a table; returns its files so the caller can delete them."""
        with self._lock:
            metas = self._require(table)
            del self._tables[table]
            self._save()
        logger.info(f"Dropped table {table}")
        return metas

    def table_exists(self, table: str) -> bool:
        with self._lock:
            return table in self._tables

    def list_tables(self) -> list[str]:
        with self._lock:
            return sorted(self._tables)

    def list_sstables(self, table: str) -> list[SSTableMeta]:
        """Return the table's files, oldest first."""
        with self._lock:
            return list(self._require(table))

    def allocate_file_id(self) -> int:
        with self._lock:
            file_id = self._next_file_id
            self._next_file_id += 1
            self._save()
            return file_id

    def add_sstables(self, table: str, metas: list[SSTableMeta]) -> None:
        """Atomically register new files for a table."""
        with self._lock:
            self._require(table).extend(metas)
            self._save()
        logger.debug(f"Registered {len(metas)} sorted files in table {table}")
