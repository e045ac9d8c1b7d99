"""Sorted table store - the storage collaborator the write and read paths run against.

Orchestrates per-table memtables, sorted files, the table catalog, batch
writer sessions and bulk directory import.
"""

from __future__ import annotations

import heapq
import logging
import shutil
import threading
from collections.abc import Iterable, Iterator
from pathlib import Path

from ..components.batch_writer import SimpleBatchWriter
from ..components.catalog import SimpleTableCatalog
from ..components.memtable import SimpleMemtable
from ..components.sstable import (
    DATA_SUFFIX,
    META_SUFFIX,
    SimpleSSTableReader,
    SimpleSSTableWriter,
)
from .config import BatchWriterConfig, StoreConfig
from .errors import SSTableError, StoreError, TableNotFoundError
from .types import Cell, CellKey, RowRange, SSTableMeta, cell_from_key

logger = logging.getLogger(__name__)


def _ranked(cells: Iterable[tuple[CellKey, bytes]], rank: int) -> Iterator[tuple[CellKey, int, bytes]]:
    for ck, value in cells:
        yield ck, rank, value


class SortedTableStore:
    """Multi-table sorted cell store with scanners, batch writers and bulk import.

    Args:
        config: Store configuration

    Public API:
        - create_table(name) / delete_table(name) / table_exists(name) / list_tables()
        - scan(table, row_range, column_family, max_versions): sorted cell scan
        - batch_writer(table, config): mutation session
        - import_directory(table, directory, failures_directory): adopt sorted files
        - flush(table): force memtable to a sorted file

    Invariants:
        - Cells are ordered by (row, cf, cq, -timestamp)
        - For an identical StorageKey and timestamp the most recent write wins
        - Scans see a snapshot of the memtable and the file list taken at scan start
    """

    def __init__(self, config: StoreConfig):
        self.config = config
        self.data_dir = Path(config.data_dir)
        self.tables_dir = self.data_dir / "tables"
        self.meta_dir = self.data_dir / "meta"
        for d in [self.tables_dir, self.meta_dir]:
            d.mkdir(parents=True, exist_ok=True)

        self._catalog = SimpleTableCatalog(self.meta_dir / "catalog.json")
        self._lock = threading.Lock()
        self._table_locks: dict[str, threading.RLock] = {}
        self._memtables: dict[str, SimpleMemtable] = {}
        self._readers: dict[str, SimpleSSTableReader] = {}

        logger.info(f"Initialized sorted table store at {self.data_dir}")

    # Tables

    def create_table(self, table: str) -> None:
        if not table or "/" in table or table.startswith("."):
            raise StoreError(f"Invalid table name: {table!r}")
        self._catalog.create_table(table)
        (self.tables_dir / table).mkdir(parents=True, exist_ok=True)

    def delete_table(self, table: str) -> None:
        with self._table_lock(table):
            metas = self._catalog.drop_table(table)
            with self._lock:
                self._memtables.pop(table, None)
                for meta in metas:
                    self._readers.pop(meta["data_path"], None)
        shutil.rmtree(self.tables_dir / table, ignore_errors=True)

    def table_exists(self, table: str) -> bool:
        return self._catalog.table_exists(table)

    def list_tables(self) -> list[str]:
        return self._catalog.list_tables()

    def _require_table(self, table: str) -> None:
        if not self._catalog.table_exists(table):
            raise TableNotFoundError(f"Table does not exist: {table}")

    def _table_lock(self, table: str) -> threading.RLock:
        with self._lock:
            lock = self._table_locks.get(table)
            if lock is None:
                lock = self._table_locks[table] = threading.RLock()
            return lock

    def _memtable(self, table: str) -> SimpleMemtable:
        with self._lock:
            mt = self._memtables.get(table)
            if mt is None:
                mt = self._memtables[table] = SimpleMemtable()
            return mt

    # Writes

    def batch_writer(self, table: str, config: BatchWriterConfig | None = None) -> SimpleBatchWriter:
        """Open a mutation session on a table."""
        self._require_table(table)
        return SimpleBatchWriter(table, config or BatchWriterConfig(), self._apply_cells)

    def _apply_cells(self, table: str, cells: list[Cell]) -> None:
        self._require_table(table)
        with self._table_lock(table):
            mt = self._memtable(table)
            for key, ts, value in cells:
                mt.put(key, ts, value)
            if mt.size_bytes() > self.config.memtable_max_bytes:
                self._flush_locked(table)

    def flush(self, table: str) -> None:
        """Force the table's memtable into a sorted file."""
        self._require_table(table)
        with self._table_lock(table):
            self._flush_locked(table)

    def _flush_locked(self, table: str) -> None:
        """Internal flush (must hold the table lock)."""
        mt = self._memtable(table)
        if len(mt) == 0:
            return

        file_id = self._catalog.allocate_file_id()
        data_path = self.tables_dir / table / f"F{file_id:08d}{DATA_SUFFIX}"
        meta_path = data_path.with_suffix(META_SUFFIX)
        logger.info(f"Flushing memtable of {table} ({mt.size_bytes()} bytes) to {data_path}")

        writer = SimpleSSTableWriter(
            data_path, meta_path, self.config.bloom_false_positive_rate, self.config.index_interval
        )
        for ck, value in mt.items():
            writer.add(*cell_from_key(ck, value))
        meta = writer.finalize()

        self._catalog.add_sstables(table, [meta])
        mt.clear()

    # Bulk import

    def import_directory(
        self, table: str, directory: str | Path, failures_directory: str | Path
    ) -> list[SSTableMeta]:
        """Move every valid sorted file pair in directory into the table.

        Files that cannot be read, or data files without metadata, are moved
        to failures_directory. Other entries (such as marker files) are left
        in place.

        Valid files are registered together. If moving them into the table
        fails, files already moved are returned to directory and none are
        registered.

        Raises:
            TableNotFoundError: If the table does not exist
            StoreError: If either directory is missing or failures_directory is not empty
        """
        self._require_table(table)
        directory = Path(directory)
        failures_directory = Path(failures_directory)
        if not directory.is_dir():
            raise StoreError(f"Import directory does not exist: {directory}")
        if not failures_directory.is_dir():
            raise StoreError(f"Failures directory does not exist: {failures_directory}")
        if any(failures_directory.iterdir()):
            raise StoreError(f"Failures directory is not empty: {failures_directory}")

        candidates: list[tuple[Path, Path, SimpleSSTableReader]] = []
        for data_path in sorted(directory.glob(f"*{DATA_SUFFIX}")):
            meta_path = data_path.with_suffix(META_SUFFIX)
            try:
                reader = SimpleSSTableReader(data_path, meta_path)
            except SSTableError as e:
                logger.warning(f"Rejecting {data_path} from import into {table}: {e}")
                for path in (data_path, meta_path):
                    if path.exists():
                        shutil.move(str(path), str(failures_directory / path.name))
                continue
            candidates.append((data_path, meta_path, reader))

        for orphan in sorted(directory.glob(f"*{META_SUFFIX}")):
            if orphan.with_suffix(DATA_SUFFIX).exists():
                continue
            logger.warning(f"Rejecting metadata without data file: {orphan}")
            shutil.move(str(orphan), str(failures_directory / orphan.name))

        # Files are only visible once registered; until then every move can be undone
        moved: list[tuple[Path, Path]] = []
        imported: list[SSTableMeta] = []
        try:
            for data_path, meta_path, reader in candidates:
                file_id = self._catalog.allocate_file_id()
                target = self.tables_dir / table / f"I{file_id:08d}{DATA_SUFFIX}"
                target_meta = target.with_suffix(META_SUFFIX)
                for source, destination in ((data_path, target), (meta_path, target_meta)):
                    shutil.move(str(source), str(destination))
                    moved.append((source, destination))

                meta: SSTableMeta = dict(reader.meta, data_path=str(target), meta_path=str(target_meta))
                imported.append(meta)

            with self._table_lock(table):
                self._catalog.add_sstables(table, imported)
        except BaseException:
            logger.error(f"Import into {table} failed, returning {len(moved)} files to {directory}")
            for source, destination in reversed(moved):
                try:
                    shutil.move(str(destination), str(source))
                except OSError:
                    logger.exception(f"Failed to return {destination} to {source}")
            raise

        logger.info(f"Imported {len(imported)} sorted files from {directory} into {table}")
        return imported

    # Reads

    def _reader(self, meta: SSTableMeta) -> SimpleSSTableReader:
        with self._lock:
            reader = self._readers.get(meta["data_path"])
            if reader is None:
                reader = SimpleSSTableReader(meta["data_path"], meta["meta_path"])
                self._readers[meta["data_path"]] = reader
            return reader

    def scan(
        self,
        table: str,
        row_range: RowRange | None = None,
        column_family: bytes | None = None,
        max_versions: int = 1,
    ) -> Iterator[Cell]:
        """Iterate cells of a table in sort order.

        Args:
            table: Table name
            row_range: Rows to include (all rows if None)
            column_family: Restrict to one column family
            max_versions: Newest revisions returned per StorageKey

        Raises:
            TableNotFoundError: If the table does not exist
        """
        if max_versions <= 0:
            raise ValueError(f"max_versions must be positive, got {max_versions}")
        self._require_table(table)
        row_range = row_range or RowRange()

        with self._table_lock(table):
            mem_cells = self._memtable(table).snapshot(row_range)
            metas = self._catalog.list_sstables(table)

        return self._merge(mem_cells, metas, row_range, column_family, max_versions)

    def _merge(
        self,
        mem_cells: list[tuple[CellKey, bytes]],
        metas: list[SSTableMeta],
        row_range: RowRange,
        column_family: bytes | None,
        max_versions: int,
    ) -> Iterator[Cell]:
        # Rank 0 is the memtable, then files newest first
        sources = [_ranked(mem_cells, 0)]
        for rank, meta in enumerate(reversed(metas), start=1):
            sources.append(_ranked(self._reader(meta).scan(row_range), rank))

        last_ck: CellKey | None = None
        last_key: tuple[bytes, bytes, bytes] | None = None
        versions = 0

        for ck, _rank, value in heapq.merge(*sources):
            if column_family is not None and ck[1] != column_family:
                continue
            if ck == last_ck:
                continue  # same revision from an older source
            last_ck = ck

            key = ck[:3]
            if key != last_key:
                last_key = key
                versions = 0
            versions += 1
            if versions <= max_versions:
                yield cell_from_key(ck, value)

    def close(self) -> None:
        """Flush all memtables."""
        logger.info("Closing sorted table store")
        for table in self.list_tables():
            with self._table_lock(table):
                self._flush_locked(table)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
