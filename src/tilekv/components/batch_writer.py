"""Batch writer session.

Buffers mutations for one table and applies them to the store in batches.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from ..core.config import BatchWriterConfig
from ..core.errors import StoreError
from ..core.types import Cell, Mutation, StorageKey

logger = logging.getLogger(__name__)


class SimpleBatchWriter:
    """Session that collects mutations and applies them when the buffer fills.

    Args:
        table: Target table name
        config: Buffer limits
        apply: Callback that writes a batch of cells into the table

    Invariants:
        - Safe for concurrent add_mutation calls; submissions are serialized
          by the session lock
        - Every mutation accepted before close() is applied by close()
        - close() is idempotent; adding after close raises StoreError
    """

    def __init__(
        self,
        table: str,
        config: BatchWriterConfig,
        apply: Callable[[str, list[Cell]], None],
    ):
        self.table = table
        self.config = config
        self._apply = apply
        self._lock = threading.Lock()
        self._buffer: list[Cell] = []
        self._buffered_bytes = 0
        self._closed = False
        self.mutations_written = 0

    def add_mutation(self, mutation: Mutation) -> None:
        if not mutation.updates:
            raise StoreError(f"Mutation for row {mutation.row!r} has no updates")

        with self._lock:
            if self._closed:
                raise StoreError(f"Batch writer for {self.table} is closed")
            for u in mutation.updates:
                key = StorageKey(mutation.row, u.column_family, u.column_qualifier)
                self._buffer.append((key, u.timestamp, u.value))
            self._buffered_bytes += mutation.size_bytes()
            self.mutations_written += 1

            if self._buffered_bytes >= self.config.max_memory:
                self._flush_locked()

    def flush(self) -> None:
        with self._lock:
            self._flush_locked()

    def _flush_locked(self) -> None:
        if not self._buffer:
            return
        batch, self._buffer = self._buffer, []
        self._buffered_bytes = 0
        self._apply(self.table, batch)
        logger.debug(f"Applied {len(batch)} cells to {self.table}")

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            try:
                self._flush_locked()
            finally:
                self._closed = True
        logger.debug(f"Closed batch writer for {self.table} after {self.mutations_written} mutations")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
