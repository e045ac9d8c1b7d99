"""Write strategies.

Each strategy persists a partitioned collection of (StorageKey, value) pairs
into a table:

- BulkFileWriteStrategy sorts everything, stages immutable sorted files and
  has the store import them in one step. Best for large ingests.
- StreamingWriteStrategy streams mutations through a batch writer session
  per partition, with a bounded worker pool. Best for small and medium
  incremental writes.
- SequentialWriteStrategy streams mutations one at a time, in order.

Store-side exceptions are never retried here; they propagate to the caller.
"""

from __future__ import annotations

import heapq
import logging
import shutil
import threading
import time
import uuid
from collections.abc import Callable, Iterable, Iterator
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from enum import Enum
from itertools import chain
from operator import itemgetter
from pathlib import Path

from ..components.sstable import DATA_SUFFIX, META_SUFFIX, SimpleSSTableWriter
from ..core.config import DEFAULT_INGEST_PATH, WriteConfig
from ..core.errors import BulkIngestError, ConfigError
from ..core.types import KVPair, Mutation, Partitions, StorageKey, Timestamp
from ..interfaces.store import TableStore
from ..interfaces.write_strategy import WriteStrategy

logger = logging.getLogger(__name__)

SUCCESS_MARKER = "_SUCCESS"
FAILURES_SUFFIX = "-failures"

Clock = Callable[[], Timestamp]


def wall_clock_millis() -> Timestamp:
    return int(time.time() * 1000)


def to_mutation(key: StorageKey, value: bytes, ts: Timestamp) -> Mutation:
    return Mutation(key.row).put(key.column_family, key.column_qualifier, ts, value)


class BulkStage(Enum):
    """Stages of a bulk ingest run, in order."""

    SORT = "sort"
    STAGE = "stage"
    IMPORT = "import"
    VERIFY = "verify"
    CLEANUP = "cleanup"


def sort_partitions(partitions: Partitions) -> Iterator[KVPair]:
    """Globally sort pairs by StorageKey.

    Each partition is sorted on its own and the results merged with a heap.
    For duplicate StorageKeys the last pair in partition order is kept.
    """
    sorted_parts = [sorted(part, key=itemgetter(0)) for part in partitions]
    merged = heapq.merge(*sorted_parts, key=itemgetter(0))

    pending: KVPair | None = None
    for pair in merged:
        if pending is not None and pair[0] != pending[0]:
            yield pending
        elif pending is not None:
            logger.debug(f"Duplicate storage key {pending[0]}, keeping the later value")
        pending = pair
    if pending is not None:
        yield pending


class BulkFileWriteStrategy:
    """Bulk ingest through staged sorted files.

    Runs SORT -> STAGE -> IMPORT -> VERIFY -> CLEANUP. Staging goes to
    <ingest_path>/<uuid> with rejected files collected in <uuid>-failures.
    A run succeeds only if the staging directory still holds its _SUCCESS
    marker and the failures directory is empty after import.

    Args:
        ingest_path: Base staging directory
        file_max_bytes: Size at which staging rolls to a new file
        clock: Timestamp source for the staged cells (one timestamp per run)
        index_interval: Sparse index sampling interval of staged files
    """

    def __init__(
        self,
        ingest_path: str | Path = DEFAULT_INGEST_PATH,
        file_max_bytes: int = 64 * 1024 * 1024,
        clock: Clock = wall_clock_millis,
        index_interval: int = 100,
    ):
        self.ingest_path = Path(ingest_path)
        self.file_max_bytes = file_max_bytes
        self.clock = clock
        self.index_interval = index_interval

    def write(self, partitions: Partitions, store: TableStore, table: str) -> None:
        logger.debug(f"Bulk ingest into {table}: {BulkStage.SORT.value}")
        pairs = sort_partitions(partitions)
        first = next(pairs, None)
        if first is None:
            logger.info(f"Bulk ingest into {table}: no records, nothing to do")
            return

        run_id = uuid.uuid4().hex
        out_path = self.ingest_path / run_id
        failures_path = self.ingest_path / f"{run_id}{FAILURES_SUFFIX}"
        failures_path.mkdir(parents=True)

        logger.debug(f"Bulk ingest into {table}: {BulkStage.STAGE.value} at {out_path}")
        count, files = self._stage(chain([first], pairs), out_path)

        logger.debug(f"Bulk ingest into {table}: {BulkStage.IMPORT.value} {files} files")
        store.import_directory(table, out_path, failures_path)

        logger.debug(f"Bulk ingest into {table}: {BulkStage.VERIFY.value}")
        if not (out_path / SUCCESS_MARKER).exists():
            raise BulkIngestError(out_path)
        rejected = sorted(p.name for p in failures_path.iterdir())
        if rejected:
            raise BulkIngestError(out_path, f"store rejected {rejected}")

        logger.debug(f"Bulk ingest into {table}: {BulkStage.CLEANUP.value}")
        for path in (out_path, failures_path):
            try:
                shutil.rmtree(path)
            except OSError as e:
                logger.warning(f"Failed to delete ingest directory {path}: {e}")

        logger.info(f"Bulk ingested {count} records into {table} from {files} sorted files")

    def _stage(self, pairs: Iterable[KVPair], out_path: Path) -> tuple[int, int]:
        """Write sorted pairs as rolling sorted files, then the success marker."""
        out_path.mkdir(parents=True)
        ts = self.clock()
        count = 0
        files = 0
        writer: SimpleSSTableWriter | None = None

        try:
            for key, value in pairs:
                if writer is None or writer.tell() >= self.file_max_bytes:
                    if writer is not None:
                        writer.finalize()
                    data_path = out_path / f"part-{files:05d}{DATA_SUFFIX}"
                    writer = SimpleSSTableWriter(
                        data_path,
                        data_path.with_suffix(META_SUFFIX),
                        index_interval=self.index_interval,
                    )
                    files += 1
                writer.add(key, ts, value)
                count += 1
            if writer is not None:
                writer.finalize()
        except BaseException:
            if writer is not None:
                writer.abort()
            raise

        (out_path / SUCCESS_MARKER).touch()
        return count, files

    def __repr__(self) -> str:
        return f"BulkFileWriteStrategy(ingest_path={str(self.ingest_path)!r})"


class StreamingWriteStrategy:
    """Concurrent mutation streaming, one session and worker pool per partition.

    At most `threads` mutations are in flight per partition. The session is
    shared by the workers; it serializes submissions internally, so the pool
    size bounds memory rather than store-side parallelism.

    Args:
        config: Write configuration (threads and batch writer limits)
        clock: Timestamp source, called once per mutation
    """

    def __init__(self, config: WriteConfig | None = None, clock: Clock = wall_clock_millis):
        self.config = config or WriteConfig(strategy="streaming")
        self.clock = clock

    def write(
        self,
        partitions: Partitions,
        store: TableStore,
        table: str,
        shutdown: threading.Event | None = None,
    ) -> None:
        """Write every partition in turn; see write_partition for shutdown."""
        total = 0
        for partition in partitions:
            if shutdown is not None and shutdown.is_set():
                break
            total += self.write_partition(partition, store, table, shutdown)
        logger.info(f"Streamed {total} records into {table}")

    def write_partition(
        self,
        partition: Iterable[KVPair],
        store: TableStore,
        table: str,
        shutdown: threading.Event | None = None,
    ) -> int:
        """Write one partition; returns the number of mutations submitted.

        If shutdown is set, no further mutations are submitted; in-flight
        ones are drained and the session is closed normally.
        """
        records = iter(partition)
        first = next(records, None)
        if first is None:
            return 0

        threads = self.config.threads
        writer = store.batch_writer(table, self.config.batch_writer)
        pool = ThreadPoolExecutor(max_workers=threads, thread_name_prefix="tilekv-writer")
        in_flight: set[Future] = set()
        submitted = 0

        try:
            for key, value in chain([first], records):
                if shutdown is not None and shutdown.is_set():
                    logger.info(f"Shutdown requested, stopping after {submitted} mutations to {table}")
                    break
                if len(in_flight) >= threads:
                    done, in_flight = wait(in_flight, return_when=FIRST_COMPLETED)
                    _raise_first_failure(done)
                mutation = to_mutation(key, value, self.clock())
                in_flight.add(pool.submit(writer.add_mutation, mutation))
                submitted += 1

            finished = wait(in_flight).done
            in_flight = set()
            _raise_first_failure(finished)
        except BaseException:
            for future in in_flight:
                future.cancel()
            pool.shutdown(wait=True)
            try:
                writer.close()
            except Exception:
                logger.exception(f"Failed to close batch writer for {table} after write error")
            raise

        pool.shutdown(wait=True)
        writer.close()
        logger.debug(f"Partition of {submitted} mutations written to {table}")
        return submitted

    def __repr__(self) -> str:
        return f"StreamingWriteStrategy(threads={self.config.threads})"


def _raise_first_failure(done: Iterable[Future]) -> None:
    for future in done:
        error = future.exception()
        if error is not None:
            raise error


class SequentialWriteStrategy:
    """Single-threaded streaming: one session per partition, mutations in order.

    Args:
        config: Write configuration (batch writer limits)
        clock: Timestamp source, called once per mutation
    """

    def __init__(self, config: WriteConfig | None = None, clock: Clock = wall_clock_millis):
        self.config = config or WriteConfig(strategy="sequential")
        self.clock = clock

    def write(self, partitions: Partitions, store: TableStore, table: str) -> None:
        total = 0
        for partition in partitions:
            records = iter(partition)
            first = next(records, None)
            if first is None:
                continue

            writer = store.batch_writer(table, self.config.batch_writer)
            try:
                for key, value in chain([first], records):
                    writer.add_mutation(to_mutation(key, value, self.clock()))
                    total += 1
            finally:
                writer.close()

        logger.info(f"Wrote {total} records into {table}")

    def __repr__(self) -> str:
        return "SequentialWriteStrategy()"


def write_strategy_from_config(config: WriteConfig, clock: Clock = wall_clock_millis) -> WriteStrategy:
    """Build the strategy named by config.strategy."""
    if config.strategy == "bulk":
        return BulkFileWriteStrategy(config.ingest_path, config.file_max_bytes, clock)
    if config.strategy == "streaming":
        return StreamingWriteStrategy(config, clock)
    if config.strategy == "sequential":
        return SequentialWriteStrategy(config, clock)
    raise ConfigError(f"Unknown write strategy {config.strategy!r}")


def default_write_strategy() -> WriteStrategy:
    return BulkFileWriteStrategy(DEFAULT_INGEST_PATH)
