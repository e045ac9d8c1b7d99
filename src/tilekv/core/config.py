"""Configuration for tilekv.

Defines the tunable parameters of the reference store and the write path,
and loads them from YAML.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError

STRATEGIES = ("bulk", "streaming", "sequential")
DEFAULT_INGEST_PATH = "/tmp/tilekv-ingest"


def _default_threads() -> int:
    return os.cpu_count() or 1


def _require_positive(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigError(f"{name} must be a positive integer, got {value!r}")


@dataclass
class StoreConfig:
    """Configuration parameters for the reference sorted store.

    Attributes:
        data_dir: Root directory for all persistent data
        memtable_max_bytes: Maximum size of a table's memtable before flush
        bloom_false_positive_rate: Target FP rate for per-file row bloom filters
        index_interval: Sample every N cells for a file's sparse index
    """

    data_dir: str
    memtable_max_bytes: int = 64 * 1024 * 1024  # 64 MB
    bloom_false_positive_rate: float = 0.01
    index_interval: int = 100

    def __post_init__(self) -> None:
        _require_positive("memtable_max_bytes", self.memtable_max_bytes)
        _require_positive("index_interval", self.index_interval)
        if not 0.0 < self.bloom_false_positive_rate < 1.0:
            raise ConfigError(
                f"bloom_false_positive_rate must be in (0, 1), got {self.bloom_false_positive_rate}"
            )


@dataclass
class BatchWriterConfig:
    """Limits for a batch writer session.

    Attributes:
        max_memory: Bytes of mutations buffered before they are applied
    """

    max_memory: int = 128 * 1024 * 1024  # 128 MB

    def __post_init__(self) -> None:
        _require_positive("max_memory", self.max_memory)


@dataclass
class WriteConfig:
    """Configuration of the write path.

    Attributes:
        strategy: One of "bulk", "streaming", "sequential"
        threads: Worker pool size per partition for streaming writes
        ingest_path: Base staging directory for bulk writes
        file_max_bytes: Size at which bulk staging rolls to a new file
        batch_writer: Session limits for streaming and sequential writes
    """

    strategy: str = "bulk"
    threads: int = field(default_factory=_default_threads)
    ingest_path: str = DEFAULT_INGEST_PATH
    file_max_bytes: int = 64 * 1024 * 1024  # 64 MB
    batch_writer: BatchWriterConfig = field(default_factory=BatchWriterConfig)

    def __post_init__(self) -> None:
        if self.strategy not in STRATEGIES:
            raise ConfigError(f"Unknown write strategy {self.strategy!r}, expected one of {STRATEGIES}")
        _require_positive("threads", self.threads)
        _require_positive("file_max_bytes", self.file_max_bytes)


@dataclass
class TileKVConfig:
    store: StoreConfig
    write: WriteConfig


def load_config(path: str | Path) -> TileKVConfig:
    """Load a YAML configuration file.

    Expected layout::

        store:
          data_dir: /var/lib/tilekv
        write:
          strategy: streaming
          threads: 8
          batch_writer:
            max_memory: 33554432

    Raises:
        FileNotFoundError: If the file does not exist
        ConfigError: If the document is malformed or values are invalid
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse {path}: {e}") from e

    if not isinstance(data, dict) or "store" not in data:
        raise ConfigError(f"{path} must define a 'store' section")

    try:
        store = StoreConfig(**data["store"])
        write_section = dict(data.get("write") or {})
        batch_writer = BatchWriterConfig(**(write_section.pop("batch_writer", None) or {}))
        write = WriteConfig(batch_writer=batch_writer, **write_section)
    except TypeError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e

    return TileKVConfig(store=store, write=write)
