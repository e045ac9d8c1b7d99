"""tilekv - tiled spatial data in a sorted key-value store.

Bulk, streaming and sequential ingestion of index-keyed records, and
exact-match point reads over the index-encoded key space.
"""

from .codec import BytesCodec, KeyValueRecordCodec, SpaceTimeKeyCodec, SpatialKeyCodec
from .core.config import BatchWriterConfig, StoreConfig, TileKVConfig, WriteConfig, load_config
from .core.errors import (
    AmbiguousValueError,
    AttributeNotFoundError,
    BulkIngestError,
    CodecError,
    ConfigError,
    KeyIndexError,
    KeyIndexMismatchError,
    LayerIOError,
    SSTableError,
    StoreError,
    TableExistsError,
    TableNotFoundError,
    TileKVError,
    ValueNotFoundError,
)
from .core.keys import KeyBounds, SpaceTimeKey, SpatialKey
from .core.store import SortedTableStore
from .core.types import LayerId, Mutation, RowRange, StorageKey, row_bytes
from .index import RowMajorSpatialKeyIndex, ZSpaceTimeKeyIndex, ZSpatialKeyIndex
from .io import (
    BulkFileWriteStrategy,
    FileAttributeStore,
    LayerReader,
    LayerWriter,
    LoggingTracer,
    SequentialWriteStrategy,
    StreamingWriteStrategy,
    ValueReader,
    write_strategy_from_config,
)

__all__ = [
    "BytesCodec",
    "KeyValueRecordCodec",
    "SpaceTimeKeyCodec",
    "SpatialKeyCodec",
    "BatchWriterConfig",
    "StoreConfig",
    "TileKVConfig",
    "WriteConfig",
    "load_config",
    "AmbiguousValueError",
    "AttributeNotFoundError",
    "BulkIngestError",
    "CodecError",
    "ConfigError",
    "KeyIndexError",
    "KeyIndexMismatchError",
    "LayerIOError",
    "SSTableError",
    "StoreError",
    "TableExistsError",
    "TableNotFoundError",
    "TileKVError",
    "ValueNotFoundError",
    "KeyBounds",
    "SpaceTimeKey",
    "SpatialKey",
    "SortedTableStore",
    "LayerId",
    "Mutation",
    "RowRange",
    "StorageKey",
    "row_bytes",
    "RowMajorSpatialKeyIndex",
    "ZSpaceTimeKeyIndex",
    "ZSpatialKeyIndex",
    "BulkFileWriteStrategy",
    "FileAttributeStore",
    "LayerReader",
    "LayerWriter",
    "LoggingTracer",
    "SequentialWriteStrategy",
    "StreamingWriteStrategy",
    "ValueReader",
    "write_strategy_from_config",
]
