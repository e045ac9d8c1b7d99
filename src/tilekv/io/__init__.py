"""Write and read paths for layers stored in a sorted table store."""

from .attribute_store import FileAttributeStore, LayerHeader
from .layer_reader import LayerReader
from .layer_writer import LayerWriter
from .tracing import LoggingTracer, NullTracer
from .value_reader import Reader, ValueReader
from .write_strategy import (
    BulkFileWriteStrategy,
    SequentialWriteStrategy,
    StreamingWriteStrategy,
    write_strategy_from_config,
)

__all__ = [
    "FileAttributeStore",
    "LayerHeader",
    "LayerReader",
    "LayerWriter",
    "LoggingTracer",
    "NullTracer",
    "Reader",
    "ValueReader",
    "BulkFileWriteStrategy",
    "SequentialWriteStrategy",
    "StreamingWriteStrategy",
    "write_strategy_from_config",
]
