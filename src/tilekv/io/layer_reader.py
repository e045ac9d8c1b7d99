"""Layer reader: range scans over the index-encoded key space."""

from __future__ import annotations

from collections.abc import Iterator
from typing import TypeVar

from ..codec.kv_codec import KeyValueRecordCodec
from ..codec.record_codec import RecordCodec
from ..core.keys import KeyBounds
from ..core.types import LayerId, RowRange, row_bytes
from ..index.key_index import KeyIndex
from ..interfaces.store import TableStore
from .attribute_store import FileAttributeStore
from .value_reader import resolve_key_index

K = TypeVar("K")
V = TypeVar("V")


class LayerReader:
    """Reads every pair of a layer, optionally restricted to key bounds.

    Bounds are turned into row intervals with the layer's key index; index
    ranges may over-cover, so decoded keys are filtered against the bounds.
    """

    def __init__(self, store: TableStore, attribute_store: FileAttributeStore):
        self.store = store
        self.attribute_store = attribute_store

    def read(
        self,
        layer_id: LayerId,
        key_codec: RecordCodec[K],
        value_codec: RecordCodec[V],
        bounds: KeyBounds | None = None,
        key_index: KeyIndex | None = None,
    ) -> Iterator[tuple[K, V]]:
        header = self.attribute_store.read_header(layer_id)
        index = resolve_key_index(self.attribute_store, layer_id, key_index)
        writer_schema = self.attribute_store.read_schema(layer_id)
        codec = KeyValueRecordCodec(key_codec, value_codec)

        if bounds is None:
            row_ranges = [RowRange()]
        else:
            row_ranges = [
                RowRange.closed(row_bytes(first), row_bytes(last))
                for first, last in index.index_ranges((bounds.min_key, bounds.max_key))
            ]

        for row_range in row_ranges:
            cells = self.store.scan(header.table_name, row_range, column_family=layer_id.column_family())
            for _, _, blob in cells:
                for key, value in codec.decode(writer_schema, blob):
                    if bounds is None or bounds.includes(key):
                        yield key, value
