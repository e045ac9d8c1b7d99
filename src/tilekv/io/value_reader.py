"""Value reader: exact-match point lookups of single records in a layer."""

from __future__ import annotations

import logging
from typing import Generic, TypeVar

from ..codec.kv_codec import KeyValueRecordCodec
from ..codec.record_codec import RecordCodec
from ..core.errors import AmbiguousValueError, KeyIndexMismatchError, ValueNotFoundError
from ..core.types import LayerId, RowRange, row_bytes
from ..index.key_index import KeyIndex
from ..interfaces.store import TableStore
from ..interfaces.tracing import ReadTracer
from .attribute_store import FileAttributeStore
from .tracing import NullTracer

logger = logging.getLogger(__name__)

K = TypeVar("K")
V = TypeVar("V")


def resolve_key_index(
    attribute_store: FileAttributeStore, layer_id: LayerId, key_index: KeyIndex | None
) -> KeyIndex:
    """Return the layer's stored key index, checking it against an explicit one."""
    stored = attribute_store.read_key_index(layer_id)
    if key_index is not None and key_index.identity() != stored.identity():
        raise KeyIndexMismatchError(
            f"Layer {layer_id} was written with {stored!r}, reader was given {key_index!r}"
        )
    return stored


class Reader(Generic[K, V]):
    """Point reader bound to one layer.

    Header, key index and writer schema are loaded once at construction and
    never mutated, so read() may be called from several threads.
    """

    def __init__(
        self,
        store: TableStore,
        attribute_store: FileAttributeStore,
        layer_id: LayerId,
        key_codec: RecordCodec[K],
        value_codec: RecordCodec[V],
        key_index: KeyIndex | None = None,
        tracer: ReadTracer | None = None,
    ):
        self.store = store
        self.layer_id = layer_id
        self.header = attribute_store.read_header(layer_id)
        self.key_index = resolve_key_index(attribute_store, layer_id, key_index)
        self.writer_schema = attribute_store.read_schema(layer_id)
        self.codec = KeyValueRecordCodec(key_codec, value_codec)
        self.tracer = tracer or NullTracer()
        self._column_family = layer_id.column_family()
        logger.debug(f"Opened reader for {layer_id} on table {self.header.table_name}")

    def read(self, key: K) -> V:
        """Return the payload stored for key.

        Raises:
            ValueNotFoundError: If no stored pair has this key
            AmbiguousValueError: If more than one stored pair has this key
            CodecError: If a stored value in the key's row cannot be decoded
        """
        row = row_bytes(self.key_index.to_index(key))

        with self.tracer.span("value-read", layer=self.layer_id.name, zoom=self.layer_id.zoom, row=row.hex()):
            cells = self.store.scan(
                self.header.table_name,
                RowRange.exact(row),
                column_family=self._column_family,
            )
            matches = [
                value
                for _, _, blob in cells
                for pair_key, value in self.codec.decode(self.writer_schema, blob)
                if pair_key == key
            ]

        if not matches:
            raise ValueNotFoundError(key, self.layer_id)
        if len(matches) > 1:
            raise AmbiguousValueError(key, self.layer_id, len(matches))
        return matches[0]


class ValueReader:
    """Creates layer readers sharing one store and attribute store.

    Args:
        store: Sorted store holding the layer tables
        attribute_store: Source of headers, key indexes and writer schemas
        tracer: Optional hook bracketing each read's scan
    """

    def __init__(
        self,
        store: TableStore,
        attribute_store: FileAttributeStore,
        tracer: ReadTracer | None = None,
    ):
        self.store = store
        self.attribute_store = attribute_store
        self.tracer = tracer

    def reader(
        self,
        layer_id: LayerId,
        key_codec: RecordCodec[K],
        value_codec: RecordCodec[V],
        key_index: KeyIndex | None = None,
    ) -> Reader[K, V]:
        return Reader(
            self.store,
            self.attribute_store,
            layer_id,
            key_codec,
            value_codec,
            key_index=key_index,
            tracer=self.tracer,
        )

    def read(self, layer_id: LayerId, key: K, key_codec: RecordCodec[K], value_codec: RecordCodec[V]) -> V:
        """One-off lookup; prefer reader() for repeated reads."""
        return self.reader(layer_id, key_codec, value_codec).read(key)
