"""Layer writer: turns (domain key, payload) partitions into stored rows."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import TypeVar

from ..codec.kv_codec import KeyValueRecordCodec
from ..core.types import KVPair, LayerId, StorageKey, row_bytes
from ..index.key_index import KeyIndex
from ..interfaces.store import TableStore
from ..interfaces.write_strategy import WriteStrategy
from .attribute_store import FileAttributeStore, LayerHeader
from .write_strategy import default_write_strategy

logger = logging.getLogger(__name__)

K = TypeVar("K")
V = TypeVar("V")


def group_by_index(
    partitions: Sequence[Iterable[tuple[K, V]]], key_index: KeyIndex, num_partitions: int
) -> list[dict[int, list[tuple[K, V]]]]:
    """Shuffle pairs so every pair with the same index lands in one group.

    Groups are hash-partitioned by index value into num_partitions outputs.
    """
    shuffled: list[dict[int, list[tuple[K, V]]]] = [{} for _ in range(num_partitions)]
    for partition in partitions:
        for key, value in partition:
            index = key_index.to_index(key)
            shuffled[index % num_partitions].setdefault(index, []).append((key, value))
    return shuffled


def encode_groups(
    groups: dict[int, list[tuple[K, V]]], codec: KeyValueRecordCodec[K, V], column_family: bytes
) -> list[KVPair]:
    return [
        (StorageKey(row_bytes(index), column_family), codec.encode(pairs))
        for index, pairs in groups.items()
    ]


class LayerWriter:
    """Writes layers into one table of a sorted store.

    Args:
        store: Target sorted store
        attribute_store: Where layer header, key index and schema are recorded
        table: Table holding the layers
        strategy: Write strategy (bulk ingest by default)
    """

    def __init__(
        self,
        store: TableStore,
        attribute_store: FileAttributeStore,
        table: str,
        strategy: WriteStrategy | None = None,
    ):
        self.store = store
        self.attribute_store = attribute_store
        self.table = table
        self.strategy = strategy or default_write_strategy()

    def write(
        self,
        layer_id: LayerId,
        partitions: Sequence[Iterable[tuple[K, V]]],
        key_index: KeyIndex,
        codec: KeyValueRecordCodec[K, V],
    ) -> None:
        """Record the layer's attributes, then group, encode and write its pairs."""
        if not self.store.table_exists(self.table):
            self.store.create_table(self.table)

        header = LayerHeader(
            key_type=codec.key_codec.name,
            value_type=codec.value_codec.name,
            table_name=self.table,
        )
        self.attribute_store.write_layer(layer_id, header, key_index, codec.schema())

        column_family = layer_id.column_family()
        shuffled = group_by_index(partitions, key_index, max(1, len(partitions)))
        encoded = [encode_groups(groups, codec, column_family) for groups in shuffled]

        rows = sum(len(part) for part in encoded)
        logger.info(f"Writing {rows} rows for {layer_id} to {self.table} with {self.strategy!r}")
        self.strategy.write(encoded, self.store, self.table)
