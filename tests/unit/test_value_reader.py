"""Unit tests for point reads and read tracing."""

import logging

import pytest

from tilekv.codec import BytesCodec, KeyValueRecordCodec, SpaceTimeKeyCodec, SpatialKeyCodec
from tilekv.core.config import StoreConfig, WriteConfig
from tilekv.core.errors import (
    AmbiguousValueError,
    AttributeNotFoundError,
    KeyIndexMismatchError,
    ValueNotFoundError,
)
from tilekv.core.keys import KeyBounds, SpaceTimeKey, SpatialKey
from tilekv.core.store import SortedTableStore
from tilekv.core.types import LayerId, Mutation, row_bytes
from tilekv.index import RowMajorSpatialKeyIndex, ZSpaceTimeKeyIndex, ZSpatialKeyIndex
from tilekv.io import FileAttributeStore, LayerWriter, LoggingTracer, SequentialWriteStrategy, ValueReader

LAYER = LayerId("elevation", 4)
BOUNDS = KeyBounds(SpatialKey(0, 0), SpatialKey(15, 15))
DAY = 86_400_000


@pytest.fixture
def store(tmp_path):
    """Create store."""
    store = SortedTableStore(StoreConfig(data_dir=str(tmp_path / "store")))
    yield store
    store.close()


@pytest.fixture
def attributes(tmp_path):
    return FileAttributeStore(tmp_path / "attributes.json")


def _write_layer(store, attributes, layer_id, pairs, key_index, key_codec=None):
    codec = KeyValueRecordCodec(key_codec or SpatialKeyCodec(), BytesCodec())
    writer = LayerWriter(store, attributes, "T", SequentialWriteStrategy(WriteConfig(strategy="sequential")))
    writer.write(layer_id, [pairs], key_index, codec)
    return codec


def test_read_existing_key(store, attributes):
    """Test that a written key reads back its payload."""
    pairs = [(SpatialKey(c, r), f"{c}/{r}".encode()) for c in range(4) for r in range(4)]
    _write_layer(store, attributes, LAYER, pairs, ZSpatialKeyIndex(BOUNDS))

    reader = ValueReader(store, attributes).reader(LAYER, SpatialKeyCodec(), BytesCodec())
    for key, value in pairs:
        assert reader.read(key) == value


def test_read_missing_key(store, attributes):
    """Test that an absent key raises ValueNotFoundError naming key and layer."""
    _write_layer(store, attributes, LAYER, [(SpatialKey(1, 1), b"x")], ZSpatialKeyIndex(BOUNDS))

    with pytest.raises(ValueNotFoundError) as exc_info:
        ValueReader(store, attributes).read(LAYER, SpatialKey(2, 2), SpatialKeyCodec(), BytesCodec())
    assert exc_info.value.key == SpatialKey(2, 2)
    assert exc_info.value.layer_id == LAYER


def test_read_key_sharing_row_with_other_keys(store, attributes):
    """Test that keys in the same index bucket are told apart."""
    index = ZSpaceTimeKeyIndex(KeyBounds(SpaceTimeKey(0, 0, 0), SpaceTimeKey(7, 7, 30 * DAY)), DAY)
    a = SpaceTimeKey(2, 3, 5 * DAY + 100)
    b = SpaceTimeKey(2, 3, 5 * DAY + 200)
    c = SpaceTimeKey(2, 3, 5 * DAY + 300)
    assert index.to_index(a) == index.to_index(b) == index.to_index(c)

    _write_layer(store, attributes, LAYER, [(a, b"A"), (b, b"B")], index, SpaceTimeKeyCodec())
    assert len(list(store.scan("T"))) == 1

    reader = ValueReader(store, attributes).reader(LAYER, SpaceTimeKeyCodec(), BytesCodec())
    assert reader.read(a) == b"A"
    assert reader.read(b) == b"B"
    with pytest.raises(ValueNotFoundError):
        reader.read(c)


def test_read_ambiguous_key(store, attributes):
    """Test that a key stored under two qualifiers of its row is ambiguous."""
    index = ZSpatialKeyIndex(BOUNDS)
    key = SpatialKey(5, 5)
    codec = _write_layer(store, attributes, LAYER, [(key, b"first")], index)

    with store.batch_writer("T") as writer:
        row = row_bytes(index.to_index(key))
        writer.add_mutation(Mutation(row).put(LAYER.column_family(), b"extra", 1, codec.encode([(key, b"other")])))

    with pytest.raises(AmbiguousValueError) as exc_info:
        ValueReader(store, attributes).read(LAYER, key, SpatialKeyCodec(), BytesCodec())
    assert exc_info.value.count == 2


def test_read_ignores_other_layers_in_table(store, attributes):
    """Test that layers sharing a table do not see each other's cells."""
    index = ZSpatialKeyIndex(BOUNDS)
    other = LayerId("slope", 4)
    _write_layer(store, attributes, LAYER, [(SpatialKey(1, 1), b"elevation")], index)
    _write_layer(store, attributes, other, [(SpatialKey(1, 1), b"slope")], index)

    values = ValueReader(store, attributes)
    assert values.read(LAYER, SpatialKey(1, 1), SpatialKeyCodec(), BytesCodec()) == b"elevation"
    assert values.read(other, SpatialKey(1, 1), SpatialKeyCodec(), BytesCodec()) == b"slope"


def test_reader_key_index_mismatch(store, attributes):
    """Test that reading with a different key index than the writer's fails."""
    _write_layer(store, attributes, LAYER, [(SpatialKey(1, 1), b"x")], ZSpatialKeyIndex(BOUNDS))

    values = ValueReader(store, attributes)
    with pytest.raises(KeyIndexMismatchError):
        values.reader(LAYER, SpatialKeyCodec(), BytesCodec(), key_index=RowMajorSpatialKeyIndex(BOUNDS))

    reader = values.reader(LAYER, SpatialKeyCodec(), BytesCodec(), key_index=ZSpatialKeyIndex(BOUNDS))
    assert reader.read(SpatialKey(1, 1)) == b"x"


def test_reader_for_unknown_layer(store, attributes):
    """Test that readers require the layer's attributes."""
    with pytest.raises(AttributeNotFoundError):
        ValueReader(store, attributes).reader(LAYER, SpatialKeyCodec(), BytesCodec())


def test_logging_tracer_records_reads(store, attributes, caplog):
    """Test that each read is bracketed by one span."""
    _write_layer(store, attributes, LAYER, [(SpatialKey(1, 1), b"x")], ZSpatialKeyIndex(BOUNDS))
    tracer = LoggingTracer()
    reader = ValueReader(store, attributes, tracer).reader(LAYER, SpatialKeyCodec(), BytesCodec())

    with caplog.at_level(logging.DEBUG, logger="tilekv.io.tracing"):
        assert reader.read(SpatialKey(1, 1)) == b"x"
        with pytest.raises(ValueNotFoundError):
            reader.read(SpatialKey(2, 1))

    assert tracer.spans_recorded == 2
    messages = [r.getMessage() for r in caplog.records if r.name == "tilekv.io.tracing"]
    assert len(messages) == 2
    assert all(m.startswith("span value-read ok") for m in messages)
    assert "layer=elevation" in messages[0]


def test_logging_tracer_marks_failed_spans(caplog):
    """Test that a span exited by an exception is logged as failed and re-raised."""
    tracer = LoggingTracer(level=logging.INFO)
    with caplog.at_level(logging.INFO, logger="tilekv.io.tracing"):
        with pytest.raises(RuntimeError):
            with tracer.span("scan", table="T"):
                raise RuntimeError("boom")

    assert tracer.spans_recorded == 1
    assert "span scan failed" in caplog.records[-1].getMessage()
    assert caplog.records[-1].getMessage().endswith("table=T")
