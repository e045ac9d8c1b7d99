"""End-to-end tests: layers written with each strategy and read back.

Covers:
1. Every written key reads back its payload
2. Keys sharing an index bucket stay distinguishable
3. Range reads return exactly the keys inside the bounds
4. Data and attributes survive a restart
5. Old writer formats stay readable
"""

import shutil
import tempfile
from pathlib import Path

import pytest

from tilekv import (
    BulkFileWriteStrategy,
    BytesCodec,
    FileAttributeStore,
    KeyBounds,
    KeyValueRecordCodec,
    LayerId,
    LayerReader,
    LayerWriter,
    SequentialWriteStrategy,
    SortedTableStore,
    SpaceTimeKey,
    SpaceTimeKeyCodec,
    SpatialKey,
    SpatialKeyCodec,
    StoreConfig,
    StreamingWriteStrategy,
    ValueNotFoundError,
    ValueReader,
    WriteConfig,
    ZSpaceTimeKeyIndex,
    ZSpatialKeyIndex,
)

LAYER = LayerId("landsat", 9)
BOUNDS = KeyBounds(SpatialKey(0, 0), SpatialKey(63, 63))
DAY = 86_400_000
KEYS = [SpatialKey(c, r) for c in range(40) for r in range(25)]


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests."""
    tmpdir = tempfile.mkdtemp()
    yield Path(tmpdir)
    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
def store(temp_dir):
    """Create store with a small memtable so writes spill to files."""
    config = StoreConfig(data_dir=str(temp_dir / "store"), memtable_max_bytes=16 * 1024)
    store = SortedTableStore(config)
    yield store
    store.close()


@pytest.fixture
def attributes(temp_dir):
    return FileAttributeStore(temp_dir / "attributes.json")


def _payload(key):
    return f"tile {key.col},{key.row}".encode()


def _partitions(keys, n=4):
    return [[(k, _payload(k)) for k in keys[i::n]] for i in range(n)]


def _strategy(name, temp_dir):
    if name == "bulk":
        return BulkFileWriteStrategy(temp_dir / "ingest", file_max_bytes=8 * 1024)
    if name == "streaming":
        return StreamingWriteStrategy(WriteConfig(strategy="streaming", threads=4))
    return SequentialWriteStrategy(WriteConfig(strategy="sequential"))


def test_sequential_write_of_1000_keys_reads_back(store, attributes):
    """Test that 1,000 keys written sequentially into T are all readable."""
    codec = KeyValueRecordCodec(SpatialKeyCodec(), BytesCodec())
    writer = LayerWriter(store, attributes, "T", SequentialWriteStrategy())
    writer.write(LAYER, _partitions(KEYS), ZSpatialKeyIndex(BOUNDS), codec)

    assert store.list_tables() == ["T"]
    reader = ValueReader(store, attributes).reader(LAYER, SpatialKeyCodec(), BytesCodec())
    for key in KEYS:
        assert reader.read(key) == _payload(key)


@pytest.mark.parametrize("strategy_name", ["bulk", "streaming", "sequential"])
def test_every_strategy_round_trips(store, attributes, temp_dir, strategy_name):
    """Test write-then-read for each strategy, point and full scans."""
    codec = KeyValueRecordCodec(SpatialKeyCodec(), BytesCodec())
    writer = LayerWriter(store, attributes, "T", _strategy(strategy_name, temp_dir))
    writer.write(LAYER, _partitions(KEYS), ZSpatialKeyIndex(BOUNDS), codec)

    reader = ValueReader(store, attributes).reader(LAYER, SpatialKeyCodec(), BytesCodec())
    for key in KEYS[::37]:
        assert reader.read(key) == _payload(key)
    with pytest.raises(ValueNotFoundError):
        reader.read(SpatialKey(50, 50))

    everything = dict(LayerReader(store, attributes).read(LAYER, SpatialKeyCodec(), BytesCodec()))
    assert everything == {k: _payload(k) for k in KEYS}


def test_bucket_collision_with_bulk_ingest(store, attributes, temp_dir):
    """Test that keys with equal index values are grouped and read back individually."""
    index = ZSpaceTimeKeyIndex(KeyBounds(SpaceTimeKey(0, 0, 0), SpaceTimeKey(15, 15, 10 * DAY)), DAY)
    keys = [SpaceTimeKey(c, 1, 3 * DAY + hour * 3_600_000) for c in range(4) for hour in range(6)]
    pairs = [(k, f"{k.col}@{k.instant}".encode()) for k in keys]

    codec = KeyValueRecordCodec(SpaceTimeKeyCodec(), BytesCodec())
    writer = LayerWriter(store, attributes, "T", BulkFileWriteStrategy(temp_dir / "ingest"))
    writer.write(LAYER, [pairs[:10], pairs[10:]], index, codec)

    # Four spatial cells, one time bin: four rows holding six keys each
    assert len(list(store.scan("T"))) == 4

    reader = ValueReader(store, attributes).reader(LAYER, SpaceTimeKeyCodec(), BytesCodec())
    for key, value in pairs:
        assert reader.read(key) == value
    with pytest.raises(ValueNotFoundError):
        reader.read(SpaceTimeKey(0, 1, 3 * DAY + 7 * 3_600_000))


def test_range_read_returns_keys_in_bounds(store, attributes):
    """Test that bounded layer reads return exactly the keys inside the bounds."""
    codec = KeyValueRecordCodec(SpatialKeyCodec(), BytesCodec())
    LayerWriter(store, attributes, "T", SequentialWriteStrategy()).write(
        LAYER, _partitions(KEYS), ZSpatialKeyIndex(BOUNDS), codec
    )

    query = KeyBounds(SpatialKey(5, 3), SpatialKey(12, 9))
    found = list(LayerReader(store, attributes).read(LAYER, SpatialKeyCodec(), BytesCodec(), bounds=query))

    expected = {k for k in KEYS if query.includes(k)}
    assert {k for k, _ in found} == expected
    assert len(found) == len(expected)


def test_layers_survive_restart(temp_dir):
    """Test that a bulk-written layer is readable after reopening everything."""
    config = StoreConfig(data_dir=str(temp_dir / "store"))
    attributes_path = temp_dir / "attributes.json"
    codec = KeyValueRecordCodec(SpatialKeyCodec(), BytesCodec())

    with SortedTableStore(config) as store:
        writer = LayerWriter(store, FileAttributeStore(attributes_path), "T", BulkFileWriteStrategy(temp_dir / "ingest"))
        writer.write(LAYER, _partitions(KEYS[:100]), ZSpatialKeyIndex(BOUNDS), codec)

    with SortedTableStore(config) as store:
        reader = ValueReader(store, FileAttributeStore(attributes_path)).reader(LAYER, SpatialKeyCodec(), BytesCodec())
        for key in KEYS[:100]:
            assert reader.read(key) == _payload(key)


def test_old_format_layer_is_readable(store, attributes):
    """Test that a layer written in format version 1 reads with the current codec."""
    old_codec = KeyValueRecordCodec(SpatialKeyCodec(), BytesCodec(), version=1)
    LayerWriter(store, attributes, "T", SequentialWriteStrategy()).write(
        LAYER, _partitions(KEYS[:50]), ZSpatialKeyIndex(BOUNDS), old_codec
    )

    reader = ValueReader(store, attributes).reader(LAYER, SpatialKeyCodec(), BytesCodec())
    for key in KEYS[:50]:
        assert reader.read(key) == _payload(key)


def test_rewriting_a_layer_replaces_values(store, attributes):
    """Test that a second write of the same keys is what reads see."""
    codec = KeyValueRecordCodec(SpatialKeyCodec(), BytesCodec())
    writer = LayerWriter(store, attributes, "T", SequentialWriteStrategy())
    keys = KEYS[:20]
    writer.write(LAYER, [[(k, b"old") for k in keys]], ZSpatialKeyIndex(BOUNDS), codec)
    store.flush("T")
    writer.write(LAYER, [[(k, b"new") for k in keys]], ZSpatialKeyIndex(BOUNDS), codec)

    reader = ValueReader(store, attributes).reader(LAYER, SpatialKeyCodec(), BytesCodec())
    assert {reader.read(k) for k in keys} == {b"new"}


def test_zoom_levels_of_one_layer_stay_separate(store, attributes):
    """Test that the same key written at two zoom levels reads back per zoom."""
    codec = KeyValueRecordCodec(SpatialKeyCodec(), BytesCodec())
    writer = LayerWriter(store, attributes, "tiles", SequentialWriteStrategy())
    zoom1, zoom2 = LayerId("nlcd", 1), LayerId("nlcd", 2)
    writer.write(zoom1, [[(SpatialKey(0, 0), b"zoom1")]], ZSpatialKeyIndex(BOUNDS), codec)
    writer.write(zoom2, [[(SpatialKey(0, 0), b"zoom2")]], ZSpatialKeyIndex(BOUNDS), codec)

    values = ValueReader(store, attributes)
    assert values.read(zoom1, SpatialKey(0, 0), SpatialKeyCodec(), BytesCodec()) == b"zoom1"
    assert values.read(zoom2, SpatialKey(0, 0), SpatialKeyCodec(), BytesCodec()) == b"zoom2"

    layers = LayerReader(store, attributes)
    assert list(layers.read(zoom1, SpatialKeyCodec(), BytesCodec())) == [(SpatialKey(0, 0), b"zoom1")]
    assert list(layers.read(zoom2, SpatialKeyCodec(), BytesCodec())) == [(SpatialKey(0, 0), b"zoom2")]
