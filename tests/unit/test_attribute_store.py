"""Unit tests for the file attribute store."""

import pytest

from tilekv.core.errors import AttributeNotFoundError
from tilekv.core.keys import KeyBounds, SpatialKey
from tilekv.core.types import LayerId
from tilekv.index import ZSpatialKeyIndex
from tilekv.io.attribute_store import FileAttributeStore, LayerHeader

LAYER = LayerId("elevation", 3)
INDEX = ZSpatialKeyIndex(KeyBounds(SpatialKey(0, 0), SpatialKey(7, 7)))
HEADER = LayerHeader(key_type="SpatialKey", value_type="Bytes", table_name="T")
SCHEMA = {"name": "KeyValueRecord", "version": 2}


def test_write_and_read_layer(tmp_path):
    """Test that header, key index and schema come back as written."""
    attrs = FileAttributeStore(tmp_path / "attributes.json")
    attrs.write_layer(LAYER, HEADER, INDEX, SCHEMA)

    assert attrs.layer_exists(LAYER)
    assert attrs.read_header(LAYER) == HEADER
    assert attrs.read_key_index(LAYER) == INDEX
    assert attrs.read_schema(LAYER) == SCHEMA


def test_attributes_survive_reopen(tmp_path):
    """Test persistence across instances."""
    path = tmp_path / "attributes.json"
    FileAttributeStore(path).write_layer(LAYER, HEADER, INDEX, SCHEMA)
    FileAttributeStore(path).write(LayerId("ndvi", 0), {"note": "custom"})

    reopened = FileAttributeStore(path)
    assert reopened.layer_ids() == [LAYER, LayerId("ndvi", 0)]
    assert reopened.read(LayerId("ndvi", 0), "note") == "custom"
    assert not reopened.layer_exists(LayerId("ndvi", 0))
    assert not path.with_suffix(".tmp").exists()


def test_missing_attributes(tmp_path):
    """Test that absent layers and names raise AttributeNotFoundError."""
    attrs = FileAttributeStore(tmp_path / "attributes.json")
    with pytest.raises(AttributeNotFoundError):
        attrs.read_header(LAYER)

    attrs.write(LAYER, {"note": "x"})
    with pytest.raises(AttributeNotFoundError):
        attrs.read_schema(LAYER)


def test_delete_layer(tmp_path):
    """Test deletion and deleting an unknown layer."""
    attrs = FileAttributeStore(tmp_path / "attributes.json")
    attrs.write_layer(LAYER, HEADER, INDEX, SCHEMA)
    attrs.delete_layer(LAYER)

    assert not attrs.layer_exists(LAYER)
    with pytest.raises(AttributeNotFoundError):
        attrs.delete_layer(LAYER)
