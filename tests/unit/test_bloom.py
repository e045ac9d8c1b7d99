"""Unit tests for the row bloom filter."""

import pytest

from tilekv.components.bloom import RowBloomFilter
from tilekv.core.types import row_bytes


def test_bloom_filter_no_false_negatives():
    """Test that every added row is reported present."""
    bf = RowBloomFilter(1000, 0.01)
    rows = [row_bytes(i) for i in range(1000)]
    for row in rows:
        bf.add(row)

    for row in rows:
        assert row in bf, f"False negative for {row!r}"


def test_bloom_filter_false_positive_rate():
    """Test that the false positive rate stays near the target."""
    bf = RowBloomFilter(1000, 0.05)
    for i in range(1000):
        bf.add(row_bytes(i))

    false_positives = sum(1 for i in range(1000, 3000) if row_bytes(i) in bf)
    # Generous bound: 3x the target rate
    assert false_positives / 2000 < 0.15


def test_bloom_filter_serialization_roundtrip():
    """Test that a deserialized filter answers like the original."""
    bf = RowBloomFilter(100, 0.01)
    for i in range(100):
        bf.add(row_bytes(i * 7))

    restored = RowBloomFilter.deserialize(bf.serialize())
    assert restored.m == bf.m
    assert restored.k == bf.k
    for i in range(100):
        assert row_bytes(i * 7) in restored


def test_bloom_filter_rejects_bad_data():
    """Test that truncated or foreign data is refused."""
    with pytest.raises(ValueError):
        RowBloomFilter.deserialize(b"\x01\x00")

    data = bytearray(RowBloomFilter(10).serialize())
    data[0] = 9
    with pytest.raises(ValueError):
        RowBloomFilter.deserialize(bytes(data))


def test_bloom_filter_zero_elements():
    """Test that an empty filter still works."""
    bf = RowBloomFilter(0)
    assert row_bytes(1) not in bf
