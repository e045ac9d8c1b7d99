"""Row bloom filter.

Bit-array bloom filter over row bytes, used by sorted files to skip
exact-row scans that cannot match.
"""

from __future__ import annotations

import hashlib
import math
import struct

# Format: [version(1B)][m(4B)][k(4B)][bits]
_HEADER = struct.Struct("<BII")
_VERSION = 1


class RowBloomFilter:
    """Probabilistic set membership test for rows.

    Args:
        expected_elements: Number of distinct rows expected
        false_positive_rate: Target false positive rate (0 < rate < 1)

    Invariants:
        - False negatives are not possible
        - Filter size is fixed at creation time
    """

    def __init__(self, expected_elements: int, false_positive_rate: float = 0.01):
        n = max(1, expected_elements)
        # m = -n * ln(p) / (ln(2)^2), k = (m/n) * ln(2)
        self.m = max(8, int(-n * math.log(false_positive_rate) / (math.log(2) ** 2)))
        self.k = max(1, round((self.m / n) * math.log(2)))
        self.bits = bytearray((self.m + 7) // 8)

    def _positions(self, row: bytes):
        # Double hashing: h1 + i * h2 over one blake2b digest
        digest = hashlib.blake2b(row, digest_size=16).digest()
        h1 = int.from_bytes(digest[:8], "little")
        h2 = int.from_bytes(digest[8:], "little") | 1
        for i in range(self.k):
            yield (h1 + i * h2) % self.m

    def add(self, row: bytes) -> None:
        for pos in self._positions(row):
            self.bits[pos >> 3] |= 1 << (pos & 7)

    def __contains__(self, row: bytes) -> bool:
        return all(self.bits[pos >> 3] & (1 << (pos & 7)) for pos in self._positions(row))

    def serialize(self) -> bytes:
        return _HEADER.pack(_VERSION, self.m, self.k) + bytes(self.bits)

    @classmethod
    def deserialize(cls, data: bytes) -> RowBloomFilter:
        if len(data) < _HEADER.size:
            raise ValueError("Bloom filter data is truncated")
        version, m, k = _HEADER.unpack_from(data)
        if version != _VERSION:
            raise ValueError(f"Unsupported bloom filter version: {version}")

        bf = cls.__new__(cls)
        bf.m = m
        bf.k = k
        bf.bits = bytearray(data[_HEADER.size:])
        if len(bf.bits) != (m + 7) // 8:
            raise ValueError("Bloom filter bit array has the wrong length")
        return bf
