"""Key/value group codec.

Serializes every (domain key, payload) pair that shares a storage key into
one storage value, framed with msgpack.
"""

from __future__ import annotations

import zlib
from collections.abc import Sequence
from typing import Any, Generic, TypeVar

import msgpack

from ..core.errors import CodecError
from .record_codec import RecordCodec

K = TypeVar("K")
V = TypeVar("V")

SCHEMA_NAME = "KeyValueRecord"
# Format versions:
#   1: {"pairs": [[{key fields}, {value fields}], ...]}
#   2: [crc32, packed [[key values], [value values]], ...] with positional fields
FORMAT_VERSIONS = (1, 2)
CURRENT_VERSION = 2


class KeyValueRecordCodec(Generic[K, V]):
    """Encodes groups of pairs; decoding requires the writer schema.

    Args:
        key_codec: Codec for domain keys
        value_codec: Codec for payloads
        version: Format version used when encoding

    Invariants:
        - decode either returns every pair of the group or raises CodecError
    """

    def __init__(
        self,
        key_codec: RecordCodec[K],
        value_codec: RecordCodec[V],
        version: int = CURRENT_VERSION,
    ):
        if version not in FORMAT_VERSIONS:
            raise CodecError(f"Unsupported format version {version}, expected one of {FORMAT_VERSIONS}")
        self.key_codec = key_codec
        self.value_codec = value_codec
        self.version = version

    def schema(self) -> dict[str, Any]:
        """Writer schema to record alongside the layer."""
        return {
            "name": SCHEMA_NAME,
            "version": self.version,
            "key": self.key_codec.schema(),
            "value": self.value_codec.schema(),
        }

    def encode(self, pairs: Sequence[tuple[K, V]]) -> bytes:
        if self.version == 1:
            records = [
                [self.key_codec.to_record(k), self.value_codec.to_record(v)] for k, v in pairs
            ]
            return msgpack.packb({"pairs": records}, use_bin_type=True)

        body = msgpack.packb(
            [[self.key_codec.to_values(k), self.value_codec.to_values(v)] for k, v in pairs],
            use_bin_type=True,
        )
        return msgpack.packb([zlib.crc32(body), body], use_bin_type=True)

    def decode(self, writer_schema: dict[str, Any], blob: bytes) -> list[tuple[K, V]]:
        """Decode a storage value written under writer_schema.

        Raises:
            CodecError: If the schema is incompatible or the blob is corrupt
        """
        if not isinstance(writer_schema, dict) or writer_schema.get("name") != SCHEMA_NAME:
            raise CodecError(f"Not a {SCHEMA_NAME} writer schema: {writer_schema!r}")
        version = writer_schema.get("version")
        if version not in FORMAT_VERSIONS:
            raise CodecError(f"Unsupported format version {version!r}")
        key_schema = writer_schema.get("key")
        value_schema = writer_schema.get("value")
        if not isinstance(key_schema, dict) or not isinstance(value_schema, dict):
            raise CodecError("Writer schema lacks key or value record schemas")

        try:
            if version == 1:
                return self._decode_v1(key_schema, value_schema, blob)
            return self._decode_v2(key_schema, value_schema, blob)
        except CodecError:
            raise
        except (ValueError, TypeError, KeyError, msgpack.UnpackException) as e:
            raise CodecError(f"Corrupt {SCHEMA_NAME} value: {e}") from e

    def _decode_v1(self, key_schema, value_schema, blob: bytes) -> list[tuple[K, V]]:
        envelope = msgpack.unpackb(blob, raw=False)
        if not isinstance(envelope, dict) or not isinstance(envelope.get("pairs"), list):
            raise CodecError("Version 1 value must be a map with a 'pairs' list")
        pairs = []
        for key_record, value_record in envelope["pairs"]:
            if not isinstance(key_record, dict) or not isinstance(value_record, dict):
                raise CodecError("Version 1 pair members must be maps")
            pairs.append(
                (
                    self.key_codec.resolve(key_schema, key_record),
                    self.value_codec.resolve(value_schema, value_record),
                )
            )
        return pairs

    def _decode_v2(self, key_schema, value_schema, blob: bytes) -> list[tuple[K, V]]:
        envelope = msgpack.unpackb(blob, raw=False)
        if not isinstance(envelope, list) or len(envelope) != 2:
            raise CodecError("Version 2 value must be a [crc, body] array")
        crc, body = envelope
        if not isinstance(body, bytes) or zlib.crc32(body) != crc:
            raise CodecError("Version 2 value failed its CRC check")

        pairs = []
        for key_values, value_values in msgpack.unpackb(body, raw=False):
            pairs.append(
                (
                    self.key_codec.resolve_values(key_schema, key_values),
                    self.value_codec.resolve_values(value_schema, value_values),
                )
            )
        return pairs
