"""Codecs for domain keys, payloads and grouped storage values."""

from .kv_codec import CURRENT_VERSION, FORMAT_VERSIONS, KeyValueRecordCodec
from .record_codec import BytesCodec, Field, RecordCodec, SpaceTimeKeyCodec, SpatialKeyCodec

__all__ = [
    "CURRENT_VERSION",
    "FORMAT_VERSIONS",
    "KeyValueRecordCodec",
    "BytesCodec",
    "Field",
    "RecordCodec",
    "SpaceTimeKeyCodec",
    "SpatialKeyCodec",
]
