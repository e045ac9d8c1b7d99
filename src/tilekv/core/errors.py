"""Exception hierarchy for tilekv.

Defines all custom exceptions used throughout the implementation.
"""

from __future__ import annotations

from typing import Any


class TileKVError(Exception):
    """Base exception for all tilekv errors."""
    pass


class ConfigError(TileKVError):
    """Raised when configuration values are missing or invalid."""
    pass


class KeyIndexError(TileKVError):
    """Raised when a key cannot be mapped by a key index."""
    pass


class KeyIndexMismatchError(KeyIndexError):
    """Raised when a reader's key index differs from the one a layer was written with."""
    pass


class CodecError(TileKVError):
    """Raised when a storage value cannot be encoded or decoded."""
    pass


class LayerIOError(TileKVError):
    """Raised when reading or writing a layer fails."""
    pass


class ValueNotFoundError(LayerIOError):
    """Raised when no stored value matches the requested key."""

    def __init__(self, key: Any, layer_id: Any):
        super().__init__(f"Value not found for {key} in layer {layer_id}")
        self.key = key
        self.layer_id = layer_id


class AmbiguousValueError(LayerIOError):
    """Raised when more than one stored value matches the requested key."""

    def __init__(self, key: Any, layer_id: Any, count: int):
        super().__init__(f"Multiple values ({count}) found for {key} in layer {layer_id}")
        self.key = key
        self.layer_id = layer_id
        self.count = count


class AttributeNotFoundError(LayerIOError):
    """Raised when a layer attribute is missing from the attribute store."""
    pass


class BulkIngestError(TileKVError):
    """Raised when a bulk import did not complete; staging files are kept."""

    def __init__(self, path: Any, reason: str = "success marker missing"):
        super().__init__(f"Bulk ingest failed at {path}: {reason}")
        self.path = path


class StoreError(TileKVError):
    """Raised when a sorted store operation fails."""
    pass


class TableNotFoundError(StoreError):
    """Raised when a table does not exist."""
    pass


class TableExistsError(StoreError):
    """Raised when creating a table that already exists."""
    pass


class SSTableError(StoreError):
    """Raised when sorted file operations fail."""
    pass
