"""Attribute store implementation.

Keeps per-layer bookkeeping (header, key index identity, writer schema) in a
JSON manifest with atomic updates.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from ..core.errors import AttributeNotFoundError
from ..core.types import LayerId
from ..index.key_index import KeyIndex, key_index_from_identity

logger = logging.getLogger(__name__)

HEADER = "header"
KEY_INDEX = "key_index"
SCHEMA = "schema"


@dataclass(frozen=True)
class LayerHeader:
    """Where and what a layer stores."""

    key_type: str
    value_type: str
    table_name: str


def _layer_key(layer_id: LayerId) -> str:
    return f"{layer_id.name}:{layer_id.zoom}"


class FileAttributeStore:
    """Per-layer attributes stored in one JSON file.

    Args:
        path: Path to the attribute JSON file

    Invariants:
        - Updates are atomic via write-temp-then-rename
        - Thread-safe via lock
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._layers: dict[str, dict[str, Any]] = {}

        if self.path.exists():
            with open(self.path) as f:
                self._layers = json.load(f)
            logger.info(f"Loaded attributes for {len(self._layers)} layers from {self.path}")

    def _save(self) -> None:
        """Must hold lock."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_suffix(".tmp")
        with open(temp_path, "w") as f:
            json.dump(self._layers, f, indent=2, sort_keys=True)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, self.path)

    def write(self, layer_id: LayerId, attributes: dict[str, Any]) -> None:
        with self._lock:
            self._layers.setdefault(_layer_key(layer_id), {}).update(attributes)
            self._save()
        logger.debug(f"Wrote attributes {sorted(attributes)} for {layer_id}")

    def read(self, layer_id: LayerId, name: str) -> Any:
        with self._lock:
            try:
                return self._layers[_layer_key(layer_id)][name]
            except KeyError:
                raise AttributeNotFoundError(f"Attribute {name!r} not found for layer {layer_id}") from None

    def write_layer(self, layer_id: LayerId, header: LayerHeader, key_index: KeyIndex, schema: dict) -> None:
        """Record everything a reader needs, in one atomic update."""
        self.write(
            layer_id,
            {HEADER: asdict(header), KEY_INDEX: key_index.identity(), SCHEMA: schema},
        )

    def read_header(self, layer_id: LayerId) -> LayerHeader:
        return LayerHeader(**self.read(layer_id, HEADER))

    def read_key_index(self, layer_id: LayerId) -> KeyIndex:
        return key_index_from_identity(self.read(layer_id, KEY_INDEX))

    def read_schema(self, layer_id: LayerId) -> dict[str, Any]:
        return self.read(layer_id, SCHEMA)

    def layer_exists(self, layer_id: LayerId) -> bool:
        with self._lock:
            return HEADER in self._layers.get(_layer_key(layer_id), {})

    def layer_ids(self) -> list[LayerId]:
        with self._lock:
            keys = list(self._layers)
        ids = []
        for key in keys:
            name, _, zoom = key.rpartition(":")
            ids.append(LayerId(name, int(zoom)))
        return sorted(ids, key=lambda lid: (lid.name, lid.zoom))

    def delete_layer(self, layer_id: LayerId) -> None:
        with self._lock:
            if self._layers.pop(_layer_key(layer_id), None) is None:
                raise AttributeNotFoundError(f"Layer {layer_id} not found")
            self._save()
        logger.info(f"Deleted attributes for {layer_id}")
