"""Record codecs for domain keys and payloads.

A record codec turns an object into a flat record of named fields and back.
Decoding resolves the reader's fields against the writer's field list, so
fields added later with a default still read old data.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, ClassVar, Generic, TypeVar

from ..core.errors import CodecError
from ..core.keys import SpaceTimeKey, SpatialKey

T = TypeVar("T")

_REQUIRED = object()


@dataclass(frozen=True)
class Field:
    name: str
    default: Any = _REQUIRED

    @property
    def required(self) -> bool:
        return self.default is _REQUIRED


class RecordCodec(ABC, Generic[T]):
    """Maps objects of one type to records with a fixed, named field list."""

    name: ClassVar[str]
    fields: ClassVar[tuple[Field, ...]]

    def schema(self) -> dict[str, Any]:
        return {"name": self.name, "fields": [f.name for f in self.fields]}

    @abstractmethod
    def to_record(self, obj: T) -> dict[str, Any]:
        ...

    @abstractmethod
    def from_record(self, record: dict[str, Any]) -> T:
        ...

    def to_values(self, obj: T) -> list[Any]:
        """Field values in schema order."""
        record = self.to_record(obj)
        return [record[f.name] for f in self.fields]

    def resolve(self, writer_schema: dict[str, Any], values: dict[str, Any]) -> T:
        """Build an object from a record written under writer_schema.

        Raises:
            CodecError: If the record type differs or a required field is missing
        """
        if writer_schema.get("name") != self.name:
            raise CodecError(f"Cannot read {writer_schema.get('name')!r} records as {self.name!r}")

        record = {}
        for f in self.fields:
            if f.name in values:
                record[f.name] = values[f.name]
            elif not f.required:
                record[f.name] = f.default
            else:
                raise CodecError(f"{self.name} record lacks required field {f.name!r}")
        return self.from_record(record)

    def resolve_values(self, writer_schema: dict[str, Any], values: Sequence[Any]) -> T:
        """Like resolve, for positional values in writer field order."""
        writer_fields = writer_schema.get("fields", [])
        if len(values) != len(writer_fields):
            raise CodecError(
                f"{self.name} record has {len(values)} values, writer schema has {len(writer_fields)} fields"
            )
        return self.resolve(writer_schema, dict(zip(writer_fields, values)))


def _int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise CodecError(f"Field {name!r} must be an integer, got {type(value).__name__}")
    return value


class SpatialKeyCodec(RecordCodec[SpatialKey]):
    name = "SpatialKey"
    fields = (Field("col"), Field("row"))

    def to_record(self, obj: SpatialKey) -> dict[str, Any]:
        return {"col": obj.col, "row": obj.row}

    def from_record(self, record: dict[str, Any]) -> SpatialKey:
        return SpatialKey(_int(record["col"], "col"), _int(record["row"], "row"))


class SpaceTimeKeyCodec(RecordCodec[SpaceTimeKey]):
    name = "SpaceTimeKey"
    fields = (Field("col"), Field("row"), Field("instant"))

    def to_record(self, obj: SpaceTimeKey) -> dict[str, Any]:
        return {"col": obj.col, "row": obj.row, "instant": obj.instant}

    def from_record(self, record: dict[str, Any]) -> SpaceTimeKey:
        return SpaceTimeKey(
            _int(record["col"], "col"),
            _int(record["row"], "row"),
            _int(record["instant"], "instant"),
        )


class BytesCodec(RecordCodec[bytes]):
    """Opaque payloads, e.g. tiles already encoded by an upstream stage."""

    name = "Bytes"
    fields = (Field("bytes"),)

    def to_record(self, obj: bytes) -> dict[str, Any]:
        if not isinstance(obj, (bytes, bytearray)):
            raise CodecError(f"BytesCodec expects bytes, got {type(obj).__name__}")
        return {"bytes": bytes(obj)}

    def from_record(self, record: dict[str, Any]) -> bytes:
        value = record["bytes"]
        if not isinstance(value, bytes):
            raise CodecError(f"Field 'bytes' must be binary, got {type(value).__name__}")
        return value
