"""Key indexes mapping domain keys to sortable index values."""

from .key_index import KeyIndex, key_index_from_identity, register_key_index
from .rowmajor import RowMajorSpatialKeyIndex
from .zcurve import ZSpaceTimeKeyIndex, ZSpatialKeyIndex

__all__ = [
    "KeyIndex",
    "key_index_from_identity",
    "register_key_index",
    "RowMajorSpatialKeyIndex",
    "ZSpaceTimeKeyIndex",
    "ZSpatialKeyIndex",
]
