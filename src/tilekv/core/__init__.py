"""tilekv core: types, configuration, errors and the sorted table store."""

from .store import SortedTableStore

__all__ = ["SortedTableStore"]
