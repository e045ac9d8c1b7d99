"""Protocol definition for read tracing hooks."""

from __future__ import annotations

from contextlib import AbstractContextManager
from typing import Any, Protocol


class ReadTracer(Protocol):
    """Observability hook bracketing read-path operations."""

    def span(self, name: str, **attributes: Any) -> AbstractContextManager[None]:
        """Context manager timing one operation."""
        ...
