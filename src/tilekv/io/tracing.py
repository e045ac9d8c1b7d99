"""Read tracing hooks.

The read path brackets its scans with tracer spans; tracing never changes
what a read returns.
"""

from __future__ import annotations

import contextlib
import logging
import time
from collections.abc import Iterator
from typing import Any


class NullTracer:
    """Tracer that records nothing."""

    @contextlib.contextmanager
    def span(self, name: str, **attributes: Any) -> Iterator[None]:
        yield


class LoggingTracer:
    """Logs each span's elapsed time.

    Args:
        logger: Logger to write to (defaults to this module's logger)
        level: Log level for span records
    """

    def __init__(self, logger: logging.Logger | None = None, level: int = logging.DEBUG):
        self.logger = logger or logging.getLogger(__name__)
        self.level = level
        self.spans_recorded = 0

    @contextlib.contextmanager
    def span(self, name: str, **attributes: Any) -> Iterator[None]:
        start = time.perf_counter()
        failed = False
        try:
            yield
        except BaseException:
            failed = True
            raise
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000
            self.spans_recorded += 1
            details = " ".join(f"{k}={v}" for k, v in attributes.items())
            status = "failed" if failed else "ok"
            self.logger.log(self.level, f"span {name} {status} in {elapsed_ms:.2f}ms {details}".rstrip())
