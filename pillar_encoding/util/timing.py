"""Wall-clock timing for the ``print_time`` diagnostics."""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Iterator


@contextmanager
def log_duration(logger: logging.Logger, name: str, enabled: bool = True) -> Iterator[None]:
    """Log how long the wrapped block took, in seconds.

    Nothing is measured or logged when ``enabled`` is False.

    Example:
        >>> with log_duration(logger, "create_pillars", enabled=print_time):
        ...     tensor, indices = build(...)
    """
    if not enabled:
        yield
        return

    t_start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - t_start
        logger.info(f"{name} took: {elapsed:.6f} seconds")
