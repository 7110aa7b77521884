"""Shared utilities: logging and timing."""

from .logger import get_logger, setup_logger
from .timing import log_duration

__all__ = [
    "get_logger",
    "setup_logger",
    "log_duration",
]
