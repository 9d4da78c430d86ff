"""Utility module initialization."""

from .logging import get_logger, setup_logging
from .paths import ensure_directory, format_size, safe_filename

__all__ = [
    # logging
    "get_logger",
    "setup_logging",
    # paths
    "ensure_directory",
    "format_size",
    "safe_filename",
]
