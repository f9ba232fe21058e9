"""Shared utilities for stylegen."""

from stylegen.core.utils.logging import configure_logging, get_logger

__all__ = [
    "configure_logging",
    "get_logger",
]
