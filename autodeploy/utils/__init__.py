"""Utility functions for Autodeploy."""

from autodeploy.utils.logging import configure_logging, flush_logging, get_logger

__all__ = [
    "configure_logging",
    "flush_logging",
    "get_logger",
]
