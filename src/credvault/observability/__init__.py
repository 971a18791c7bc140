"""Observability module for credvault.

Provides loguru configuration and component-bound loggers.
"""

from .loguru_config import configure_loguru, get_logger, timing_context

__all__ = [
    "configure_loguru",
    "get_logger",
    "timing_context",
]
