"""Loguru configuration for operator-facing diagnostics.

This module provides centralized loguru configuration with:
- Colored console output on stderr (operator's error stream)
- Optional structured JSON log files with per-component sinks
- A timing context manager for vault operations

Log records never carry secret material: only credential names, paths,
key types and outcomes.
"""

from __future__ import annotations

import sys
import time
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

from loguru import logger

if TYPE_CHECKING:
    from collections.abc import Generator

__all__ = [
    "COMPONENTS",
    "configure_loguru",
    "get_logger",
    "timing_context",
]

COMPONENTS = ("vault", "audit", "sealing", "cli")


def configure_loguru(
    *,
    log_dir: Path | None = None,
    level: str = "WARNING",
    rotation: str = "10 MB",
    retention: str = "30 days",
    enable_console: bool = True,
) -> None:
    """Configure loguru sinks.

    Parameters
    ----------
    log_dir
        Directory for JSON log files (no file sinks if None)
    level
        Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    rotation
        Log rotation policy (e.g., "10 MB", "1 day")
    retention
        Log retention policy (e.g., "30 days")
    enable_console
        Enable stderr output

    Example
    -------
    >>> configure_loguru(log_dir=Path("/var/log/credvault"), level="INFO")
    """
    # Remove default handler
    logger.remove()

    if enable_console:
        logger.add(
            sys.stderr,
            format="<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{extra[component]}</cyan> | "
            "<level>{message}</level>",
            level=level,
            colorize=True,
            backtrace=False,
            diagnose=False,
        )

    if log_dir is None:
        return

    log_dir.mkdir(parents=True, exist_ok=True)

    logger.add(
        log_dir / "credvault.jsonl",
        format="{message}",
        level=level,
        rotation=rotation,
        retention=retention,
        serialize=True,
        backtrace=False,
        diagnose=False,
    )

    for component in COMPONENTS:
        logger.add(
            log_dir / f"{component}.jsonl",
            format="{message}",
            level=level,
            rotation=rotation,
            retention=retention,
            serialize=True,
            backtrace=False,
            diagnose=False,
            filter=lambda record, comp=component: record["extra"].get("component") == comp,
        )

    logger.bind(component="cli").debug("Loguru configured", log_dir=str(log_dir), level=level)


# Console format references extra[component]; make it always present
logger.configure(extra={"component": "credvault"})


def get_logger(component: str = "credvault") -> Any:
    """Get logger instance bound to specific component.

    Parameters
    ----------
    component
        Component name (vault, audit, sealing, cli)

    Returns
    -------
    Logger
        Loguru logger bound to component
    """
    return logger.bind(component=component)


@contextmanager
def timing_context(
    operation: str,
    *,
    component: str = "vault",
    **metadata: Any,
) -> Generator[dict[str, Any], None, None]:
    """Time an operation and log its duration at DEBUG.

    Parameters
    ----------
    operation
        Name of the operation being timed
    component
        Component name for filtering logs
    **metadata
        Additional (non-secret) metadata to log

    Yields
    ------
    dict
        Context dictionary that can be updated with additional data
    """
    start_ns = time.perf_counter_ns()
    context: dict[str, Any] = {"operation": operation, **metadata}
    bound = logger.bind(component=component)

    try:
        yield context
    finally:
        duration_ms = (time.perf_counter_ns() - start_ns) / 1_000_000
        bound.debug(
            f"{operation} finished in {duration_ms:.1f} ms",
            duration_ms=duration_ms,
            **{k: v for k, v in context.items() if k != "operation"},
        )
