"""Structured logging configuration."""

from __future__ import annotations

import logging
import sys
from typing import TextIO

import structlog


def configure_logging(level: str | int = logging.INFO, json_format: bool = False, output: TextIO = sys.stderr) -> None:
    """Configure structlog for console or JSON output.

    Args:
        level: Minimum level as name ("INFO") or number.
        json_format: Render one JSON object per line instead of console output.
        output: Output stream (default: stderr).
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if json_format:
        processors.append(structlog.processors.JSONRenderer(sort_keys=True))
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=output.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=output),
        cache_logger_on_first_use=False,
    )

    # APScheduler logs through the standard library
    logging.basicConfig(format="%(levelname)s %(name)s: %(message)s", stream=output, level=level)
