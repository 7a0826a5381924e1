"""Structured logging configuration using structlog."""

from __future__ import annotations

import logging
import sys

import structlog

# Above CRITICAL, so nothing is emitted.
LEVEL_OFF = logging.CRITICAL + 10


def resolve_level(level: str) -> int:
    """Map a level name (DEBUG, INFO, WARNING, ERROR, OFF) to a stdlib level."""
    name = level.upper()
    if name == "OFF":
        return LEVEL_OFF
    return getattr(logging, name)


def configure_logging(json_output: bool = False, level: str = "WARNING") -> None:
    """Configure structlog for persistid.

    Args:
        json_output: If True, output JSON; otherwise pretty console output.
        level: Log level (DEBUG, INFO, WARNING, ERROR, OFF).
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.add_logger_name,
    ]

    if json_output:
        processors = shared_processors + [
            structlog.processors.JSONRenderer()
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Configure stdlib logging - force reconfiguration
    root = logging.getLogger()
    root.setLevel(resolve_level(level))

    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(handler)
