"""Logging configuration for stepfile.

The library only emits structlog events; applications decide how they are
rendered by calling ``configure_logging``.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog


def configure_logging(
    level: str = "INFO",
    enable_colors: bool = True,
    enable_json: bool = False,
    extra_processors: list[Any] | None = None,
) -> None:
    """Configure structured logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        enable_colors: Enable colored output for console
        enable_json: Use JSON output format
        extra_processors: Additional structlog processors
    """
    log_level = LOG_LEVELS.get(level.upper())
    if log_level is None:
        raise ValueError(f"Unknown log level {level!r}")

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="ISO"),
    ]

    if extra_processors:
        processors.extend(extra_processors)

    if enable_json:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(colors=enable_colors and sys.stderr.isatty())
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def configure_preset(name: str) -> None:
    """Configure logging from one of the named presets in CONFIGS."""
    try:
        settings = CONFIGS[name]
    except KeyError:
        raise ValueError(f"Unknown logging preset {name!r}") from None
    configure_logging(**settings)


def get_logger(name: str = __name__) -> structlog.BoundLogger:
    """Get a configured logger instance."""
    return structlog.get_logger(name)


LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# Default configuration for different environments
CONFIGS: dict[str, dict[str, Any]] = {
    "development": {
        "level": "DEBUG",
        "enable_colors": True,
        "enable_json": False,
    },
    "production": {
        "level": "INFO",
        "enable_colors": False,
        "enable_json": True,
    },
    "testing": {
        "level": "WARNING",
        "enable_colors": False,
        "enable_json": False,
    },
}
