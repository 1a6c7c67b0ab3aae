"""Structured logging configuration.

Lifecycle code logs through structlog; the fake host and the Docker SDK's
own dependencies log through the standard library, which is routed to the
same stream here.
"""

from __future__ import annotations

import logging
import sys
from typing import Any, TextIO

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from envd_lifecycle.infrastructure.config import ObservabilityConfig

# Chatty third-party loggers kept at WARNING unless debugging.
NOISY_LOGGERS: tuple[str, ...] = ("urllib3", "docker", "requests")


def drop_empty_values(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Remove keys whose value is None or an empty string."""
    return {k: v for k, v in event_dict.items() if v is not None and v != ""}


def setup_logging(
    level: str = "INFO",
    log_format: str = "console",
    stream: TextIO | None = None,
) -> None:
    """Set up structured logging with structlog.

    Args:
        level: Minimum level name.
        log_format: "json" or "console".
        stream: Output stream; stderr keeps stdout free for command output.
    """
    stream = stream or sys.stderr
    numeric_level = getattr(logging, level.upper())
    logging.basicConfig(format="%(name)s: %(message)s", stream=stream, level=numeric_level, force=True)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(numeric_level if numeric_level <= logging.DEBUG else logging.WARNING)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        drop_empty_values,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    renderer: Processor
    if log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=stream.isatty())

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=False,
    )


def setup_logging_from(config: ObservabilityConfig, debug: bool = False) -> None:
    """Set up logging from the observability section; debug forces DEBUG."""
    setup_logging("DEBUG" if debug else config.log_level, config.log_format)


def get_logger(name: str | None = None, **initial_context: Any) -> structlog.BoundLogger:
    """Get a bound logger, e.g. get_logger(__name__, container=name)."""
    logger = structlog.get_logger(name)
    if initial_context:
        logger = logger.bind(**initial_context)
    return logger
