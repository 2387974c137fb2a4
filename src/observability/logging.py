"""Structured logging configuration."""

import logging
import sys
from typing import TextIO

import structlog


def configure_logging(
    level: int = logging.INFO,
    output: TextIO | None = None,
    json_format: bool = True,
) -> None:
    """Configure structured logging for the application.

    Sets up structlog with timestamps, log levels and context binding,
    rendering either JSON lines or colored console output.

    Args:
        level: Logging level (default: INFO).
        output: Output stream (default: current stderr).
        json_format: Whether to use JSON format (default: True).
    """
    if output is None:
        output = sys.stderr

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

    logging.basicConfig(
        format="%(message)s",
        stream=output,
        level=level,
    )
    # httpx logs every request at INFO; keep it to warnings
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a bound logger instance.

    Args:
        name: Optional logger name.

    Returns:
        Bound logger instance.
    """
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger


def bind_command_context(command: str, cache_dir: str) -> None:
    """Bind CLI command context to all subsequent log messages.

    Args:
        command: CLI command name.
        cache_dir: Cache directory in use.
    """
    structlog.contextvars.bind_contextvars(command=command, cache_dir=cache_dir)


def clear_command_context() -> None:
    """Clear CLI command context from log messages."""
    structlog.contextvars.unbind_contextvars("command", "cache_dir")
