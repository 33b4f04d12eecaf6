from __future__ import annotations

import logging
from contextlib import AbstractContextManager
from typing import Any

import structlog

RENDERERS = ("json", "console")


def configure_logging(level: int = logging.INFO, *, renderer: str = "json") -> None:
    """Configure stdlib logging and structlog for the API and the CLI.

    Args:
        level: Minimum level emitted.
        renderer: ``json`` for machine-readable lines, ``console`` for
            plain key=value lines when an operator runs the CLI by hand.
    """
    logging.basicConfig(format="%(message)s", level=level)
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if renderer == "console":
        processors.append(structlog.dev.ConsoleRenderer(colors=False))
    else:
        processors.extend([structlog.processors.format_exc_info, structlog.processors.JSONRenderer()])
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )


def level_from_name(name: str) -> int:
    return getattr(logging, name.upper(), logging.INFO)


def get_logger(**initial_values: Any) -> structlog.BoundLogger:
    return structlog.get_logger().bind(**initial_values)


def log_context(**values: Any) -> AbstractContextManager:
    """Attach ``values`` to every event logged inside the block, across awaited tasks."""
    return structlog.contextvars.bound_contextvars(**values)


__all__ = ["RENDERERS", "configure_logging", "get_logger", "level_from_name", "log_context"]
