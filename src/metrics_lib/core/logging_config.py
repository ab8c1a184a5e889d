"""
Structured logging configuration for the metrics analytics core.

The analysis modules log through plain ``logging.getLogger(...)`` calls so
they stay usable as a library.  A host process (the CLI harness, a chart
backend) calls ``setup_logging()`` once at startup; from then on both stdlib
loggers and ``structlog.get_logger()`` emit structured key-value lines.

Usage::

    from src.metrics_lib.core.logging_config import setup_logging, get_logger

    setup_logging(service="metrics-cli")
    logger = get_logger()

    logger.info("bundle_ready", samples=480, anomalies=3)
    # => 2026-01-01T14:23:01Z [info] bundle_ready  samples=480 anomalies=3 service=metrics-cli

LOG_FORMAT=console (the default) gives coloured human output; LOG_FORMAT=json
gives one JSON object per line.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import structlog


def _build_formatter(
    log_format: str, shared_processors: list[structlog.types.Processor]
) -> structlog.stdlib.ProcessorFormatter:
    if log_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=sys.stderr.isatty(),
            pad_event_to=30,
        )
    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=shared_processors,
    )


def setup_logging(
    *,
    service: str = "metrics",
    level: str | None = None,
    log_format: str | None = None,
) -> None:
    """Configure ``structlog`` and stdlib ``logging`` for the whole process.

    Parameters
    ----------
    service:
        Name bound to every log event.
    level:
        Root log level.  Falls back to ``LOG_LEVEL``, then ``"INFO"``.
    log_format:
        ``"console"`` or ``"json"``.  Falls back to ``LOG_FORMAT``, then
        ``"console"``.
    """
    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO")
    if log_format is None:
        log_format = os.getenv("LOG_FORMAT", "console")
    level = level.upper()
    log_format = log_format.lower()

    numeric_level = getattr(logging, level, logging.INFO)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.ExtraAdder(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_build_formatter(log_format, shared_processors))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(numeric_level)

    # Third-party chatter stays at WARNING
    for noisy in ("matplotlib", "numexpr"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(service=service)


def get_logger(
    name: str | None = None, **initial_binds: Any
) -> structlog.stdlib.BoundLogger:
    """Return a structured logger, optionally bound with extra context.

    >>> logger = get_logger("pipeline", metric="cpu")
    >>> logger.info("stats_computed", samples=120)
    """
    log = structlog.get_logger(name)
    if initial_binds:
        log = log.bind(**initial_binds)
    return log
