"""Structured logging setup using structlog.

One processor chain (context vars, level, stack info, ISO timestamps) feeds
either a ConsoleRenderer or a JSONRenderer.  JSON is used when requested
explicitly or when ``APP_ENV`` is ``"production"``.

Everything is written to stderr; stdout belongs to CLI command output.
Standard-library records (httpx, openai, aiosqlite) go through a
``ProcessorFormatter`` with the same chain, and the chattiest client
loggers are capped at WARNING unless DEBUG is requested.
"""

import logging
import os
import sys

import structlog

# Per-request INFO lines from HTTP clients drown out ingestion events.
_NOISY_LOGGERS = ("httpx", "httpcore", "openai", "aiosqlite", "trafilatura")


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]


def configure_logging(log_level: str = "INFO", json_output: bool | None = None) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR (case-insensitive).
        json_output: Force (True) or suppress (False) JSON rendering.
            ``None`` decides from ``APP_ENV``.
    """
    level_name = log_level.upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level!r}")

    if json_output is None:
        json_output = os.environ.get("APP_ENV", "development") == "production"

    shared = _shared_processors()
    if json_output:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[*shared, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    client_level = level if level <= logging.DEBUG else max(level, logging.WARNING)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(client_level)
