"""
structlog setup for the vector-search service and its CLI.

Events are JSON lines when running in production and coloured console
output otherwise. Embeddings never reach the log stream in full: any
``embedding`` field is replaced by a short summary of its width.
"""

import logging
import sys
from collections.abc import Sequence
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from src.config.settings import get_settings

# Chatty below WARNING: pool resets, event loop debug output
_QUIET_LOGGERS: tuple[str, ...] = ("asyncpg", "asyncio")


def summarize_embeddings(_logger: Any, _method: str, event_dict: EventDict) -> EventDict:
    """Replace an ``embedding`` field with its dimension."""
    embedding = event_dict.get("embedding")
    if isinstance(embedding, Sequence) and not isinstance(embedding, str):
        event_dict["embedding"] = f"<vector dim={len(embedding)}>"
    return event_dict


def setup_logging(level: str | None = None, json_logs: bool | None = None) -> None:
    """
    Route stdlib logging and structlog through one pipeline.

    Args:
        level: Log level; the configured one when omitted
        json_logs: Force JSON (True) or console (False) rendering.
            Defaults to JSON in production only.

    Usage:
        setup_logging()
        logger = structlog.get_logger()
        logger.info("clip_dimension_changed", old=512, new=768)
    """
    settings = get_settings()
    level = level or settings.log_level
    if json_logs is None:
        json_logs = settings.is_production

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        summarize_embeddings,
        structlog.processors.StackInfoRenderer(),
    ]

    if json_logs:
        renderers: list[Processor] = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        renderers = [structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())]

    structlog.configure(
        processors=shared_processors + renderers,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level),
    )
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_context(**kwargs) -> None:
    """Tag every later event, e.g. with the CLI command being run."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
