# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
LabelPair — Structured Logging
JSON-formatted logs via structlog. Every log entry carries the engine
version and, inside a pipeline run, the run_id of the pairing batch.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from labelpair.config import ENGINE_VERSION, get_settings


def _add_engine_info(
    logger: Any, method: str, event_dict: EventDict
) -> EventDict:
    """Stamp app name and engine version on every entry."""
    event_dict["app"] = "labelpair"
    event_dict.setdefault("engine", ENGINE_VERSION)
    return event_dict


def configure_logging(level: str | None = None) -> None:
    """
    Configure structlog for JSON output in production and
    human-readable console output in development (DEBUG level).
    Called once by the CLI entry point or the embedding service.
    """
    level_name = (level or get_settings().log_level).upper()
    log_level = getattr(logging, level_name, logging.INFO)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        _add_engine_info,
    ]

    if level_name == "DEBUG":
        # Pretty console output for local development
        processors: list[Processor] = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=True)
        ]
    else:
        # JSON output for production / CI
        processors = shared_processors + [
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(sys.stderr),
        cache_logger_on_first_use=True,
    )

    # openai / httpx / urllib3 log through stdlib
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=log_level,
    )


def get_logger(name: str = "labelpair") -> structlog.BoundLogger:
    """
    Return a structlog bound logger.

    Usage:
        log = get_logger(__name__)
        log.info("stage_complete", stage="auto_pair", auto_pairs=3)

    The pipeline binds run_id for the whole batch:
        structlog.contextvars.bind_contextvars(run_id=run_id)
        ...
        structlog.contextvars.unbind_contextvars("run_id")
    """
    return structlog.get_logger(name)
