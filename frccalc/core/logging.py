"""Structured logging setup for FRCCalc.

Standard-library loggers are routed through structlog so that log lines
emitted by ``logging.getLogger(__name__)`` carry the bound assessment
context.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

from frccalc.config import get_config

_handler: logging.Handler | None = None


def configure_logging(level: str | None = None, json_logs: bool | None = None) -> None:
    """Configure structlog and the root logger.

    Args:
        level: Log level name (defaults to ``LOG_LEVEL`` from config)
        json_logs: Render JSON lines instead of console output (defaults
            to ``JSON_LOGS`` from config)
    """
    global _handler

    config = get_config()
    level = (level or config.log_level).upper()
    if json_logs is None:
        json_logs = config.json_logs

    shared: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    if _handler is not None:
        root.removeHandler(_handler)
    root.addHandler(handler)
    _handler = handler
    root.setLevel(level)


def bind_assessment(assessment_id: str) -> None:
    """Attach the assessment id to every log line emitted in this context."""
    structlog.contextvars.bind_contextvars(assessment_id=assessment_id)


def clear_log_context() -> None:
    structlog.contextvars.clear_contextvars()
