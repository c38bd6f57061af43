"""
observability/logger.py — Janus Client Structured Logger

Library modules only ever call get_logger(); every line carries a dotted
event name plus key-value context (`session_id`, `handle_id`, `transaction`).
Applications embedding the client call setup_logging() once to route those
lines through stdlib logging into a rotating JSON file and, optionally, the
console. Until then structlog's defaults apply.

Usage:
    from config.settings import get_settings
    from observability.logger import get_logger, setup_logging

    setup_logging(get_settings().logging)
    log = get_logger(__name__, session_id=1234)
    log.info("plugin.attached", plugin="janus.plugin.streaming", handle_id=99)
"""

from __future__ import annotations

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Any, Optional

import structlog

from config.settings import LoggingConfig

LOG_FILE_NAME = "janus-client.log"


def setup_logging(config: Optional[LoggingConfig] = None) -> Path:
    """
    Configure structlog and stdlib logging from a LoggingConfig.

    The file handler always writes JSON; the console follows `json_format`.
    Returns the path of the log file.
    """
    config = config or LoggingConfig()
    log_dir = Path(config.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME
    level = getattr(logging, config.level, logging.INFO)

    file_handler = logging.handlers.RotatingFileHandler(
        filename=log_file,
        maxBytes=config.max_file_size_mb * 1024 * 1024,
        backupCount=config.backup_count,
        encoding="utf-8",
    )
    file_handler.setFormatter(_formatter(structlog.processors.JSONRenderer()))
    handlers: list[logging.Handler] = [file_handler]

    if config.console_output:
        console_renderer = (
            structlog.processors.JSONRenderer()
            if config.json_format
            else structlog.dev.ConsoleRenderer(colors=True)
        )
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(_formatter(console_renderer))
        handlers.append(console_handler)

    logging.basicConfig(format="%(message)s", level=level, handlers=handlers, force=True)
    structlog.configure(
        processors=_SHARED_PROCESSORS + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    return log_file


def get_logger(name: str = "janus", **initial_values: Any) -> structlog.stdlib.BoundLogger:
    """Return a logger for `name` with `initial_values` bound to every line."""
    logger = structlog.get_logger(name)
    if initial_values:
        logger = logger.bind(**initial_values)
    return logger


def bind_connection(connection_id: str, address: str) -> None:
    """
    Bind connection context to every later log line of the current task.

    Connections call it from inside their reader task, so lines logged while
    dispatching inbound messages carry the connection they arrived on.
    """
    structlog.contextvars.bind_contextvars(connection_id=connection_id, address=address)


_SHARED_PROCESSORS: list[Any] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    structlog.processors.format_exc_info,
]


def _formatter(renderer: Any) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        foreign_pre_chain=_SHARED_PROCESSORS,
    )
