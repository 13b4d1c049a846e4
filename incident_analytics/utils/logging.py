"""Structured logging: structlog events routed through stdlib handlers.

Both structlog loggers and plain ``logging`` loggers (SQLAlchemy, the database
module) end up on the same handlers and render the same way: JSON lines in
production, coloured console lines in debug mode.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler

import structlog

LOG_FILE_NAME = "incident_analytics.log"

_SHARED_PROCESSORS = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    structlog.processors.StackInfoRenderer(),
]


def _formatter(debug: bool) -> structlog.stdlib.ProcessorFormatter:
    renderer = structlog.dev.ConsoleRenderer() if debug else structlog.processors.JSONRenderer()
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_SHARED_PROCESSORS,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info if not debug else structlog.dev.set_exc_info,
            renderer,
        ],
    )


def _file_handler(log_dir: str, max_bytes: int, backup_count: int) -> RotatingFileHandler | None:
    try:
        os.makedirs(log_dir, exist_ok=True)
        return RotatingFileHandler(
            os.path.join(log_dir, LOG_FILE_NAME),
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
    except OSError:
        return None


def setup_logging(
    debug: bool = False,
    log_dir: str = "logs",
    log_max_bytes: int = 10_000_000,
    log_backup_count: int = 5,
) -> None:
    """Configure logging for report runs and the write path.

    Safe to call more than once; the root handlers are replaced each time.
    """
    log_level = logging.DEBUG if debug else logging.INFO

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *_SHARED_PROCESSORS,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = _formatter(debug)
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    file_handler = _file_handler(log_dir, log_max_bytes, log_backup_count)
    if file_handler is not None:
        handlers.append(file_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    for handler in handlers:
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    # SQL echo is governed by the engine's own flag
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    if file_handler is None:
        structlog.get_logger("logging").warning("log_file_unavailable", log_dir=log_dir)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a named structured logger under the ``incident_analytics`` namespace."""
    return structlog.get_logger(f"incident_analytics.{name}")
