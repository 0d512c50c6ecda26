"""structlog wiring for the CLI and background sync loops."""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

import structlog

_SHARED_PROCESSORS = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
]


def _handler(handler: logging.Handler, level: int, renderer) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(processor=renderer))
    return handler


def setup_logging(log_dir: str, log_name: str = "comicsync") -> structlog.stdlib.BoundLogger:
    """Send sync events to ``<log_dir>/<log_name>.log`` as JSON and to stdout for humans.

    Safe to call more than once per process; the root handlers are replaced.
    """
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    handlers = [
        # 5 MB x 3 keeps a few full backfills
        _handler(
            RotatingFileHandler(log_path / f"{log_name}.log", maxBytes=5 * 1024 * 1024, backupCount=3),
            logging.DEBUG,
            structlog.processors.JSONRenderer(),
        ),
        _handler(logging.StreamHandler(sys.stdout), logging.INFO, structlog.dev.ConsoleRenderer()),
    ]

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    root.handlers[:] = handlers

    # One line per request otherwise
    logging.getLogger("httpx").setLevel(logging.WARNING)

    structlog.configure(
        processors=[*_SHARED_PROCESSORS, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    return structlog.get_logger(log_name)
