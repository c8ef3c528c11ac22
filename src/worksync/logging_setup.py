"""Logging configuration — rich stderr handler plus optional rotating file."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "worksync"

_FILE_FORMAT = "[%(levelname)s %(asctime)s] %(name)s: %(message)s"

_configured = False


def configure_logging(
    level: str = "INFO",
    *,
    log_file: Optional[str] = None,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> logging.Logger:
    """Install handlers on the ``worksync`` logger. Safe to call repeatedly."""
    global _configured
    logger = logging.getLogger(LOGGER_NAME)
    log_level = getattr(logging, level.upper(), logging.INFO)
    logger.setLevel(log_level)

    if _configured:
        for handler in logger.handlers:
            handler.setLevel(log_level)
        return logger
    _configured = True
    logger.handlers.clear()
    logger.propagate = False

    stream_handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        rich_tracebacks=False,
    )
    stream_handler.setLevel(log_level)
    logger.addHandler(stream_handler)

    if log_file:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            str(path),
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S"))
        file_handler.setLevel(log_level)
        logger.addHandler(file_handler)

    return logger


def reset_logging() -> None:
    """Remove installed handlers (tests, repeated CLI invocations)."""
    global _configured
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
    _configured = False
