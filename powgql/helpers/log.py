"""Logging setup: rich console handler on stderr, optional rotating file."""

from __future__ import annotations

import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from rich.logging import RichHandler

from powgql.console import err_console

LOGGER_NAME = "powgql"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def parse_level(level: str) -> int:
    """Map a LOG_LEVEL string to a logging level (unknown values mean INFO)."""
    return _LEVELS.get(level.strip().lower(), logging.INFO)


def configure_logging(level: str = "info", log_file: str = "", backups: int = 5) -> logging.Logger:
    """Attach handlers to the ``powgql`` logger.

    Safe to call more than once: existing handlers of the same kind are kept
    and not duplicated.  Console output goes to stderr because stdout carries
    the stdio tool transport.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(parse_level(level))
    logger.propagate = False

    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        console_handler = RichHandler(console=err_console, show_path=False, rich_tracebacks=False)
        console_handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
        logger.addHandler(console_handler)

    if log_file and not any(isinstance(h, TimedRotatingFileHandler) for h in logger.handlers):
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = TimedRotatingFileHandler(
            filename=path,
            when="midnight",
            interval=1,
            backupCount=backups,
            encoding="utf-8",
            utc=True,
        )
        file_handler.setFormatter(
            logging.Formatter(
                fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logger.addHandler(file_handler)

    return logger
