"""
Logging configuration for racecheck.

Library modules log through logging.getLogger(__name__) and stay silent
until the CLI (or a caller) installs handlers with configure_logging().
"""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "racecheck"

FILE_FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s - %(message)s"
DEFAULT_MAX_BYTES = 5 * 1024 * 1024  # 5 MB
DEFAULT_BACKUP_COUNT = 5

# marks handlers owned by configure_logging
HANDLER_MARKER = "_racecheck_handler"


def _mark(handler: logging.Handler) -> logging.Handler:
    setattr(handler, HANDLER_MARKER, True)
    return handler


def reset_logging() -> logging.Logger:
    """
    Remove every handler installed by configure_logging and restore propagation.

    Returns:
        logging.Logger: The racecheck logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        if getattr(handler, HANDLER_MARKER, False):
            logger.removeHandler(handler)
            handler.close()
    logger.propagate = True
    return logger


def configure_logging(
    level: Union[str, int] = "INFO",
    log_file: Optional[Union[str, Path]] = None,
    max_bytes: int = DEFAULT_MAX_BYTES,
    backup_count: int = DEFAULT_BACKUP_COUNT,
    console: Optional[Console] = None,
) -> logging.Logger:
    """
    Install console and optional rotating file handlers on the racecheck logger.

    Calling it again replaces the handlers installed by a previous call;
    handlers attached by anyone else are left alone.

    Args:
        level: Log level name or number
        log_file: Optional log file path; parent directories are created
        max_bytes: Rotation size for the log file
        backup_count: Rotated files to keep
        console: Rich console to log to (defaults to stderr)

    Returns:
        logging.Logger: The configured racecheck logger
    """
    logger = reset_logging()
    numeric_level = level if isinstance(level, int) else getattr(logging, str(level).upper(), logging.INFO)

    console_handler = _mark(RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    ))
    console_handler.setLevel(numeric_level)
    logger.addHandler(console_handler)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = _mark(RotatingFileHandler(
            path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        ))
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(file_handler)

    logger.setLevel(numeric_level)
    logger.propagate = False
    return logger
