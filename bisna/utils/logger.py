"""
Logger utility for consistent logging across Bisna.

Library modules log through ``logging.getLogger(__name__)`` and never install
handlers themselves. Applications embedding Bisna may call ``setup_logging()``
once at startup to get the standard console (and optional file) output.

Features:
- Consistent log format across all modules
- Log level from settings (``LOG_LEVEL`` / ``DEBUG``)
- Optional rotating error log file
- SQLAlchemy engine logging only in debug mode
- Prevents duplicate handlers when called multiple times
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional

from bisna.utils.config import Settings, get_settings

# Default log format
DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
VERBOSE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(pathname)s:%(lineno)d - %(message)s'
DEFAULT_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def setup_logging(settings: Optional[Settings] = None, log_dir: Optional[str] = None) -> logging.Logger:
    """
    Configure global logging.

    Args:
        settings: Settings providing ``DEBUG`` and ``LOG_LEVEL``. Defaults to cached settings.
        log_dir: When given, errors are also written to ``<log_dir>/error.log``.

    Returns:
        logging.Logger: The ``bisna`` package logger
    """
    settings = settings or get_settings()
    log_level_name = settings.LOG_LEVEL.upper()
    log_level = logging.DEBUG if settings.DEBUG else getattr(logging, log_level_name, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Remove existing handlers to avoid duplicates when reloading
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    standard_formatter = logging.Formatter(DEFAULT_FORMAT, datefmt=DEFAULT_DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(standard_formatter)
    console_handler.setLevel(log_level)
    root_logger.addHandler(console_handler)

    if log_dir:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        error_file_handler = logging.handlers.RotatingFileHandler(
            path / "error.log",
            maxBytes=10 * 1024 * 1024,  # 10 MB
            backupCount=5
        )
        error_file_handler.setLevel(logging.ERROR)
        error_file_handler.setFormatter(logging.Formatter(VERBOSE_FORMAT, datefmt=DEFAULT_DATE_FORMAT))
        root_logger.addHandler(error_file_handler)

    logging.getLogger('sqlalchemy.engine').setLevel(
        logging.INFO if settings.DEBUG else logging.WARNING
    )

    logger = logging.getLogger('bisna')
    logger.info(f"Logging initialized with level {logging.getLevelName(log_level)}")

    return logger


def get_logger(name: Optional[str] = None, level: Optional[int] = None) -> logging.Logger:
    """
    Get a logger with the given name.

    Args:
        name: Logger name, usually ``__name__``. Defaults to ``bisna``.
        level: Optional level to set on the logger.

    Returns:
        logging.Logger: Logger instance
    """
    logger = logging.getLogger(name or 'bisna')
    if level is not None:
        logger.setLevel(level)
    return logger
