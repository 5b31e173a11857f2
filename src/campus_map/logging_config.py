"""
Centralized logging configuration with rotating file handlers.

Keeps a detailed record of clustering, follow-state and routing events
for debugging map behaviour after the fact.

Usage:
    from campus_map.logging_config import setup_logging
    setup_logging()  # Call once at application startup
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

# Log directory: $CAMPUS_MAP_LOG_DIR, else logs/ under the working directory
LOG_DIR_ENV = "CAMPUS_MAP_LOG_DIR"
DEFAULT_LOG_DIR = "logs"

# Log format with function name and line number for debugging
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Rotation settings: 5 MB per file, keep 5 backups (25 MB total max)
MAX_LOG_SIZE_BYTES = 5 * 1024 * 1024
BACKUP_COUNT = 5


def log_dir() -> Path:
    return Path(os.getenv(LOG_DIR_ENV, DEFAULT_LOG_DIR))


def _rotating_handler(
    directory: Path, filename: str, level: int, formatter: logging.Formatter
) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        directory / filename,
        maxBytes=MAX_LOG_SIZE_BYTES,
        backupCount=BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> None:
    """
    Configure logging with console and rotating file handlers.

    Sets up three logging outputs:
    - Console: Shows INFO and above (user-facing messages)
    - campus_map.log: DEBUG and above for the map core
    - routing.log: DEBUG and above for directions requests

    Args:
        console_level: Minimum log level for console output (default: INFO)
        file_level: Minimum log level for file output (default: DEBUG)

    Example:
        # For verbose console output during debugging
        setup_logging(console_level=logging.DEBUG)
    """
    directory = log_dir()
    directory.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Capture all, let handlers filter

    # Clear any existing handlers (prevents duplicate logs on re-init)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    core_logger = logging.getLogger("campus_map")
    core_logger.handlers.clear()
    core_logger.addHandler(_rotating_handler(directory, "campus_map.log", file_level, formatter))

    routing_logger = logging.getLogger("campus_map.routing")
    routing_logger.handlers.clear()
    routing_logger.addHandler(_rotating_handler(directory, "routing.log", file_level, formatter))

    # Suppress noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    root_logger.info("Logging initialized - console: %s, file: %s",
                     logging.getLevelName(console_level),
                     logging.getLevelName(file_level))
