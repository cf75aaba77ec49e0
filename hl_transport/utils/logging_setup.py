"""Logging configuration for applications embedding the client."""

import logging
import sys
from pathlib import Path
from typing import Optional

from config.settings import LoggingConfig


def setup_logging(level: str, log_file: Optional[str] = None) -> None:
    """
    Configure root logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional file path for logging
    """
    # Create formatters
    console_format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    file_format = (
        "%(asctime)s [%(levelname)s] %(name)s "
        "(%(filename)s:%(lineno)d): %(message)s"
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Clear existing handlers
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, level.upper(), logging.INFO))
    console_handler.setFormatter(logging.Formatter(console_format))
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(logging.DEBUG)  # Log everything to file
        file_handler.setFormatter(logging.Formatter(file_format))
        root_logger.addHandler(file_handler)

    # Reduce noise from third-party libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("websockets").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def setup_logging_from_config(config: LoggingConfig) -> None:
    setup_logging(config.level, config.file_path)
