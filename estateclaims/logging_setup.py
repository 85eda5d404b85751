"""Logging setup for the workflow service and scripts."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(
    level: str = "INFO",
    log_format: str = DEFAULT_FORMAT,
    log_file: str | None = None,
) -> logging.Logger:
    """
    Configure the root logger with a console handler and an optional file handler.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_format: Format string for log messages.
        log_file: Optional path to a log file; parent directories are created.

    Returns:
        The configured root logger.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    formatter = logging.Formatter(log_format)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # pymongo is chatty at DEBUG
    logging.getLogger("pymongo").setLevel(max(numeric_level, logging.WARNING))
    return root_logger


def setup_logging_from_config(config: dict[str, Any]) -> logging.Logger:
    """Configure logging from config['logging'] (keys: level, format, file)."""
    section = config.get("logging") or {}
    return setup_logging(
        level=section.get("level") or "INFO",
        log_format=section.get("format") or DEFAULT_FORMAT,
        log_file=section.get("file") or None,
    )
