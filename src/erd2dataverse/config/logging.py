"""Logging configuration for erd2dataverse."""

import logging
import sys
from pathlib import Path
from typing import Optional
from .settings import get_settings

ROOT_LOGGER_NAME = "erd2dataverse"

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"

# httpx and httpcore log every request at INFO; a deployment makes hundreds
CHATTY_LIBRARIES = ("httpx", "httpcore")


def _parse_level(level: str) -> int:
    value = logging.getLevelName(level.upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level}")
    return value


def _attach(logger: logging.Logger, handler: logging.Handler, level: int, format_string: str) -> None:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(format_string))
    logger.addHandler(handler)


def setup_logging(
    level: Optional[str] = None,
    log_file: Optional[Path] = None,
    format_string: Optional[str] = None,
) -> logging.Logger:
    """
    Configure the erd2dataverse logger tree.

    Console output goes to stderr so JSON printed by the CLI stays clean on
    stdout. HTTP client libraries are kept at WARNING unless DEBUG is asked for.

    Args:
        level: Logging level name; defaults to the LOG_LEVEL setting
        log_file: Optional file to log to as well; defaults to the LOG_FILE setting
        format_string: Optional custom format string

    Returns:
        The package root logger
    """
    settings = get_settings()
    log_level = _parse_level(level or settings.log_level)
    log_file_path = log_file or settings.log_file
    fmt = format_string or DEFAULT_FORMAT

    package_logger = logging.getLogger(ROOT_LOGGER_NAME)
    package_logger.setLevel(log_level)
    package_logger.handlers.clear()

    _attach(package_logger, logging.StreamHandler(sys.stderr), log_level, fmt)
    if log_file_path:
        Path(log_file_path).parent.mkdir(parents=True, exist_ok=True)
        _attach(package_logger, logging.FileHandler(log_file_path, encoding="utf-8"), log_level, fmt)

    for name in CHATTY_LIBRARIES:
        logging.getLogger(name).setLevel(logging.DEBUG if log_level <= logging.DEBUG else logging.WARNING)

    package_logger.propagate = False
    return package_logger


def get_logger(name: str) -> logging.Logger:
    """Logger for a module, namespaced under ``erd2dataverse`` and configured on first use."""
    if not logging.getLogger(ROOT_LOGGER_NAME).handlers:
        setup_logging()

    if name == ROOT_LOGGER_NAME or name.startswith(f"{ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
