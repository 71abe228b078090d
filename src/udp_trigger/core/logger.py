"""Logging utilities for UDP Trigger.

This module provides centralized logging configuration with support for:
- Console and file logging
- Log rotation
- Rich formatting for console output
"""

from __future__ import annotations

import logging
from contextlib import suppress
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from .config import LoggingConfig

LOGGER_NAMESPACE = "udp_trigger"

# Global logger registry
_loggers: dict[str, logging.Logger] = {}
_configured = False
_current_level: int = logging.INFO

console = Console()


def setup_logging(config: LoggingConfig | None = None) -> None:
    """Setup logging configuration for the entire application.

    Args:
        config: LoggingConfig instance. If None, uses defaults.
    """
    global _configured, _current_level

    if config is None:
        config = LoggingConfig()

    # Clear any existing handlers (and close them to release resources)
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        with suppress(Exception):
            handler.flush()
        with suppress(Exception):
            handler.close()
    root_logger.handlers.clear()

    level_value = getattr(logging, config.level)
    root_logger.setLevel(level_value)
    logging.getLogger(LOGGER_NAMESPACE).setLevel(level_value)

    file_formatter = logging.Formatter(config.format)

    console_handler = RichHandler(
        console=console,
        show_time=True,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    )
    console_handler.setLevel(level_value)
    root_logger.addHandler(console_handler)

    if config.log_file:
        log_path = Path(config.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=config.max_bytes,
            backupCount=config.backup_count,
            encoding="utf-8",
            delay=True,
        )
        file_handler.setLevel(level_value)
        file_handler.setFormatter(file_formatter)
        root_logger.addHandler(file_handler)

    _configured = True
    _current_level = level_value

    # Ensure already-created named loggers align with current level
    for lg in _loggers.values():
        lg.setLevel(level_value)

    logger = get_logger("setup")
    logger.info("Logging configured: level=%s", config.level)
    if config.log_file:
        logger.info("Log file: %s", config.log_file)


def get_logger(name: str) -> logging.Logger:
    """Get or create a logger with the given name.

    Args:
        name: Logger name (typically module name)

    Returns:
        Logger instance
    """
    if name not in _loggers:
        logger = logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")
        logger.setLevel(_current_level)
        _loggers[name] = logger

    return _loggers[name]


def log_exception(logger: logging.Logger, exc: BaseException, context: str = "") -> None:
    """Log an exception with context.

    Args:
        logger: Logger instance
        exc: Exception to log
        context: Additional context string
    """
    if context:
        logger.error("%s: %s", context, exc, exc_info=exc)
    else:
        logger.error("Exception occurred: %s", exc, exc_info=exc)
