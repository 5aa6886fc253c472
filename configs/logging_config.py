"""
Logging configuration for the four-bar project.

Usage:
    from configs.logging_config import get_logger

    logger = get_logger(__name__)
    logger.info("This will log to both console and fourbar.log")
"""
from __future__ import annotations

import logging
import sys
from pathlib import Path

from configs.paths import LOG_FILE

# Top-level packages whose loggers share the project handlers
PROJECT_LOGGERS = ('fourbar_tools', 'atlas_gen', 'optimizers')

# Module-level flag to track if logging has been configured
_logging_configured = False


def setup_logging(
    level: int = logging.INFO,
    log_file: Path | str | None = None,
    console: bool = True,
    force: bool = False,
) -> None:
    """
    Configure logging for the project packages.

    Args:
        level: Logging level (default: INFO)
        log_file: Path to log file (default: LOG_FILE, fourbar.log in project root)
        console: Whether to also log to console (default: True)
        force: Reconfigure even if logging was already set up
    """
    global _logging_configured

    if _logging_configured and not force:
        return

    if log_file is None:
        log_file = LOG_FILE

    formatter = logging.Formatter(
        fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )

    handlers: list[logging.Handler] = []
    file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    handlers.append(file_handler)

    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    for name in PROJECT_LOGGERS:
        project_logger = logging.getLogger(name)
        project_logger.setLevel(level)
        for handler in project_logger.handlers:
            handler.close()
        project_logger.handlers.clear()
        for handler in handlers:
            project_logger.addHandler(handler)

    _logging_configured = True


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for the given module name.

    Automatically sets up logging if not already configured. Names outside
    the project packages are placed under the fourbar_tools namespace.

    Args:
        name: Module name (typically __name__)

    Returns:
        Configured logger instance

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("Atlas generation started")
        >>> logger.debug(f"Batch {batch}: accepted={n}")
    """
    if not _logging_configured:
        setup_logging()

    if name.split('.')[0] in PROJECT_LOGGERS:
        return logging.getLogger(name)
    return logging.getLogger(f'fourbar_tools.{name}')
