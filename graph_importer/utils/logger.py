# -*- coding: utf-8 -*-
"""
Centralized logging configuration for the import pipeline

Provides consistent logging setup across all modules with optional file output.
The CLI calls setup_logging() once with the config's logPath; library modules
only ever call get_logger(__name__).

Examples:
    # In the entry point
    from graph_importer.utils.logger import setup_logging
    setup_logging(log_file="/tmp/graph-importer.log")

    # In any module
    from graph_importer.utils.logger import get_logger
    logger = get_logger(__name__)
    logger.info("Batch submitted")
"""
# Standard library
import logging
import sys
from pathlib import Path
from typing import Optional

DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Global flag to prevent duplicate configuration
_logging_configured = False


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[str] = None,
    format_string: str = DEFAULT_FORMAT,
    force: bool = False
) -> None:
    """
    Configure logging for the application.

    Sets up console output and optional file output with consistent formatting.
    Safe to call multiple times: only the first call configures handlers unless
    force is set (the CLI forces once it knows the configured log path).

    Args:
        level: Logging level (default: logging.INFO)
        log_file: Optional path to log file. Parent directories are created
        format_string: Log message format
        force: Reconfigure even if logging was already set up
    """
    global _logging_configured

    if _logging_configured and not force:
        return

    formatter = logging.Formatter(format_string)
    handlers = []

    # Console handler (always included)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    handlers.append(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    logging.basicConfig(
        level=level,
        handlers=handlers,
        force=True  # Override any existing configuration
    )

    _logging_configured = True


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
