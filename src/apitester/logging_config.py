"""
Logging configuration for apitester.

Console logging goes to stderr so that rendered results on stdout stay
clean; an optional rotating file log carries structured detail.
"""

import logging
import sys
from pathlib import Path
from logging.handlers import RotatingFileHandler


LOGGER_NAME = "apitester"


class StructuredFormatter(logging.Formatter):
    """Structured JSON-like formatter for easier log parsing."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with structured data."""
        if not hasattr(record, 'module_name'):
            record.module_name = record.module
        if not hasattr(record, 'function_name'):
            record.function_name = record.funcName

        return super().format(record)


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    max_bytes: int = 10485760,  # 10MB
    backup_count: int = 5,
    enable_console: bool = True,
    enable_file: bool = False,
) -> logging.Logger:
    """
    Set up logging for apitester.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Custom log file path
        max_bytes: Maximum log file size before rotation
        backup_count: Number of backup log files to keep
        enable_console: Enable console logging
        enable_file: Enable file logging

    Returns:
        Configured package logger
    """
    numeric_level = getattr(logging, level.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG if enable_file else numeric_level)

    # Clear existing handlers
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_fmt = logging.Formatter(
        fmt='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    file_fmt = StructuredFormatter(
        fmt='%(asctime)s | %(levelname)-8s | %(name)-24s | %(module_name)-12s | '
            '%(function_name)-20s | %(lineno)-4d | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    if enable_console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(numeric_level)
        console_handler.setFormatter(console_fmt)
        logger.addHandler(console_handler)

    if enable_file:
        if log_file:
            log_path = Path(log_file)
        else:
            log_path = Path.home() / ".apitester" / "logs" / "apitester.log"

        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding='utf-8'
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(file_fmt)
        logger.addHandler(file_handler)

    # Prevent propagation to root logger
    logger.propagate = False

    return logger


def configure_logging(debug: bool = False, log_file: str | None = None,
                      level: str = "WARNING") -> logging.Logger:
    """
    Quick logging configuration used by the CLI.

    Args:
        debug: Enable debug logging (overrides level)
        log_file: Also write a rotating log to this path
        level: Console level when not debugging
    """
    return setup_logging(
        level="DEBUG" if debug else level,
        log_file=log_file,
        enable_console=True,
        enable_file=log_file is not None,
    )
