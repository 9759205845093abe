"""Centralized logging configuration for the hypercli application.

Sets up standard Python logging with appropriate levels, formatters,
and handlers (console, optional file). Console output goes to stderr so
stdout carries only command results.
"""

import logging
import sys
from typing import Optional

DEFAULT_LOG_LEVEL = logging.WARNING
DEFAULT_LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DEFAULT_LOG_FILE = None

DIAGNOSTICS_LOGGER_NAME = "hypercli.diagnostics"
# Diagnostic records are JSON already; no prefix
DIAGNOSTICS_FORMAT = '%(message)s'


def setup_logging(
    log_level: int = DEFAULT_LOG_LEVEL,
    log_format: str = DEFAULT_LOG_FORMAT,
    log_file: Optional[str] = DEFAULT_LOG_FILE
) -> None:
    """Configures the root logger for the application.

    Args:
        log_level: The minimum logging level (e.g., logging.DEBUG, logging.INFO).
        log_format: The format string for log messages.
        log_file: Optional path to a file for logging output.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Remove existing handlers attached to the root logger
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter = logging.Formatter(log_format)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        try:
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setLevel(log_level)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)
            logging.info(f"Logging to file: {log_file}")
        except OSError as e:
            logging.error(f"Failed to set up file logging to {log_file}: {e}", exc_info=True)

    logging.debug(f"Logging configured. Level={logging.getLevelName(log_level)}")


def configure_diagnostics(enabled: bool) -> logging.Logger:
    """Routes diagnostic events to stderr as bare JSON lines, or silences them.

    The diagnostics logger does not propagate, so its records are never
    duplicated by the root handlers.
    """
    diagnostics_logger = logging.getLogger(DIAGNOSTICS_LOGGER_NAME)
    for handler in diagnostics_logger.handlers[:]:
        diagnostics_logger.removeHandler(handler)
    diagnostics_logger.propagate = False

    if enabled:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(DIAGNOSTICS_FORMAT))
        diagnostics_logger.addHandler(handler)
        diagnostics_logger.setLevel(logging.DEBUG)
    else:
        diagnostics_logger.addHandler(logging.NullHandler())
        diagnostics_logger.setLevel(logging.CRITICAL + 1)
    return diagnostics_logger
