"""
Logging configuration for the relay.

Provides consistent logging setup with platform-specific loggers
and structured ``key=value`` context on every line.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

_installed: list[logging.Handler] = []


class PlatformLogger:
    """
    Platform-specific logger with consistent formatting.

    Prefixes each line with the platform and appends keyword
    context, e.g. ``[slack] Channel created | channel=acme-dm``.
    """

    def __init__(self, name: str, platform: str):
        """
        Initialize platform logger.

        Args:
            name: Logger name
            platform: Platform identifier (yammer, slack, auth, relay)
        """
        self.logger = logging.getLogger(f"{name}.{platform}")
        self.platform = platform

    def info(self, message: str, **context) -> None:
        """Log info message with context."""
        self._log(logging.INFO, message, context)

    def warning(self, message: str, **context) -> None:
        """Log warning message with context."""
        self._log(logging.WARNING, message, context)

    def error(self, message: str, **context) -> None:
        """Log error message with context."""
        self._log(logging.ERROR, message, context)

    def debug(self, message: str, **context) -> None:
        """Log debug message with context."""
        self._log(logging.DEBUG, message, context)

    def _log(self, level: int, message: str, context: dict) -> None:
        if not self.logger.isEnabledFor(level):
            return
        context_str = " ".join(f"{k}={v}" for k, v in context.items())
        full_message = f"[{self.platform}] {message}"
        if context_str:
            full_message += f" | {context_str}"

        self.logger.log(level, full_message)


def configure_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    format_string: Optional[str] = None,
) -> None:
    """
    Configure logging for the relay process.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional file path for log output
        format_string: Optional custom format string
    """
    if format_string is None:
        format_string = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    formatter = logging.Formatter(format_string)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    # Replace handlers from an earlier call
    for handler in _installed:
        root_logger.removeHandler(handler)
        handler.close()
    _installed.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    _installed.append(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        _installed.append(file_handler)

    for handler in _installed:
        root_logger.addHandler(handler)


def get_logger(name: str, platform: str) -> PlatformLogger:
    """
    Get platform-specific logger.

    Args:
        name: Logger name
        platform: Platform identifier

    Returns:
        Configured PlatformLogger instance
    """
    return PlatformLogger(name, platform)
