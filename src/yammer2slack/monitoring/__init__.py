"""Logging helpers for the relay."""

from .loggers import PlatformLogger, configure_logging, get_logger

__all__ = ["PlatformLogger", "configure_logging", "get_logger"]
