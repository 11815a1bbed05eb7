"""Utility modules for logging setup."""

from .logging_factory import LoggingFactory

__all__ = [
    "LoggingFactory",
]
