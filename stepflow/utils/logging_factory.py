"""Centralized logging setup for the stepflow CLI and embedding hosts.

Usage:
    LoggingFactory.initialize(level=logging.INFO, log_file=Path("stepflow.log"))

    logger = logging.getLogger(__name__)
    logger.info("Application started")
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Loggers that are noisy at DEBUG level
QUIET_LOGGERS = ("httpx", "httpcore", "asyncio")


class LoggingFactory:
    """Configures the logging system once per process.

    Class Attributes:
        _initialized: Flag to ensure single initialization
    """

    _initialized = False

    @classmethod
    def initialize(
        cls,
        level: int | str = logging.INFO,
        format_string: Optional[str] = None,
        log_file: Optional[Path] = None,
        console_handler: Optional[logging.Handler] = None,
        log_to_console: bool = True,
        force: bool = False,
    ) -> None:
        """Initialize the logging system once for the entire application.

        Later calls are ignored unless ``force`` is set.

        Args:
            level: Root logging level (int or name such as ``"DEBUG"``)
            format_string: Format for plain handlers; defaults to DEFAULT_FORMAT
            log_file: Optional file that receives every record as well
            console_handler: Handler used for console output instead of a
                plain stderr StreamHandler (e.g. a rich handler)
            log_to_console: Whether to attach a console handler at all
            force: Reconfigure even if already initialized
        """
        if cls._initialized and not force:
            return

        if isinstance(level, str):
            level = logging.getLevelName(level.upper())
            if not isinstance(level, int):
                level = logging.INFO

        formatter = logging.Formatter(format_string or DEFAULT_FORMAT)
        handlers: List[logging.Handler] = []

        if log_to_console:
            handler = console_handler or logging.StreamHandler()
            if console_handler is None:
                handler.setFormatter(formatter)
            handlers.append(handler)

        if log_file is not None:
            log_file = Path(log_file)
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(formatter)
            handlers.append(file_handler)

        logging.basicConfig(level=level, handlers=handlers or [logging.NullHandler()], force=True)

        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(max(level, logging.WARNING))

        cls._initialized = True

    @classmethod
    def reset(cls) -> None:
        """Allow initialize() to run again; used by tests."""
        cls._initialized = False
