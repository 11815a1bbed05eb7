"""Configuration management using environment variables and an optional .env file."""
from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

ENV_PATHS = (Path(".env"), Path.home() / ".env")


def _parse_bool(value: str | bool | None) -> bool:
    """Parse boolean value from various formats."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return value.lower() in ("true", "1", "yes", "on", "enabled")


def _parse_list(value: str | List[str] | None, delimiter: str = ",") -> List[str]:
    """Parse list value from string or return as-is if already a list."""
    if isinstance(value, list):
        return value
    if isinstance(value, str):
        return [item.strip() for item in value.split(delimiter) if item.strip()]
    return []


def _getenv(key: str, default: str = "") -> str:
    return os.getenv(key, default)


def _getenv_int(key: str, default: Optional[int]) -> Optional[int]:
    """Get integer environment variable with validation.

    Args:
        key: Environment variable name
        default: Default value if not set or empty

    Returns:
        Parsed integer value

    Raises:
        ValueError: If value cannot be parsed as integer
    """
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ValueError(
            f"Invalid integer value for {key}='{value}'. Expected integer, got: {value}"
        ) from e


def _getenv_float(key: str, default: Optional[float]) -> Optional[float]:
    """Get float environment variable with validation.

    Raises:
        ValueError: If value cannot be parsed as float
    """
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError as e:
        raise ValueError(
            f"Invalid float value for {key}='{value}'. Expected float, got: {value}"
        ) from e


@dataclass
class Config:
    """Application configuration loaded from environment variables."""

    # ========== Storage ==========
    storage_root: Path = field(
        default_factory=lambda: Path(_getenv("STEPFLOW_STORAGE_ROOT", "."))
    )

    # ========== Remote calls ==========
    http_timeout: float = field(default_factory=lambda: _getenv_float("STEPFLOW_HTTP_TIMEOUT", 30.0))

    # ========== Execution retention ==========
    max_executions: Optional[int] = field(
        default_factory=lambda: _getenv_int("STEPFLOW_MAX_EXECUTIONS", 1000)
    )
    execution_ttl: Optional[float] = field(
        default_factory=lambda: _getenv_float("STEPFLOW_EXECUTION_TTL", 3600.0)
    )

    # ========== Concurrency ==========
    max_parallel: Optional[int] = field(default_factory=lambda: _getenv_int("STEPFLOW_MAX_PARALLEL", None))

    # ========== Definitions ==========
    definitions: List[str] = field(
        default_factory=lambda: _parse_list(_getenv("STEPFLOW_DEFINITIONS"), delimiter=os.pathsep)
    )

    # ========== Logging ==========
    log_level: str = field(default_factory=lambda: _getenv("LOG_LEVEL", "INFO").upper())
    log_format: str = field(
        default_factory=lambda: _getenv("LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    log_file: Optional[str] = field(default_factory=lambda: _getenv("LOG_FILE") or None)
    log_to_console: bool = field(default_factory=lambda: _parse_bool(_getenv("LOG_TO_CONSOLE", "true")))

    def __post_init__(self):
        self.storage_root = Path(self.storage_root)
        if self.http_timeout is not None and self.http_timeout <= 0:
            raise ValueError(f"STEPFLOW_HTTP_TIMEOUT must be positive, got {self.http_timeout}")
        if self.max_parallel is not None and self.max_parallel < 1:
            raise ValueError(f"STEPFLOW_MAX_PARALLEL must be at least 1, got {self.max_parallel}")
        # Zero or negative disables the corresponding retention limit
        if self.max_executions is not None and self.max_executions <= 0:
            self.max_executions = None
        if self.execution_ttl is not None and self.execution_ttl <= 0:
            self.execution_ttl = None

    @property
    def definition_paths(self) -> List[Path]:
        return [Path(p) for p in self.definitions]


def load_environment() -> Optional[Path]:
    """Load the first .env file found; existing variables win.

    Returns:
        Path of the loaded file or None
    """
    for env_path in ENV_PATHS:
        if env_path.exists():
            load_dotenv(env_path, override=False)
            logger.debug(f"Loaded environment from {env_path}")
            return env_path
    return None


# Singleton instance with thread-safe initialization
_config_instance: Optional[Config] = None
_config_lock = threading.Lock()


def get_config() -> Config:
    """Get global config instance (thread-safe)."""
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                load_environment()
                _config_instance = Config()
    return _config_instance


def reset_config() -> None:
    """Drop the cached config so the next get_config() re-reads the environment."""
    global _config_instance
    with _config_lock:
        _config_instance = None


__all__ = ["Config", "get_config", "load_environment", "reset_config"]
