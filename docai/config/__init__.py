"""Simplified configuration management using environment variables."""
from __future__ import annotations

import logging
import os
import sys
import threading
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

from ..errors import ConfigurationError
from .secure_config import load_api_key

logger = logging.getLogger(__name__)

APP_NAME = "docai"
CACHE_FILE_NAME = "ai_cache.json"


def _load_dotenv() -> None:
    """Load the first .env file found in the working directory or home."""
    from dotenv import load_dotenv

    for env_path in (Path(".env"), Path.home() / ".env"):
        if env_path.exists():
            load_dotenv(env_path, override=False)
            logger.debug(f"Loaded environment from {env_path}")
            break


def _parse_bool(value: str | bool | None) -> bool:
    """Parse boolean value from various formats."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, str):
        return value.lower() in ("true", "1", "yes", "on", "enabled")
    return bool(value)


def _getenv(key: str, default: str = "") -> str:
    """Get environment variable with default."""
    return os.getenv(key, default)


def _getenv_int(key: str, default: int) -> int:
    """Get integer environment variable with validation.

    Args:
        key: Environment variable name
        default: Default value if not set

    Returns:
        Parsed integer value

    Raises:
        ValueError: If value cannot be parsed as integer
    """
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ValueError(
            f"Invalid integer value for {key}='{value}'. "
            f"Expected integer, got: {value}"
        ) from e


def _getenv_float(key: str, default: float) -> float:
    """Get float environment variable with validation.

    Args:
        key: Environment variable name
        default: Default value if not set

    Returns:
        Parsed float value

    Raises:
        ValueError: If value cannot be parsed as float
    """
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError as e:
        raise ValueError(
            f"Invalid float value for {key}='{value}'. "
            f"Expected float, got: {value}"
        ) from e


def default_cache_dir() -> Path:
    """Per-platform cache directory for the response cache."""
    home = Path.home()
    if sys.platform == "win32":
        return home / "AppData" / "Local" / APP_NAME / "cache"
    if sys.platform == "darwin":
        return home / "Library" / "Application Support" / APP_NAME / "cache"
    return home / ".config" / APP_NAME / "cache"


@dataclass
class Config:
    """Client and cache configuration loaded from environment variables.

    Durations are in seconds. ``batch_timeout`` of 0 disables the per-item
    batch timeout.
    """

    # ========== Provider ==========
    api_key: Optional[str] = field(default_factory=load_api_key)
    base_url: str = field(default_factory=lambda: _getenv("DOCAI_BASE_URL", "https://api.openai.com/v1"))
    default_model: str = field(default_factory=lambda: _getenv("DOCAI_DEFAULT_MODEL", "gpt-3.5-turbo"))
    timeout: float = field(default_factory=lambda: _getenv_float("DOCAI_TIMEOUT", 30.0))
    mock_mode: bool = field(default_factory=lambda: _parse_bool(_getenv("DOCAI_MOCK_MODE", "false")))
    mock_delay_min: float = field(default_factory=lambda: _getenv_float("DOCAI_MOCK_DELAY_MIN", 0.1))
    mock_delay_max: float = field(default_factory=lambda: _getenv_float("DOCAI_MOCK_DELAY_MAX", 0.3))

    # ========== Retry Settings ==========
    max_retries: int = field(default_factory=lambda: _getenv_int("DOCAI_MAX_RETRIES", 3))
    retry_delay: float = field(default_factory=lambda: _getenv_float("DOCAI_RETRY_DELAY", 1.0))
    max_delay: float = field(default_factory=lambda: _getenv_float("DOCAI_MAX_DELAY", 10.0))

    # ========== Concurrency & Batching ==========
    max_concurrent_requests: int = field(default_factory=lambda: _getenv_int("DOCAI_MAX_CONCURRENT_REQUESTS", 3))
    batch_size: int = field(default_factory=lambda: _getenv_int("DOCAI_BATCH_SIZE", 5))
    batch_delay: float = field(default_factory=lambda: _getenv_float("DOCAI_BATCH_DELAY", 0.1))
    batch_timeout: float = field(default_factory=lambda: _getenv_float("DOCAI_BATCH_TIMEOUT", 60.0))

    # ========== Caching ==========
    cache_dir: Path = field(
        default_factory=lambda: Path(_getenv("DOCAI_CACHE_DIR") or default_cache_dir())
    )
    max_cache_size: int = field(default_factory=lambda: _getenv_int("DOCAI_MAX_CACHE_SIZE", 1000))
    max_age: float = field(default_factory=lambda: _getenv_float("DOCAI_MAX_AGE", 7 * 24 * 60 * 60.0))
    compression_enabled: bool = field(
        default_factory=lambda: _parse_bool(_getenv("DOCAI_COMPRESSION_ENABLED", "true"))
    )
    save_interval: float = field(default_factory=lambda: _getenv_float("DOCAI_SAVE_INTERVAL", 30.0))
    flush_delay: float = field(default_factory=lambda: _getenv_float("DOCAI_FLUSH_DELAY", 1.0))

    # ========== Logging ==========
    log_level: str = field(default_factory=lambda: _getenv("DOCAI_LOG_LEVEL", "INFO").upper())
    log_file: Optional[str] = field(default_factory=lambda: _getenv("DOCAI_LOG_FILE") or None)

    def __post_init__(self):
        """Normalize paths and reject values the client cannot work with."""
        self.cache_dir = Path(self.cache_dir)
        self.validate()

    def validate(self) -> None:
        """Check numeric bounds.

        Raises:
            ConfigurationError: If any option is out of range
        """
        if self.max_retries < 1:
            raise ConfigurationError(f"max_retries must be >= 1, got {self.max_retries}")
        if self.max_concurrent_requests < 1:
            raise ConfigurationError(
                f"max_concurrent_requests must be >= 1, got {self.max_concurrent_requests}"
            )
        if self.batch_size < 1:
            raise ConfigurationError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.max_cache_size < 1:
            raise ConfigurationError(f"max_cache_size must be >= 1, got {self.max_cache_size}")
        for name in ("retry_delay", "max_delay", "batch_delay", "batch_timeout", "mock_delay_min"):
            if getattr(self, name) < 0:
                raise ConfigurationError(f"{name} must not be negative")
        if self.timeout <= 0 or self.max_age <= 0:
            raise ConfigurationError("timeout and max_age must be positive")
        if self.mock_delay_max < self.mock_delay_min:
            raise ConfigurationError("mock_delay_max must be >= mock_delay_min")

    @property
    def cache_file(self) -> Path:
        return self.cache_dir / CACHE_FILE_NAME

    def with_overrides(self, **overrides: Any) -> "Config":
        """Return a copy with the given fields replaced.

        Raises:
            ConfigurationError: If an unknown option is given or a value is invalid
        """
        known = {f.name for f in fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ConfigurationError(f"Unknown configuration option(s): {', '.join(unknown)}")
        return replace(self, **overrides)

    @classmethod
    def from_overrides(cls, **overrides: Any) -> "Config":
        """Build a config from the environment, then apply explicit overrides."""
        return cls().with_overrides(**overrides)

    def to_dict(self, redact: bool = True) -> Dict[str, Any]:
        """Convert to dictionary, masking the API key unless ``redact`` is False."""
        data: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name == "api_key" and value and redact:
                value = "***REDACTED***"
            elif isinstance(value, Path):
                value = str(value)
            data[f.name] = value
        return data

    def __repr__(self) -> str:
        """Return repr with redacted API key for security."""
        items = [f"{name}={value!r}" for name, value in self.to_dict().items()]
        return f"Config({', '.join(items)})"


_config: Optional[Config] = None
_config_lock = threading.Lock()


def get_config() -> Config:
    """Return the process-wide configuration, loading it on first use."""
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:
                _load_dotenv()
                _config = Config()
    return _config


def reset_config() -> None:
    """Drop the cached configuration so the next get_config() reloads it."""
    global _config
    with _config_lock:
        _config = None


__all__ = [
    "APP_NAME",
    "CACHE_FILE_NAME",
    "Config",
    "default_cache_dir",
    "get_config",
    "reset_config",
]
