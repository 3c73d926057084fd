"""Configuration management for termhub.

This module handles loading and accessing configuration from:
1. termhub.toml file in the data directory
2. Environment variables (TERMHUB_* prefix)
3. Default values

Environment variables override config file values, which override defaults.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import toml

from .core.constants import (
    DEFAULT_SCREEN_COLUMNS,
    DEFAULT_SCREEN_ROWS,
    HISTORY_LIMIT,
    INPUT_BUCKET_CAPACITY,
    INPUT_REFILL_RATE,
)


@dataclass
class ServerConfig:
    """Listener configuration."""

    host: str = "127.0.0.1"
    port: int = 3000


@dataclass
class PathConfig:
    """Directory path configuration."""

    data_dir: Path | None = None
    log_dir: Path | None = None


@dataclass
class SessionConfig:
    """Session behavior configuration."""

    mode: str = "multi"  # "multi" or "shared"
    shell: str | None = None
    cwd: str | None = None
    default_cols: int = DEFAULT_SCREEN_COLUMNS
    default_rows: int = DEFAULT_SCREEN_ROWS
    history_limit: int = HISTORY_LIMIT
    idle_retention: int = 24 * 60 * 60
    sweep_interval: int = 60 * 60
    max_sessions: int = 100
    outbox_size: int = 1024


@dataclass
class RateLimitConfig:
    """Per-connection input budget."""

    capacity: int = INPUT_BUCKET_CAPACITY
    refill_rate: float = INPUT_REFILL_RATE


@dataclass
class RestartConfig:
    """Backoff for auto-restarting sessions."""

    initial_delay: float = 0.5
    max_delay: float = 30.0
    check_interval: float = 0.25


@dataclass
class LoggingConfig:
    """Logging configuration."""

    max_log_lines: int = 1000
    log_level: str = "INFO"


@dataclass
class Config:
    """Main configuration container."""

    server: ServerConfig = field(default_factory=ServerConfig)
    paths: PathConfig = field(default_factory=PathConfig)
    sessions: SessionConfig = field(default_factory=SessionConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    restart: RestartConfig = field(default_factory=RestartConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def __post_init__(self) -> None:
        """Resolve paths after initialization."""
        if self.paths.data_dir is None:
            self.paths.data_dir = _default_data_dir()
        if self.paths.log_dir is None:
            self.paths.log_dir = self.paths.data_dir / "logs"


def _default_data_dir() -> Path:
    data_dir_str = os.environ.get("TERMHUB_DATA_DIR")
    if data_dir_str:
        return Path(data_dir_str)
    # ~/.termhub on Unix or %APPDATA%/termhub on Windows
    if sys.platform == "win32":
        return Path(os.environ.get("APPDATA", "")) / "termhub"
    return Path.home() / ".termhub"


def _get_env_int(key: str, default: int) -> int:
    """Get integer from environment variable."""
    value = os.environ.get(key)
    if value is not None:
        try:
            return int(value)
        except ValueError:
            pass
    return default


def _get_env_float(key: str, default: float) -> float:
    """Get float from environment variable."""
    value = os.environ.get(key)
    if value is not None:
        try:
            return float(value)
        except ValueError:
            pass
    return default


def _get_env_str(key: str, default: str | None) -> str | None:
    """Get string from environment variable."""
    return os.environ.get(key, default)


def _get_env_path(key: str, default: Path | None) -> Path | None:
    """Get path from environment variable."""
    value = os.environ.get(key)
    if value:
        return Path(value)
    return default


def _load_config_file() -> dict[str, Any]:
    """Load configuration from termhub.toml file."""
    config_path = _default_data_dir() / "termhub.toml"
    if not config_path.exists():
        return {}

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            return toml.load(f)
    except (OSError, toml.TomlDecodeError):
        return {}


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to config."""
    # Server overrides
    config.server.host = (
        _get_env_str("TERMHUB_HOST", config.server.host) or config.server.host
    )
    config.server.port = _get_env_int("TERMHUB_PORT", config.server.port)

    # Path overrides
    config.paths.data_dir = _get_env_path("TERMHUB_DATA_DIR", config.paths.data_dir)
    config.paths.log_dir = _get_env_path("TERMHUB_LOG_DIR", config.paths.log_dir)

    # Session overrides
    sessions = config.sessions
    sessions.mode = _get_env_str("TERMHUB_MODE", sessions.mode) or sessions.mode
    sessions.shell = _get_env_str("TERMHUB_SHELL", sessions.shell)
    sessions.cwd = _get_env_str("TERMHUB_CWD", sessions.cwd)
    sessions.history_limit = _get_env_int(
        "TERMHUB_HISTORY_LIMIT", sessions.history_limit
    )
    sessions.idle_retention = _get_env_int(
        "TERMHUB_IDLE_RETENTION", sessions.idle_retention
    )
    sessions.sweep_interval = _get_env_int(
        "TERMHUB_SWEEP_INTERVAL", sessions.sweep_interval
    )
    sessions.max_sessions = _get_env_int("TERMHUB_MAX_SESSIONS", sessions.max_sessions)
    sessions.outbox_size = _get_env_int("TERMHUB_OUTBOX_SIZE", sessions.outbox_size)

    # Rate limit overrides
    config.rate_limit.capacity = _get_env_int(
        "TERMHUB_INPUT_CAPACITY", config.rate_limit.capacity
    )
    config.rate_limit.refill_rate = _get_env_float(
        "TERMHUB_INPUT_REFILL_RATE", config.rate_limit.refill_rate
    )

    # Restart overrides
    config.restart.initial_delay = _get_env_float(
        "TERMHUB_RESTART_INITIAL_DELAY", config.restart.initial_delay
    )
    config.restart.max_delay = _get_env_float(
        "TERMHUB_RESTART_MAX_DELAY", config.restart.max_delay
    )
    config.restart.check_interval = _get_env_float(
        "TERMHUB_RESTART_CHECK_INTERVAL", config.restart.check_interval
    )

    # Logging overrides
    config.logging.max_log_lines = _get_env_int(
        "TERMHUB_MAX_LOG_LINES", config.logging.max_log_lines
    )
    config.logging.log_level = (
        _get_env_str("TERMHUB_LOG_LEVEL", config.logging.log_level)
        or config.logging.log_level
    )

    return config


def _apply_file_config(config: Config, file_config: dict[str, Any]) -> Config:
    """Apply configuration from file to config object."""
    if "server" in file_config:
        server = file_config["server"]
        config.server.host = server.get("host", config.server.host)
        config.server.port = server.get("port", config.server.port)

    if "paths" in file_config:
        paths = file_config["paths"]
        if "data_dir" in paths:
            config.paths.data_dir = Path(paths["data_dir"])
        if "log_dir" in paths:
            config.paths.log_dir = Path(paths["log_dir"])

    if "sessions" in file_config:
        sessions = file_config["sessions"]
        for key in (
            "mode",
            "shell",
            "cwd",
            "default_cols",
            "default_rows",
            "history_limit",
            "idle_retention",
            "sweep_interval",
            "max_sessions",
            "outbox_size",
        ):
            if key in sessions:
                setattr(config.sessions, key, sessions[key])

    if "rate_limit" in file_config:
        rate_limit = file_config["rate_limit"]
        config.rate_limit.capacity = rate_limit.get(
            "capacity", config.rate_limit.capacity
        )
        config.rate_limit.refill_rate = rate_limit.get(
            "refill_rate", config.rate_limit.refill_rate
        )

    if "restart" in file_config:
        restart = file_config["restart"]
        config.restart.initial_delay = restart.get(
            "initial_delay", config.restart.initial_delay
        )
        config.restart.max_delay = restart.get("max_delay", config.restart.max_delay)
        config.restart.check_interval = restart.get(
            "check_interval", config.restart.check_interval
        )

    if "logging" in file_config:
        logging = file_config["logging"]
        config.logging.max_log_lines = logging.get(
            "max_log_lines", config.logging.max_log_lines
        )
        config.logging.log_level = logging.get("log_level", config.logging.log_level)

    return config


def load_config() -> Config:
    """Load configuration from defaults, file, and environment.

    Priority (highest to lowest):
    1. Environment variables (TERMHUB_*)
    2. termhub.toml file
    3. Default values

    Returns:
        Config: The loaded configuration object
    """
    config = Config()

    file_config = _load_config_file()
    if file_config:
        config = _apply_file_config(config, file_config)

    config = _apply_env_overrides(config)

    return config


# Global config instance
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """Reload configuration from file and environment."""
    global _config
    _config = load_config()
    return _config


__all__ = [
    "Config",
    "ServerConfig",
    "PathConfig",
    "SessionConfig",
    "RateLimitConfig",
    "RestartConfig",
    "LoggingConfig",
    "load_config",
    "get_config",
    "reload_config",
]
