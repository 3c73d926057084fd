"""termhub data directories and daemon log helpers."""

from __future__ import annotations

import datetime
import logging
import os
import tempfile
from pathlib import Path

from termhub.config import get_config

LOG_FORMAT = "[%(asctime)s] %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _create_dir(path: Path) -> bool:
    try:
        path.mkdir(parents=True, exist_ok=True)
        return True
    except OSError:
        return False


def _is_writable_directory(path: Path) -> bool:
    if not _create_dir(path):
        return False
    test_file = path / ".termhub_write_test"
    try:
        test_file.write_text("", encoding="utf-8")
        test_file.unlink()
        return True
    except OSError:
        return False


def get_data_dir() -> Path:
    """Get the data directory from config, falling back to the temp dir."""
    data_dir = get_config().paths.data_dir
    if data_dir and _is_writable_directory(data_dir):
        return data_dir
    fallback = Path(tempfile.gettempdir()) / "termhub"
    _create_dir(fallback)
    return fallback


def get_logs_dir() -> Path:
    """Get the logs directory from config or resolve default."""
    log_dir = get_config().paths.log_dir
    if log_dir and _is_writable_directory(log_dir):
        return log_dir
    return get_data_dir()


DATA_DIR = get_data_dir()
LOGS_DIR = get_logs_dir()
DAEMON_LOG = LOGS_DIR / "daemon.log"


def rotate_daemon_log(max_lines: int | None = None) -> None:
    """Keep only last N lines in daemon log.

    Args:
        max_lines: Maximum number of lines to keep. If None, uses config default.
    """
    if max_lines is None:
        max_lines = get_config().logging.max_log_lines

    if not DAEMON_LOG.exists():
        return
    try:
        lines = DAEMON_LOG.read_text(encoding="utf-8").splitlines()
        if len(lines) > max_lines:
            DAEMON_LOG.write_text("\n".join(lines[-max_lines:]) + "\n", encoding="utf-8")
    except OSError:
        pass


def write_daemon_log(message: str) -> None:
    """Append to daemon log."""
    timestamp = datetime.datetime.now().strftime(LOG_DATE_FORMAT)
    try:
        with open(DAEMON_LOG, "a", encoding="utf-8") as f:
            f.write(f"[{timestamp}] {message}\n")
    except OSError:
        pass


def setup_logging(level: str | None = None) -> logging.Handler:
    """Route uvicorn and termhub loggers into the daemon log file."""
    level_name = (level or get_config().logging.log_level).upper()
    log_level = getattr(logging, level_name, logging.INFO)

    log_path = os.path.abspath(DAEMON_LOG)
    for existing in logging.getLogger("termhub").handlers:
        if isinstance(existing, logging.FileHandler) and existing.baseFilename == log_path:
            return existing

    handler = logging.FileHandler(DAEMON_LOG, mode="a", encoding="utf-8")
    handler.setLevel(log_level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))

    for name in ("uvicorn", "uvicorn.access", "termhub"):
        logger = logging.getLogger(name)
        logger.setLevel(log_level)
        logger.addHandler(handler)

    return handler


__all__ = [
    "DATA_DIR",
    "LOGS_DIR",
    "DAEMON_LOG",
    "rotate_daemon_log",
    "write_daemon_log",
    "setup_logging",
]
